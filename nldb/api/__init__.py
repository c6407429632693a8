"""HTTP API for the chat front end."""
