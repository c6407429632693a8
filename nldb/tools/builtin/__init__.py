"""Built-in tools for the ReAct agents."""
