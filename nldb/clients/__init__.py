"""Clients for the cloud provider gateway."""

from nldb.clients.capi import AuthRequiredError, AuthSession, CapiClient, CapiError
from nldb.clients.csrf import extract_skey, generate_csrf_code
from nldb.clients.document_store import BaseDocumentStore, CapiDocumentStore
from nldb.clients.mysql import MySQLClient, SqlResult

__all__ = [
    "AuthRequiredError",
    "AuthSession",
    "BaseDocumentStore",
    "CapiClient",
    "CapiDocumentStore",
    "CapiError",
    "MySQLClient",
    "SqlResult",
    "extract_skey",
    "generate_csrf_code",
]
