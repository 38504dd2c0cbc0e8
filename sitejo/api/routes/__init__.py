"""Route modules exposed by the API package."""

from . import auth, documents, ping, tickets, users, verify

__all__ = ["auth", "documents", "ping", "tickets", "users", "verify"]
