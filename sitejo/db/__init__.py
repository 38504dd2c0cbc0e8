"""Database table definitions for SITEJO."""

from .models import (
    ensure_datetime,
    ensure_optional_datetime,
    AccessTokenTable,
    DocumentTable,
    TicketHistoryTable,
    TicketNumberCounterTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "ensure_datetime",
    "ensure_optional_datetime",
    "AccessTokenTable",
    "DocumentTable",
    "TicketHistoryTable",
    "TicketNumberCounterTable",
    "TicketTable",
    "UserTable",
]
