"""Infrastructure helpers used by the API process."""

from .database import DatabaseConnectionTester

__all__ = ["DatabaseConnectionTester"]
