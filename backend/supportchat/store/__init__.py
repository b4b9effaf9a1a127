"""DuckDB-backed persistence for users and messages."""
from .service import MessageStore

__all__ = ["MessageStore"]
