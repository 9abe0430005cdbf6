from .base import AccountStore
from .memory import InMemoryAccountStore
from .sql import SqlAccountStore, create_session_factory

__all__ = ["AccountStore", "InMemoryAccountStore", "SqlAccountStore", "create_session_factory"]
