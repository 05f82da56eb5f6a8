from .base import LedgerStore
from .events import ChangeEvent, ChangeNotifier
from .sqlite_storage import SQLiteLedgerStore

__all__ = ["LedgerStore", "ChangeEvent", "ChangeNotifier", "SQLiteLedgerStore"]
