from .base import CheckpointSaver
from .file import FileSaver
from .kv import KeyValueStoreSaver
from .memory import MemorySaver
from .sql import SqlCheckpointSaver, create_all, create_engine, create_sessionmaker

__all__ = [
    "CheckpointSaver",
    "FileSaver",
    "KeyValueStoreSaver",
    "MemorySaver",
    "SqlCheckpointSaver",
    "create_all",
    "create_engine",
    "create_sessionmaker",
]
