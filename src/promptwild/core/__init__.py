"""Core functionality for prompt wildcard expansion.

- **FragmentProcessor**: Three-stage wildcard expansion engine
- **FragmentStore**: Foldered fragment files with random/sequential line access
- **KeyValueStorage**: Async persistence backends (SQLite, in-memory)
- **PromptwildConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)

Usage Example
-------------
    from promptwild.core import FragmentProcessor, FragmentStore, MemoryKeyValueStorage

    store = await FragmentStore.open(MemoryKeyValueStorage(), MemoryKeyValueStorage())
    await store.add_file("hair", content=["long hair", "short hair"])

    processor = FragmentProcessor(store)
    prompt = await processor.expand("1girl, <hair>, (smile/frown)")
"""

from promptwild.core.config import PromptwildConfig, config
from promptwild.core.fragment_processor import FragmentProcessor, has_choice_points
from promptwild.core.fragment_store import (
    FragmentStore,
    normalize_fragment_path,
    parse_fragment_text,
)
from promptwild.core.models import FragmentFile, FragmentFileMeta
from promptwild.core.storage import (
    KeyValueStorage,
    MemoryKeyValueStorage,
    SQLiteKeyValueStorage,
    StorageError,
)

__all__ = [
    "FragmentFile",
    "FragmentFileMeta",
    "FragmentProcessor",
    "FragmentStore",
    "KeyValueStorage",
    "MemoryKeyValueStorage",
    "PromptwildConfig",
    "SQLiteKeyValueStorage",
    "StorageError",
    "config",
    "has_choice_points",
    "normalize_fragment_path",
    "parse_fragment_text",
]
