"""Fragment store: named, foldered lists of prompt lines.

A fragment file is a list of text lines referenced from prompts by path,
either ``name`` or ``folder/name``. The expansion engine reads lines from
the store in two ways:

1. **Random Line**: ``<hair>`` picks one line uniformly at random
2. **Sequential Line**: ``<*hair>`` returns the next line of a per-path
   cursor, wrapping around at the end of the file

Everything else here (create, update, duplicate, import, export) is file
management for the editing surface.

Storage Layout
--------------
Metadata and content are persisted separately:

    state storage    "promptwild-fragments" -> {"files": [...],
                                               "sequential_counters": {...},
                                               "migrated": true}
    content storage  "<file id>"            -> ["line 1", "line 2", ...]

The metadata list is kept in memory and is what path lookups scan. Content
is loaded on demand and kept in a small LRU cache.

Sequential Cursors
------------------
Each sequential read returns ``content[counter % line_count]`` and then
stores ``counter + 1``. The counter is stored unclamped; the modulo is
applied when reading, so a file that shrinks between reads still wraps
correctly. Counters are keyed by the path exactly as the prompt spelled it
(after path normalization), not by file id, and persist until reset.

Usage Example
-------------
    >>> storage = MemoryKeyValueStorage()
    >>> store = await FragmentStore.open(storage, MemoryKeyValueStorage())
    >>> await store.add_file("hair", content=["long hair", "short hair"])
    >>> await store.get_sequential_line("hair")
    'long hair'
    >>> await store.get_sequential_line("hair")
    'short hair'
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
import uuid
from collections import OrderedDict
from pathlib import Path

from pydantic import ValidationError

from promptwild.core.models import FragmentFile, FragmentFileMeta
from promptwild.core.storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

STATE_KEY = "promptwild-fragments"


def normalize_fragment_path(path: str) -> str:
    """Normalize a fragment reference path.

    Trims whitespace, converts backslashes to forward slashes and strips
    leading/trailing slashes.

    Examples:
        >>> normalize_fragment_path(" \\\\styles\\\\anime/ ")
        'styles/anime'
    """
    return path.strip().replace("\\", "/").strip("/")


def parse_fragment_text(text: str) -> list[str]:
    """Split raw text into fragment lines.

    Lines are trimmed; blank lines and ``#`` comment lines are dropped.
    """
    lines = (line.strip() for line in text.splitlines())
    return [line for line in lines if line and not line.startswith("#")]


def _decode_content(raw: str | None, file_id: str) -> list[str]:
    if raw is None:
        return []
    try:
        content = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Corrupt content for fragment {file_id}: {e}")
        return []
    if not isinstance(content, list):
        logger.error(f"Unexpected content type for fragment {file_id}: {type(content).__name__}")
        return []
    return [str(line) for line in content]


class FragmentStore:
    """Persistent collection of fragment files with line accessors.

    The store must be loaded (``await store.load()`` or
    :meth:`FragmentStore.open`) before it is modified, otherwise an empty
    in-memory state would overwrite whatever is persisted.

    Args:
        state_storage: Storage for metadata and sequential counters
        content_storage: Storage for fragment lines, keyed by file id
        cache_size: Number of contents kept in memory (0 disables caching)
        rng: Random source for random line selection

    Notes
    -----
    - Path lookups are case-insensitive and match ``folder/name`` or the
      bare ``name``; the first match in store order wins.
    - A counter update (read, compute, store) never spans an ``await``, so
      concurrent sequential reads on one event loop each get their own line.
    """

    def __init__(
        self,
        state_storage: KeyValueStorage,
        content_storage: KeyValueStorage,
        *,
        cache_size: int = 20,
        rng: random.Random | None = None,
    ):
        self._state_storage = state_storage
        self._content_storage = content_storage
        self._cache_size = cache_size
        self._rng = rng or random.Random()

        self._files: list[FragmentFileMeta] = []
        self._sequential_counters: dict[str, int] = {}
        self._content_cache: OrderedDict[str, list[str]] = OrderedDict()
        self._initialized = False
        self._migrated = False
        self._state_version = 0

    @classmethod
    async def open(
        cls,
        state_storage: KeyValueStorage,
        content_storage: KeyValueStorage,
        **kwargs,
    ) -> FragmentStore:
        """Create a store and load its persisted state."""
        store = cls(state_storage, content_storage, **kwargs)
        await store.load()
        return store

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def files(self) -> list[FragmentFileMeta]:
        return list(self._files)

    @property
    def sequential_counters(self) -> dict[str, int]:
        return dict(self._sequential_counters)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def load(self) -> None:
        """Rehydrate metadata and counters from state storage.

        Missing or unreadable state starts an empty store. File entries that
        fail validation are dropped. Entries written by the old single-blob
        format (content embedded in the metadata) are migrated to content
        storage.
        """
        raw = await self._state_storage.get_item(STATE_KEY)
        state: dict = {}
        if raw:
            try:
                state = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error(f"Corrupt fragment store state, starting empty: {e}")
                state = {}
        if not isinstance(state, dict):
            state = {}

        raw_files = state.get("files")
        if not isinstance(raw_files, list):
            raw_files = []

        counters = state.get("sequential_counters")
        if not isinstance(counters, dict):
            counters = {}
        self._sequential_counters = {
            str(path): value for path, value in counters.items() if isinstance(value, int)
        }

        files: list[FragmentFileMeta] = []
        legacy: list[tuple[FragmentFileMeta, list]] = []
        for entry in raw_files:
            if not isinstance(entry, dict):
                continue
            try:
                meta = FragmentFileMeta.model_validate(entry)
            except ValidationError as e:
                logger.warning(f"Dropping invalid fragment entry {entry.get('id')!r}: {e}")
                continue
            files.append(meta)
            if isinstance(entry.get("content"), list):
                legacy.append((meta, entry["content"]))

        self._files = files
        self._migrated = bool(state.get("migrated", False))
        self._content_cache.clear()
        self._initialized = True

        if legacy and not self._migrated:
            await self._migrate_legacy_content(legacy)

        logger.info(f"Loaded fragment store: {len(self._files)} files")

    async def _migrate_legacy_content(self, legacy: list[tuple[FragmentFileMeta, list]]) -> None:
        logger.info(f"Migrating {len(legacy)} fragment files to separate content storage...")

        line_counts: dict[str, int] = {}
        for meta, content in legacy:
            lines = [str(line) for line in content]
            if lines:
                await self._content_storage.set_item(meta.id, json.dumps(lines, ensure_ascii=False))
            line_counts[meta.id] = len(lines)

        self._files = [
            meta.model_copy(update={"line_count": line_counts[meta.id]})
            if meta.id in line_counts
            else meta
            for meta in self._files
        ]
        self._migrated = True
        await self._commit()
        logger.info("Migration complete")

    def _snapshot(self) -> dict:
        return {
            "files": [meta.model_dump() for meta in self._files],
            "sequential_counters": dict(self._sequential_counters),
            "migrated": self._migrated,
        }

    async def _commit(self) -> None:
        """Persist the current in-memory state.

        Concurrent commits may finish out of order, so a writer keeps
        rewriting until the snapshot it wrote is the latest state.
        """
        if not self._initialized:
            raise RuntimeError("FragmentStore.load() must be awaited before modifying the store")

        self._state_version += 1
        while True:
            version = self._state_version
            payload = json.dumps(self._snapshot(), ensure_ascii=False)
            await self._state_storage.set_item(STATE_KEY, payload)
            if self._state_version == version:
                return

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _cache_content(self, file_id: str, content: list[str]) -> None:
        if self._cache_size <= 0:
            return
        self._content_cache[file_id] = content
        self._content_cache.move_to_end(file_id)
        while len(self._content_cache) > self._cache_size:
            self._content_cache.popitem(last=False)

    async def load_file_content(self, file_id: str) -> list[str]:
        """Return the lines of a fragment file.

        Args:
            file_id: Fragment file id

        Returns:
            List of lines, empty if the file has no stored content
        """
        cached = self._content_cache.get(file_id)
        if cached is not None:
            self._content_cache.move_to_end(file_id)
            return cached

        content = _decode_content(await self._content_storage.get_item(file_id), file_id)
        self._cache_content(file_id, content)
        return content

    async def _save_content(self, file_id: str, content: list[str]) -> None:
        await self._content_storage.set_item(file_id, json.dumps(content, ensure_ascii=False))
        self._cache_content(file_id, list(content))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _find(self, file_id: str) -> FragmentFileMeta | None:
        return next((meta for meta in self._files if meta.id == file_id), None)

    def get_file_by_path(self, path: str) -> FragmentFileMeta | None:
        """Find a fragment file by reference path.

        Args:
            path: ``folder/name`` or ``name``, compared case-insensitively

        Returns:
            The first matching file in store order, or None
        """
        normalized = path.strip().lower()
        for meta in self._files:
            if meta.path.lower() == normalized or meta.name.lower() == normalized:
                return meta
        return None

    async def get_file_with_content(self, file_id: str) -> FragmentFile | None:
        meta = self._find(file_id)
        if meta is None:
            return None
        content = await self.load_file_content(file_id)
        return FragmentFile(**meta.model_dump(), content=content)

    def get_folders(self) -> list[str]:
        """Return the sorted, distinct, non-root folders."""
        return sorted({meta.folder for meta in self._files if meta.folder})

    def get_files_in_folder(self, folder: str) -> list[FragmentFileMeta]:
        """Return the files directly in *folder* (``""`` for the root)."""
        folder = normalize_fragment_path(folder)
        return [meta for meta in self._files if meta.folder == folder]

    # ------------------------------------------------------------------
    # Line access
    # ------------------------------------------------------------------

    async def get_random_line(self, path: str) -> str | None:
        """Get a uniformly random line from the fragment at *path*.

        Returns:
            A line, or None if the path is unknown or the file is empty
        """
        meta = self.get_file_by_path(path)
        if meta is None:
            return None

        content = await self.load_file_content(meta.id)
        if not content:
            return None

        return content[int(self._rng.random() * len(content))]

    async def get_sequential_line(self, path: str) -> str | None:
        """Get the next line of the sequential cursor for *path*.

        Returns ``content[counter % line_count]`` and advances the counter.
        If persisting the new counter fails, the cursor is moved back and the
        :class:`StorageError` is raised.

        Returns:
            A line, or None if the path is unknown or the file is empty
        """
        meta = self.get_file_by_path(path)
        if meta is None:
            return None

        content = await self.load_file_content(meta.id)
        if not content:
            return None

        # No await between reading and storing the counter
        current = self._sequential_counters.get(path, 0)
        line = content[current % len(content)]
        self._sequential_counters[path] = current + 1

        try:
            await self._commit()
        except StorageError:
            if self._sequential_counters.get(path) == current + 1:
                self._sequential_counters[path] = current
            raise
        return line

    async def reset_sequential_counter(self, path: str | None = None) -> None:
        """Reset the cursor for *path*, or every cursor when no path is given."""
        path = normalize_fragment_path(path or "")
        if path:
            self._sequential_counters.pop(path, None)
            logger.debug(f"Reset sequential counter: {path}")
        else:
            self._sequential_counters.clear()
            logger.debug("Reset all sequential counters")
        await self._commit()

    # ------------------------------------------------------------------
    # File management
    # ------------------------------------------------------------------

    async def add_file(
        self,
        name: str,
        folder: str = "",
        content: list[str] | None = None,
    ) -> FragmentFile:
        """Create a new fragment file.

        Args:
            name: File name used in references
            folder: Folder path (empty for the root)
            content: Initial lines

        Returns:
            The created file with its content
        """
        content = list(content or [])
        now = time.time()
        meta = FragmentFileMeta(
            id=uuid.uuid4().hex,
            name=name.strip(),
            folder=normalize_fragment_path(folder),
            line_count=len(content),
            created_at=now,
            updated_at=now,
        )

        await self._save_content(meta.id, content)
        self._files.append(meta)
        await self._commit()

        logger.info(f"Added fragment file: {meta.path} ({meta.line_count} lines)")
        return FragmentFile(**meta.model_dump(), content=content)

    async def update_file(
        self,
        file_id: str,
        *,
        name: str | None = None,
        folder: str | None = None,
        content: list[str] | None = None,
    ) -> FragmentFileMeta | None:
        """Rename, move, or replace the content of a fragment file.

        Args:
            file_id: Fragment file id
            name: New name, or None to keep
            folder: New folder, or None to keep
            content: New lines, or None to keep

        Returns:
            Updated metadata, or None if the file does not exist
        """
        if self._find(file_id) is None:
            logger.warning(f"Cannot update unknown fragment file: {file_id}")
            return None

        updates: dict = {"updated_at": time.time()}
        if content is not None:
            content = list(content)
            await self._save_content(file_id, content)
            updates["line_count"] = len(content)
        if name is not None:
            updates["name"] = name.strip()
        if folder is not None:
            updates["folder"] = normalize_fragment_path(folder)

        # The file may have been deleted while the content was being written
        for index, meta in enumerate(self._files):
            if meta.id == file_id:
                updated = meta.model_copy(update=updates)
                self._files[index] = updated
                await self._commit()
                logger.info(f"Updated fragment file: {updated.path}")
                return updated
        return None

    async def delete_file(self, file_id: str) -> bool:
        """Delete a fragment file and its content.

        Returns:
            True if deleted, False if the file does not exist
        """
        meta = self._find(file_id)
        if meta is None:
            logger.debug(f"Fragment file not found: {file_id}")
            return False

        await self._content_storage.remove_item(file_id)
        self._content_cache.pop(file_id, None)
        self._files = [f for f in self._files if f.id != file_id]
        await self._commit()

        logger.info(f"Deleted fragment file: {meta.path}")
        return True

    async def duplicate_file(self, file_id: str) -> FragmentFile | None:
        """Copy a fragment file into the same folder with a ``_copy`` suffix.

        Returns:
            The new file, or None if the source does not exist
        """
        meta = self._find(file_id)
        if meta is None:
            return None

        content = await self.load_file_content(file_id)
        return await self.add_file(f"{meta.name}_copy", meta.folder, list(content))

    async def import_from_text(self, name: str, text: str, folder: str = "") -> FragmentFile:
        """Create a fragment file from raw text (one option per line).

        Blank lines and lines starting with ``#`` are skipped.
        """
        return await self.add_file(name, folder, parse_fragment_text(text))

    async def import_directory(self, directory: Path) -> list[FragmentFile]:
        """Import every ``.txt`` file below *directory* as a fragment file.

        The file stem becomes the fragment name and the relative parent
        directory becomes its folder::

            wildcards/
            ├── hair.txt             -> <hair>
            └── styles/
                └── anime.txt        -> <styles/anime>

        Args:
            directory: Root directory to scan recursively

        Returns:
            The imported files, in path order
        """
        directory = Path(directory)
        if not directory.exists():
            logger.warning(f"Import directory does not exist: {directory}")
            return []

        imported: list[FragmentFile] = []
        for txt_file in sorted(directory.rglob("*.txt")):
            relative_path = txt_file.relative_to(directory)
            folder = relative_path.parent.as_posix() if relative_path.parent != Path(".") else ""

            try:
                text = await asyncio.to_thread(txt_file.read_text, encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Error reading file {txt_file}: {e}")
                continue

            imported.append(await self.import_from_text(txt_file.stem, text, folder))

        logger.info(f"Imported {len(imported)} fragment files from {directory}")
        return imported

    async def export_to_text(self, file_id: str) -> str | None:
        """Return the file's lines joined by newlines, or None if empty/unknown."""
        if self._find(file_id) is None:
            return None
        content = await self.load_file_content(file_id)
        if not content:
            return None
        return "\n".join(content)

    async def clear_all(self) -> None:
        """Delete every fragment file, content blob and counter."""
        await self._content_storage.clear()
        self._content_cache.clear()
        self._files = []
        self._sequential_counters = {}
        self._migrated = True
        self._initialized = True
        await self._commit()
        logger.info("Cleared all fragment data")
