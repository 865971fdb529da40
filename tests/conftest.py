"""Shared pytest fixtures for promptwild tests."""

import asyncio
import random
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from promptwild.core.config import PromptwildConfig
from promptwild.core.fragment_processor import FragmentProcessor
from promptwild.core.fragment_store import FragmentStore
from promptwild.core.storage import MemoryKeyValueStorage


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> PromptwildConfig:
    """Create a test configuration with temporary directories.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        PromptwildConfig instance for testing
    """
    data_dir = temp_dir / "data"

    return PromptwildConfig(
        data_dir=str(data_dir),
        fragments_db=str(data_dir / "fragments.db"),
        max_expansion_depth=8,
        content_cache_size=4,
        _env_file=None,
    )


@pytest.fixture
def empty_store() -> FragmentStore:
    """Create a loaded, empty in-memory fragment store.

    Returns:
        FragmentStore backed by MemoryKeyValueStorage
    """
    return asyncio.run(
        FragmentStore.open(
            MemoryKeyValueStorage(),
            MemoryKeyValueStorage(),
            rng=random.Random(1234),
        )
    )


@pytest.fixture
def fragment_store(empty_store: FragmentStore) -> FragmentStore:
    """Create an in-memory fragment store with sample files.

    Files:
        hair          a, b, c
        colors        red, blue
        styles/anime  cel shading, flat colors
        outfit        <colors> dress
        empty         (no lines)

    Returns:
        Populated FragmentStore
    """

    async def populate() -> None:
        await empty_store.add_file("hair", content=["a", "b", "c"])
        await empty_store.add_file("colors", content=["red", "blue"])
        await empty_store.add_file("anime", folder="styles", content=["cel shading", "flat colors"])
        await empty_store.add_file("outfit", content=["<colors> dress"])
        await empty_store.add_file("empty")

    asyncio.run(populate())
    return empty_store


@pytest.fixture
def processor(fragment_store: FragmentStore) -> FragmentProcessor:
    """Create a FragmentProcessor over the sample fragment store."""
    return FragmentProcessor(fragment_store, rng=random.Random(42))


@pytest.fixture
def test_fragments_dir(temp_dir: Path) -> Path:
    """Create a directory of .txt fragment files for import tests.

    Returns:
        Path to the directory
    """
    fragments_dir = temp_dir / "wildcards"
    fragments_dir.mkdir()

    (fragments_dir / "hair.txt").write_text(
        "# hair styles\nlong hair\n\nshort hair\n  twintails  \n", encoding="utf-8"
    )

    styles = fragments_dir / "styles"
    styles.mkdir()
    (styles / "anime.txt").write_text("cel shading\nflat colors\n", encoding="utf-8")

    deep = styles / "deep"
    deep.mkdir()
    (deep / "ink.txt").write_text("sumi-e\n", encoding="utf-8")

    # Not a fragment file
    (fragments_dir / "notes.md").write_text("ignore me\n", encoding="utf-8")

    return fragments_dir
