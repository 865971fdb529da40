"""Pydantic models for fragment files.

A fragment file is split in two: the metadata (:class:`FragmentFileMeta`)
is small and kept in memory for path lookups, while the line content is
stored separately under the file's ``id`` and only loaded on demand.
:class:`FragmentFile` combines both for editors and API responses.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FragmentFileMeta(BaseModel):
    """Metadata for one fragment file (content excluded).

    Attributes:
        id: Generated identifier; also the content storage key.
        name: File name used in references (no extension).
        folder: Folder path, ``""`` for the root.
        line_count: Number of content lines (for display).
        created_at: Creation time, epoch seconds.
        updated_at: Last modification time, epoch seconds.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    folder: str = ""
    line_count: int = Field(default=0, ge=0)
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def path(self) -> str:
        """Reference path: ``folder/name`` or just ``name`` at the root."""
        return f"{self.folder}/{self.name}" if self.folder else self.name


class FragmentFile(FragmentFileMeta):
    """Fragment file metadata together with its lines."""

    content: list[str] = Field(default_factory=list)
