"""promptwild — FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~promptwild.core.config.config`
  (``PROMPTWILD_*`` environment variables).
- **Fragment persistence** uses one SQLite database with two tables:
  store state (metadata and sequential counters) and fragment content.
- **Expansion** is performed by a :class:`FragmentProcessor` bound to the
  application's :class:`FragmentStore`.

Endpoints
---------
========  ==================================  ================================
Method    Path                                Purpose
========  ==================================  ================================
POST      ``/api/expand``                     Expand a prompt (1–100 times)
POST      ``/api/expand/check``               Dry check for choice points
POST      ``/api/fragments/counters/reset``   Reset sequential counters
GET       ``/api/fragments``                  List fragment files
DELETE    ``/api/fragments``                  Delete all fragment data
POST      ``/api/fragments``                  Create a fragment file
GET       ``/api/fragments/folders``          List folders
POST      ``/api/fragments/import``           Create a file from raw text
GET       ``/api/fragments/{id}``             File with content
PATCH     ``/api/fragments/{id}``             Rename / move / edit
DELETE    ``/api/fragments/{id}``             Delete a file
POST      ``/api/fragments/{id}/duplicate``   Duplicate a file
GET       ``/api/fragments/{id}/export``      Plain-text export
========  ==================================  ================================

Usage
-----
CLI (installed entry point)::

    promptwild

Direct invocation::

    python -m promptwild.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from promptwild import __version__
from promptwild.api.models import (
    CheckRequest,
    ExpandRequest,
    FragmentCreateRequest,
    FragmentImportRequest,
    FragmentUpdateRequest,
    ResetCountersRequest,
)
from promptwild.core.config import PromptwildConfig, config
from promptwild.core.fragment_processor import FragmentProcessor
from promptwild.core.fragment_store import FragmentStore
from promptwild.core.models import FragmentFileMeta
from promptwild.core.storage import SQLiteKeyValueStorage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _store(request: Request) -> FragmentStore:
    return request.app.state.fragment_store


def _processor(request: Request) -> FragmentProcessor:
    return request.app.state.fragment_processor


def _serialize(meta: FragmentFileMeta) -> dict:
    """Dump a fragment model and add its reference path."""
    data = meta.model_dump()
    data["path"] = meta.path
    return data


# ---------------------------------------------------------------------------
# Expansion routes.
# ---------------------------------------------------------------------------


@router.post("/expand")
async def expand_prompt(req: ExpandRequest, request: Request) -> dict:
    """Expand every choice point in a prompt.

    Args:
        req: Validated :class:`ExpandRequest` payload.

    Returns:
        Dictionary with ``prompt``, ``has_choice_points`` and ``expanded``
        (list of ``count`` expanded prompts).
    """
    processor = _processor(request)
    expanded = await processor.expand_batch(req.prompt, req.count)
    return {
        "prompt": req.prompt,
        "has_choice_points": processor.has_choice_points(req.prompt),
        "expanded": expanded,
    }


@router.post("/expand/check")
async def check_prompt(req: CheckRequest, request: Request) -> dict:
    """Report whether a prompt contains anything to expand, without drawing."""
    return {"has_choice_points": _processor(request).has_choice_points(req.prompt)}


@router.post("/fragments/counters/reset")
async def reset_counters(req: ResetCountersRequest, request: Request) -> dict:
    """Reset one sequential counter, or all of them when ``path`` is null."""
    await _processor(request).reset_sequential_counters(req.path)
    return {"success": True, "path": req.path}


# ---------------------------------------------------------------------------
# Fragment file routes.
# ---------------------------------------------------------------------------


@router.get("/fragments")
async def list_fragments(request: Request, folder: str | None = None) -> dict:
    """List fragment files, optionally only those directly in ``folder``."""
    store = _store(request)
    files = store.files if folder is None else store.get_files_in_folder(folder)
    return {"total": len(files), "files": [_serialize(f) for f in files]}


@router.delete("/fragments")
async def clear_fragments(request: Request) -> dict:
    """Delete every fragment file, its content and all counters."""
    await _store(request).clear_all()
    return {"success": True}


@router.post("/fragments")
async def create_fragment(req: FragmentCreateRequest, request: Request) -> dict:
    """Create a fragment file from a list of lines."""
    created = await _store(request).add_file(req.name, req.folder, req.content)
    return _serialize(created)


@router.get("/fragments/folders")
async def list_folders(request: Request) -> dict:
    return {"folders": _store(request).get_folders()}


@router.post("/fragments/import")
async def import_fragment(req: FragmentImportRequest, request: Request) -> dict:
    """Create a fragment file from raw text, skipping blanks and comments."""
    created = await _store(request).import_from_text(req.name, req.text, req.folder)
    return _serialize(created)


@router.get("/fragments/{file_id}")
async def get_fragment(file_id: str, request: Request) -> dict:
    """Return a fragment file with its content.

    Raises:
        HTTPException: 404 if the file is not found.
    """
    file = await _store(request).get_file_with_content(file_id)
    if file is None:
        raise HTTPException(status_code=404, detail="Fragment not found")
    return _serialize(file)


@router.patch("/fragments/{file_id}")
async def update_fragment(file_id: str, req: FragmentUpdateRequest, request: Request) -> dict:
    """Rename, move, or replace the content of a fragment file.

    Raises:
        HTTPException: 404 if the file is not found.
    """
    updated = await _store(request).update_file(
        file_id,
        name=req.name,
        folder=req.folder,
        content=req.content,
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="Fragment not found")
    return _serialize(updated)


@router.delete("/fragments/{file_id}")
async def delete_fragment(file_id: str, request: Request) -> dict:
    """Delete a fragment file.

    Raises:
        HTTPException: 404 if the file is not found.
    """
    if not await _store(request).delete_file(file_id):
        raise HTTPException(status_code=404, detail="Fragment not found")
    return {"success": True, "deleted": file_id}


@router.post("/fragments/{file_id}/duplicate")
async def duplicate_fragment(file_id: str, request: Request) -> dict:
    """Copy a fragment file into the same folder with a ``_copy`` suffix.

    Raises:
        HTTPException: 404 if the file is not found.
    """
    duplicate = await _store(request).duplicate_file(file_id)
    if duplicate is None:
        raise HTTPException(status_code=404, detail="Fragment not found")
    return _serialize(duplicate)


@router.get("/fragments/{file_id}/export", response_class=PlainTextResponse)
async def export_fragment(file_id: str, request: Request) -> PlainTextResponse:
    """Export a fragment file as text, one line per option.

    Raises:
        HTTPException: 404 if the file is unknown or has no lines.
    """
    text = await _store(request).export_to_text(file_id)
    if text is None:
        raise HTTPException(status_code=404, detail="Fragment not found or empty")
    return PlainTextResponse(text)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(settings: PromptwildConfig | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration to use; defaults to the global ``config``.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the fragment store on startup.

        Both storage tables live in ``settings.fragments_db``. The store is
        loaded before the first request so that path lookups see every file.
        """
        state_storage = SQLiteKeyValueStorage(settings.fragments_db, table="store_state")
        content_storage = SQLiteKeyValueStorage(settings.fragments_db, table="fragment_contents")
        store = await FragmentStore.open(
            state_storage,
            content_storage,
            cache_size=settings.content_cache_size,
        )
        app.state.fragment_store = store
        app.state.fragment_processor = FragmentProcessor(
            store,
            max_depth=settings.max_expansion_depth,
        )
        logger.info(f"Fragment store ready ({len(store.files)} files).")

        yield

        logger.info("Shutting down.")

    app = FastAPI(
        title="promptwild",
        description="Prompt wildcard expansion and fragment file management.",
        version=__version__,
        lifespan=lifespan,
    )

    # Allow cross-origin requests so a desktop/web frontend on another port
    # can call the API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(f"Storage failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": f"Storage error: {exc}"})

    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~promptwild.core.config.config`
    (``PROMPTWILD_SERVER_HOST``, ``PROMPTWILD_SERVER_PORT``,
    ``PROMPTWILD_LOG_LEVEL``).

    This function is registered as the ``promptwild`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        "promptwild.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
