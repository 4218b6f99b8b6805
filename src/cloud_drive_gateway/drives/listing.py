"""Helpers for building listings on top of a drive's one-level listing call."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from cloud_drive_gateway.drives.models import File, RecursiveFile

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

FileT = TypeVar("FileT", bound=File)


def unique_by_location(files: Iterable[FileT]) -> list[FileT]:
    """Drop repeated entries, keeping the first occurrence of each location."""
    seen: set[str] = set()
    unique: list[FileT] = []
    for file in files:
        if file.location in seen:
            continue
        seen.add(file.location)
        unique.append(file)
    return unique


async def walk_recursive(
    list_children: Callable[[str], Awaitable[list[File]]],
    folder_id: str,
    *,
    max_concurrency: int | None = None,
) -> list[RecursiveFile]:
    """Collect every file below *folder_id*, one listing call per folder.

    Sub-folders of the same level are listed concurrently.  A folder whose
    listing fails (``list_children`` returns ``[]``) contributes nothing, and
    its siblings are unaffected.  Folders reachable twice are walked once.
    If a listing raises, the error propagates only after every sibling
    branch has finished.

    Parameters
    ----------
    list_children:
        Coroutine function returning the immediate children of a folder.
    folder_id:
        Identifier of the folder to start from.
    max_concurrency:
        Upper bound on listing calls in flight.  ``None`` or ``0`` means
        unbounded.
    """
    semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None
    visited: set[str] = {folder_id}

    async def list_level(parent: str) -> list[File]:
        if semaphore is None:
            return await list_children(parent)
        async with semaphore:
            return await list_children(parent)

    async def walk(parent: str) -> list[RecursiveFile]:
        children = await list_level(parent)
        leaves = [
            RecursiveFile.from_file(child, parent)
            for child in children
            if not child.is_folder
        ]

        folders: list[str] = []
        for child in children:
            if child.is_folder and child.location not in visited:
                visited.add(child.location)
                folders.append(child.location)

        # Every branch settles before an error propagates.
        branches = await asyncio.gather(
            *(walk(folder) for folder in folders), return_exceptions=True
        )
        for branch in branches:
            if isinstance(branch, BaseException):
                raise branch
        for branch in branches:
            leaves.extend(branch)
        return leaves

    files = unique_by_location(await walk(folder_id))
    logger.debug("Recursive walk of %s found %d file(s)", folder_id, len(files))
    return files
