"""Locate a build definition file inside a source tree.

``locate`` is a breadth-first search that stops at the shallowest directory
level containing a match, because Dockerfiles and task YAML files usually
live near the repository root. ``find_matching_files`` is the exhaustive,
symlink-following walk used as a fallback when the breadth-first search
comes back empty.
"""

import fnmatch
import logging
import os
from collections import deque
from pathlib import Path
from typing import Deque, Iterator, List, Optional, Set, Union

from ..errors import BuildFileNotFoundError
from .error_handling import handle_filesystem_errors

logger = logging.getLogger(__name__)

GLOB_METACHARACTERS = ("*", "?")

PathLike = Union[str, Path]


def is_pattern(value: str) -> bool:
    """True when ``value`` contains a glob wildcard."""
    return any(char in value for char in GLOB_METACHARACTERS)


def _matches(candidate: Path, pattern: str, root: Path) -> bool:
    """Match a file against ``pattern``.

    Patterns without a separator match the base name only. A leading ``**/``
    matches zero or more directories, so it is dropped before deciding.
    """
    if pattern.startswith("./"):
        pattern = pattern[2:]
    if pattern.startswith("**/"):
        pattern = pattern[3:]
    if "/" not in pattern:
        return fnmatch.fnmatchcase(candidate.name, pattern)
    if os.path.isabs(pattern):
        return fnmatch.fnmatchcase(candidate.as_posix(), pattern)
    return fnmatch.fnmatchcase(candidate.relative_to(root).as_posix(), pattern)


@handle_filesystem_errors("validate search root")
def _root_exists(root: Path) -> bool:
    """False when root is missing; raises when it exists but is not a directory."""
    if not root.exists():
        return False
    if not root.is_dir():
        raise NotADirectoryError(f"The specified working directory is not a valid directory: {root}")
    return True


def locate(root_dir: PathLike, pattern: str) -> Optional[Union[str, Path]]:
    """Return the first file matching ``pattern`` at the shallowest depth.

    A pattern without wildcards is returned unchanged without touching the
    filesystem. Siblings are visited in sorted name order so repeated calls
    on an unchanged tree return the same file. Symlinks are not followed.

    Returns:
        The matching path, or None when nothing matched or root is absent.

    Raises:
        NotADirectoryError: root exists but is not a directory
    """
    if not is_pattern(pattern):
        logger.debug(f"No wildcard in '{pattern}', using it as a literal path")
        return pattern

    root = Path(os.path.normpath(root_dir))
    if not _root_exists(root):
        logger.debug(f"Search root {root} does not exist")
        return None

    worklist: Deque[Path] = deque([root])
    while worklist:
        current = worklist.popleft()
        candidates: List[Path] = []

        with os.scandir(current) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.is_dir(follow_symlinks=False):
                    worklist.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    candidates.append(Path(entry.path))

        for candidate in candidates:
            if _matches(candidate, pattern, root):
                logger.debug(f"Found matching file: {candidate}")
                return candidate

    return None


def _walk_following_links(root: Path) -> Iterator[Path]:
    """Depth-first walk yielding files, following symlinks once per real dir."""
    visited: Set[str] = set()
    stack: List[Path] = [root]

    while stack:
        current = stack.pop()
        real = os.path.realpath(current)
        if real in visited:
            continue
        visited.add(real)

        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {current}: {e}")
            continue

        subdirs = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=True):
                subdirs.append(Path(entry.path))
            elif entry.is_file(follow_symlinks=True):
                yield Path(entry.path)

        # Reversed so the alphabetically first subdirectory is walked first
        stack.extend(reversed(subdirs))


def find_matching_files(root_dir: PathLike, pattern: str) -> List[Path]:
    """Exhaustively list every file under ``root_dir`` matching ``pattern``."""
    root = Path(os.path.normpath(root_dir))
    if not root.is_dir():
        return []
    return [path for path in _walk_following_links(root) if _matches(path, pattern, root)]


def find_build_file(pattern: str, root_dir: PathLike) -> Union[str, Path]:
    """Resolve a Dockerfile or task YAML path, searching when it is a pattern.

    Falls back to the exhaustive matcher when the breadth-first search finds
    nothing, e.g. when the only match sits behind a symlinked directory.

    Raises:
        BuildFileNotFoundError: neither search matched
    """
    found = locate(root_dir, pattern)
    if found is not None:
        return found

    logger.debug(f"Breadth-first search found no '{pattern}', trying exhaustive search")
    matches = find_matching_files(root_dir, pattern)
    if not matches:
        raise BuildFileNotFoundError(pattern, str(root_dir))
    return matches[0]
