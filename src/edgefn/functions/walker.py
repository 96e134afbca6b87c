"""
Import graph traversal.

Enumerates every local source file reachable from an entrypoint through
static ``import ... from "x"`` and dynamic ``import("x")`` specifiers.
"""

import logging
import posixpath
import re
from collections import deque
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

from .import_map import ImportMap

log = logging.getLogger(__name__)

# Ref: https://regex101.com/r/DfBdJA/1
IMPORT_PATH_PATTERN = re.compile(
    r"""import\s+(?:{[^{}]+}|.*?)\s*(?:from)?\s*['"](.*?)['"]|import\(\s*['"](.*?)['"]\)""",
    re.IGNORECASE,
)

ReadFile = Callable[[str], bytes]


def read_from(root: Path) -> ReadFile:
    """Content accessor resolving slash-separated paths against ``root``."""

    def read(path: str) -> bytes:
        return (Path(root) / Path(path)).read_bytes()

    return read


def find_specifiers(source: str) -> Iterator[str]:
    for match in IMPORT_PATH_PATTERN.finditer(source):
        mod = match.group(1) or match.group(2) or ""
        mod = mod.strip()
        if mod:
            yield mod


def resolve_specifier(
    specifier: str, current: str, import_map: ImportMap
) -> Optional[str]:
    """Resolve a specifier found in ``current`` to a local path.

    Returns None for bare module names and remote URLs, which the bundler
    fetches on its own.
    """
    mod = import_map.resolve(specifier)
    if mod.startswith("./") or mod.startswith("../"):
        return posixpath.normpath(posixpath.join(posixpath.dirname(current), mod))
    if mod.startswith("/"):
        return mod
    return None


def iter_import_paths(
    entrypoint: str, import_map: ImportMap, read_file: ReadFile
) -> Iterator[Tuple[str, bytes]]:
    """Yield ``(path, content)`` for every reachable file, each exactly once.

    Traversal is breadth first over a FIFO work list; the ``queued`` set keeps
    a path from entering the work list twice, so cycles terminate. Files that
    do not exist are logged and skipped.
    """
    queue = deque([entrypoint])
    queued = {entrypoint}
    while queue:
        curr = queue.popleft()
        try:
            data = read_file(curr)
        except FileNotFoundError:
            log.warning(f"Skipping import that does not exist: {curr}")
            continue
        yield curr, data

        # Traverse all modules imported by the current source file
        for specifier in find_specifiers(data.decode("utf-8", errors="replace")):
            mod = resolve_specifier(specifier, curr, import_map)
            if mod is None or mod in queued:
                continue
            queued.add(mod)
            queue.append(mod)


def walk_import_paths(
    entrypoint: str,
    import_map: ImportMap,
    read_file: ReadFile,
    callback: Callable[[str, bytes], None],
) -> None:
    """Invoke ``callback(path, content)`` for each file in the import graph."""
    for path, data in iter_import_paths(entrypoint, import_map, read_file):
        callback(path, data)
