"""Directory walking and text decoding shared by indexing and tools."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator
from pathlib import Path


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    return frozenset(
        ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions
    )


def iter_source_files(
    root: Path,
    included_extensions: Iterable[str],
    excluded_dirs: Iterable[str],
) -> Iterator[Path]:
    """Yield matching files under `root` in a deterministic scan order.

    Directories whose name is in `excluded_dirs` are pruned at any depth.
    Directory and file names are visited in sorted order so repeated builds
    produce identical indexes.
    """

    extensions = normalize_extensions(included_extensions)
    excluded = frozenset(excluded_dirs)
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in excluded)
        for filename in sorted(filenames):
            if Path(filename).suffix.lower() in extensions:
                yield Path(current) / filename


def read_text_file(path: Path) -> str | None:
    """Return decoded UTF-8 text, or None for binary/undecodable content."""

    data = path.read_bytes()
    if b"\x00" in data:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def relative_source(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()
