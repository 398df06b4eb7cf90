import os
import fnmatch
import logging
from typing import Iterator, Optional

from ..models import FileRecord

def make_identity(path: str) -> str:
    """Canonical absolute form of `path`; the catalog's primary key."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))

def file_extension(path: str) -> str:
    return os.path.splitext(path)[1].lstrip(".").lower()

def matches_filter(name: str, pattern: Optional[str]) -> bool:
    """Shell-style, case-sensitive match against a base name. No pattern matches everything."""
    if not pattern:
        return True
    return fnmatch.fnmatchcase(name, pattern)

def build_record(path: str, stat_result: os.stat_result) -> FileRecord:
    identity = make_identity(path)
    return FileRecord(
        identity=identity,
        path=identity,
        extension=file_extension(identity),
        size=stat_result.st_size,
        mod_time=int(stat_result.st_mtime),
    )

def iter_files(root: str, recursive: bool = True) -> Iterator[os.DirEntry]:
    """
    Depth-first walker using os.scandir for speed.
    Unreadable directories are logged and skipped; symlinks are not followed.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            logging.warning(f"Cannot read directory {current}: {e}")
            continue

        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name.lower())

        dirs = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    dirs.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    yield entry
            except OSError as e:
                logging.warning(f"Cannot access {entry.path}: {e}")

        if recursive:
            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)
