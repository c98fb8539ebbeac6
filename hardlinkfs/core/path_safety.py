from __future__ import annotations

import os
from pathlib import Path, PurePosixPath


class PathSafetyError(ValueError):
    pass


def validate_logical_path(raw_path: str) -> PurePosixPath:
    """Validate a root-relative logical path such as ``/movies/a.mkv``.

    The leading slash is optional. Traversal segments and NUL bytes are
    rejected before anything touches the disk; every other character is part
    of a file name.
    """
    if not raw_path or not raw_path.strip():
        raise PathSafetyError("Path cannot be blank")
    if "\x00" in raw_path:
        raise PathSafetyError("Path contains a NUL byte")
    rel = PurePosixPath(raw_path.lstrip("/"))
    if ".." in rel.parts:
        raise PathSafetyError("Path traversal is not allowed")
    return rel


def resolve_under_root(data_root: Path, raw_path: str) -> Path:
    """Resolve a logical path to an absolute path that is a strict descendant of ``data_root``.

    Symlinked parent directories are followed, so a link pointing outside the
    root is caught as well. The final component is not dereferenced: a
    symlink named by the caller stays a symlink and is rejected later by the
    regular-file checks.
    """
    rel = validate_logical_path(raw_path)
    root = data_root.resolve(strict=False)
    if not rel.parts:
        raise PathSafetyError("Path must name an entry below the storage root")

    joined = root.joinpath(*rel.parts)
    candidate = joined.parent.resolve(strict=False) / joined.name

    if root in candidate.parents:
        return candidate

    raise PathSafetyError("Path escapes storage root")


def to_logical_path(data_root: Path, absolute_path: str | Path) -> str:
    relative = os.path.relpath(os.fspath(absolute_path), os.fspath(data_root))
    if relative in {".", ".."} or relative.startswith("../"):
        return os.fspath(absolute_path)
    return "/" + PurePosixPath(Path(relative).as_posix()).as_posix()
