from __future__ import annotations

import os
from pathlib import Path

import pytest

from hardlinkfs.core.path_safety import PathSafetyError, resolve_under_root, to_logical_path, validate_logical_path


@pytest.mark.parametrize(
    "raw_path",
    [
        "../evil.bin",
        "/nested/../../escape.bin",
        "bad\x00name.bin",
        "",
        "   ",
    ],
)
def test_validate_logical_path_rejects_unsafe_input(raw_path: str) -> None:
    with pytest.raises(PathSafetyError):
        validate_logical_path(raw_path)


def test_validate_logical_path_accepts_slash_prefixed_and_relative_paths() -> None:
    assert validate_logical_path("/media/photo.jpg").as_posix() == "media/photo.jpg"
    assert validate_logical_path("media/photo.jpg").as_posix() == "media/photo.jpg"
    assert validate_logical_path("/media/..hidden").as_posix() == "media/..hidden"
    assert validate_logical_path("/backup~/Song $5.bin").as_posix() == "backup~/Song $5.bin"
    assert validate_logical_path("~/$HOME").as_posix() == "~/$HOME"


def test_resolve_under_root_requires_strict_descendant(tmp_path: Path) -> None:
    root = tmp_path / "data"
    root.mkdir()

    assert resolve_under_root(root, "/a/b.bin") == root.resolve() / "a" / "b.bin"
    with pytest.raises(PathSafetyError):
        resolve_under_root(root, "/")
    with pytest.raises(PathSafetyError):
        resolve_under_root(root, "/./")


def test_resolve_under_root_catches_symlinked_parent_escape(tmp_path: Path) -> None:
    root = tmp_path / "data"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    os.symlink(outside, root / "jump")

    with pytest.raises(PathSafetyError):
        resolve_under_root(root, "/jump/secret.bin")


def test_resolve_under_root_keeps_final_symlink_unresolved(tmp_path: Path) -> None:
    root = tmp_path / "data"
    root.mkdir()
    (root / "target.bin").write_bytes(b"x")
    os.symlink(root / "target.bin", root / "alias.bin")

    assert resolve_under_root(root, "/alias.bin") == root.resolve() / "alias.bin"


def test_to_logical_path_is_root_relative_with_leading_slash(tmp_path: Path) -> None:
    root = tmp_path / "data"

    assert to_logical_path(root, root / "x" / "a.bin") == "/x/a.bin"
    assert to_logical_path(root, (root / "..foo").as_posix()) == "/..foo"
    assert to_logical_path(root, tmp_path / "elsewhere.bin") == (tmp_path / "elsewhere.bin").as_posix()
