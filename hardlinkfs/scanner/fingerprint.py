"""Content fingerprints and byte-identity verification.

Files at or below ``FULL_HASH_THRESHOLD`` are hashed end to end. Larger
files are hashed over a head window, a tail window (only when the file is
more than two windows long) and a ``SIZE:<n>`` tag. For those large files a
matching fingerprint is a strong filter, not a proof: ``verify_identical``
compares fingerprints instead of every byte, so identity above the threshold
rests on xxh64 collision resistance over the sampled regions.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO

import xxhash

from hardlinkfs.core.config import Settings

FULL_HASH_THRESHOLD = 100 * 1024 * 1024
EDGE_WINDOW = 256 * 1024
CHUNK_SIZE = 64 * 1024


def empty_fingerprint() -> str:
    return xxhash.xxh64().hexdigest()


def _read_up_to(handle: BinaryIO, limit: int, chunk_size: int, hasher: xxhash.xxh64) -> None:
    remaining = limit
    while remaining > 0:
        chunk = handle.read(min(chunk_size, remaining))
        if not chunk:
            break
        hasher.update(chunk)
        remaining -= len(chunk)


def compute_fingerprint(
    path: str | Path,
    *,
    threshold: int = FULL_HASH_THRESHOLD,
    window: int = EDGE_WINDOW,
    chunk_size: int = CHUNK_SIZE,
) -> str:
    """Return the 16-character lowercase hex fingerprint of ``path``.

    Raises ``OSError`` when the file cannot be opened, stat'ed, read or
    seeked. A short read at end of stream is not an error.
    """
    hasher = xxhash.xxh64()
    with open(path, "rb") as handle:
        size = os.fstat(handle.fileno()).st_size
        if size == 0:
            return hasher.hexdigest()

        if size <= threshold:
            for chunk in iter(lambda: handle.read(chunk_size), b""):
                hasher.update(chunk)
            return hasher.hexdigest()

        _read_up_to(handle, window, chunk_size, hasher)
        if size > 2 * window:
            handle.seek(-window, os.SEEK_END)
            _read_up_to(handle, window, chunk_size, hasher)
        hasher.update(f"SIZE:{size}".encode("ascii"))
    return hasher.hexdigest()


def _compare_full(path_a: str | Path, path_b: str | Path, chunk_size: int) -> bool:
    with open(path_a, "rb") as left, open(path_b, "rb") as right:
        while True:
            chunk_a = left.read(chunk_size)
            chunk_b = right.read(chunk_size)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True


def verify_identical(
    path_a: str | Path,
    path_b: str | Path,
    *,
    threshold: int = FULL_HASH_THRESHOLD,
    window: int = EDGE_WINDOW,
    chunk_size: int = CHUNK_SIZE,
) -> bool:
    """Decide whether two files hold the same bytes.

    This is the gate for every destructive conversion. Same inode is
    trivially identical; a size mismatch is not. Files up to ``threshold``
    are compared chunk by chunk, larger ones by fingerprint.
    """
    stat_a = os.stat(path_a)
    stat_b = os.stat(path_b)

    if stat_a.st_ino == stat_b.st_ino and stat_a.st_dev == stat_b.st_dev:
        return True
    if stat_a.st_size != stat_b.st_size:
        return False

    if stat_a.st_size <= threshold:
        return _compare_full(path_a, path_b, chunk_size)

    fingerprint_a = compute_fingerprint(path_a, threshold=threshold, window=window, chunk_size=chunk_size)
    fingerprint_b = compute_fingerprint(path_b, threshold=threshold, window=window, chunk_size=chunk_size)
    return fingerprint_a == fingerprint_b


class Fingerprinter:
    """Settings-bound facade over :func:`compute_fingerprint` and :func:`verify_identical`."""

    def __init__(self, *, threshold: int = FULL_HASH_THRESHOLD, window: int = EDGE_WINDOW, chunk_size: int = CHUNK_SIZE):
        self.threshold = threshold
        self.window = window
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "Fingerprinter":
        return cls(
            threshold=int(settings.fingerprint_full_threshold_bytes),
            window=int(settings.fingerprint_window_bytes),
            chunk_size=int(settings.fingerprint_chunk_bytes),
        )

    def fingerprint(self, path: str | Path) -> str:
        return compute_fingerprint(path, threshold=self.threshold, window=self.window, chunk_size=self.chunk_size)

    def verify(self, path_a: str | Path, path_b: str | Path) -> bool:
        return verify_identical(path_a, path_b, threshold=self.threshold, window=self.window, chunk_size=self.chunk_size)
