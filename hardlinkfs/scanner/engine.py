from __future__ import annotations

import logging
import os
from collections import defaultdict
from pathlib import Path
from typing import Protocol

from hardlinkfs.core.config import Settings
from hardlinkfs.core.path_safety import to_logical_path
from hardlinkfs.scanner.fingerprint import Fingerprinter
from hardlinkfs.scanner.types import DuplicateGroup, FileIdentity

logger = logging.getLogger(__name__)


class ScanRootError(RuntimeError):
    pass


class ScanProgressSink(Protocol):
    def report_total(self, total_files: int) -> None: ...

    def report_processed(self, processed: int, groups_found: int) -> None: ...


class _NullSink:
    def report_total(self, total_files: int) -> None:
        return

    def report_processed(self, processed: int, groups_found: int) -> None:
        return


class ScanEngine:
    """Two-phase duplicate detection over one storage root.

    Phase 1 buckets every regular file by size. Phase 2 fingerprints each
    bucket holding two or more paths, then splits every fingerprint bucket by
    the file's current ``(inode, device)``. Only buckets spanning at least two
    distinct inodes become a :class:`DuplicateGroup`.
    """

    def __init__(self, settings: Settings, fingerprinter: Fingerprinter | None = None):
        self._settings = settings
        self._root = Path(settings.data_root)
        self._skip_names = frozenset(settings.scan_skip_dir_names)
        self._total_interval = int(settings.scan_total_progress_interval)
        self._processed_interval = int(settings.scan_processed_progress_interval)
        self._fingerprinter = fingerprinter or Fingerprinter.from_settings(settings)

    @property
    def root(self) -> Path:
        return self._root

    def run(self, sink: ScanProgressSink | None = None) -> list[DuplicateGroup]:
        progress = sink or _NullSink()
        size_map = self.enumerate(progress)
        return self.cluster(size_map, progress)

    def enumerate(self, sink: ScanProgressSink | None = None) -> dict[int, list[str]]:
        progress = sink or _NullSink()
        if not self._root.is_dir():
            raise ScanRootError(f"Storage root is not a readable directory: {self._root.as_posix()}")

        size_map: dict[int, list[str]] = defaultdict(list)
        total_files = 0
        pending = [os.fspath(self._root)]

        while pending:
            directory = pending.pop()
            try:
                with os.scandir(directory) as entries:
                    for entry in entries:
                        try:
                            if entry.is_dir(follow_symlinks=False):
                                if entry.name not in self._skip_names:
                                    pending.append(entry.path)
                                continue
                            if not entry.is_file(follow_symlinks=False):
                                continue
                            size = entry.stat(follow_symlinks=False).st_size
                        except OSError as exc:
                            logger.warning("Skipping unreadable entry %s: %s", entry.path, exc)
                            continue

                        size_map[size].append(entry.path)
                        total_files += 1
                        if total_files % self._total_interval == 0:
                            progress.report_total(total_files)
            except OSError as exc:
                if directory == os.fspath(self._root):
                    raise ScanRootError(f"Failed to read storage root: {exc}") from exc
                logger.warning("Skipping unreadable directory %s: %s", directory, exc)

        progress.report_total(total_files)
        logger.info("Enumerated %d files in %d size buckets under %s", total_files, len(size_map), self._root)
        return dict(size_map)

    def cluster(self, size_map: dict[int, list[str]], sink: ScanProgressSink | None = None) -> list[DuplicateGroup]:
        progress = sink or _NullSink()
        groups: list[DuplicateGroup] = []
        processed = 0
        last_reported = 0

        for size, paths in size_map.items():
            if len(paths) < 2:
                processed += len(paths)
            else:
                by_fingerprint: dict[str, list[str]] = defaultdict(list)
                for path in paths:
                    try:
                        by_fingerprint[self._fingerprinter.fingerprint(path)].append(path)
                    except OSError as exc:
                        logger.warning("Failed to fingerprint %s: %s", path, exc)
                    processed += 1
                    if processed - last_reported >= self._processed_interval:
                        progress.report_processed(processed, len(groups))
                        last_reported = processed

                for candidates in by_fingerprint.values():
                    group = self._build_group(size, candidates)
                    if group is not None:
                        groups.append(group)

            if processed - last_reported >= self._processed_interval:
                progress.report_processed(processed, len(groups))
                last_reported = processed

        groups.sort(key=lambda item: (-item.size, item.master))
        progress.report_processed(processed, len(groups))
        return groups

    def _build_group(self, size: int, candidates: list[str]) -> DuplicateGroup | None:
        if len(candidates) < 2:
            return None

        by_inode: dict[tuple[int, int], list[str]] = defaultdict(list)
        for identity in self._identities(candidates):
            if identity.size != size:
                logger.warning("File changed size during scan, skipping %s", identity.path)
                continue
            by_inode[(identity.inode, identity.device)].append(identity.path)

        # names that already share one inode are not separate storage
        if len(by_inode) < 2:
            return None

        ordered = sorted(by_inode)
        master = min(by_inode[ordered[0]])
        others = sorted(
            to_logical_path(self._root, path) for key in ordered[1:] for path in by_inode[key]
        )
        return DuplicateGroup(
            size=size,
            master=to_logical_path(self._root, master),
            others=others,
            inode_count=len(by_inode),
        )

    def _identities(self, paths: list[str]) -> list[FileIdentity]:
        identities: list[FileIdentity] = []
        for path in paths:
            try:
                stat = os.stat(path, follow_symlinks=False)
            except OSError as exc:
                logger.warning("File vanished before inode grouping %s: %s", path, exc)
                continue
            identities.append(FileIdentity(path=path, size=stat.st_size, device=stat.st_dev, inode=stat.st_ino))
        return identities
