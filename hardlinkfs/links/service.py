from __future__ import annotations

import logging
import os
import stat as stat_module
from dataclasses import dataclass, field
from pathlib import Path

from hardlinkfs.core.config import Settings
from hardlinkfs.core.path_safety import resolve_under_root, to_logical_path
from hardlinkfs.index.service import InodeIndexService

logger = logging.getLogger(__name__)


class LinkNotFoundError(RuntimeError):
    pass


class LinkConflictError(RuntimeError):
    pass


class LinkPolicyError(RuntimeError):
    pass


class LinkTargetError(RuntimeError):
    pass


def _lstat(path: Path, not_found_message: str) -> os.stat_result:
    try:
        return os.lstat(path)
    except (FileNotFoundError, NotADirectoryError) as exc:
        raise LinkNotFoundError(not_found_message) from exc
    except OSError as exc:
        raise LinkTargetError(f"Cannot stat {path.name}: {exc.strerror or exc}") from exc


@dataclass(slots=True)
class LinkTreeResult:
    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RemoveLinkResult:
    path: str
    is_dir: bool
    remaining_links: int


@dataclass(frozen=True, slots=True)
class LinkDetails:
    path: str
    size: int
    inode: int
    device: int
    nlink: int
    linked_paths: list[str]


class LinkService:
    """Manual hardlink operations on the storage root.

    Every path argument is a root-relative logical path and is confined to
    the root before the filesystem is touched. The inode index is updated
    after each change but never consulted to allow or refuse one.
    """

    def __init__(self, settings: Settings, index: InodeIndexService | None = None):
        self._settings = settings
        self._root = Path(settings.data_root)
        self._index = index
        self._skip_dir_names = frozenset(settings.scan_skip_dir_names)

    def create_link(self, source: str, dest: str) -> None:
        source_path = resolve_under_root(self._root, source)
        dest_path = resolve_under_root(self._root, dest)

        source_stat = _lstat(source_path, f"Source not found: {source}")
        if not stat_module.S_ISREG(source_stat.st_mode):
            raise LinkTargetError("Source must be a regular file")

        if os.path.lexists(dest_path):
            raise LinkConflictError(f"Destination already exists: {dest}")

        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LinkTargetError(f"Cannot create destination directory for {dest}: {exc.strerror or exc}") from exc
        try:
            os.link(source_path, dest_path)
        except FileExistsError as exc:
            raise LinkConflictError(f"Destination already exists: {dest}") from exc
        except OSError as exc:
            raise LinkTargetError(f"Cannot link {source} to {dest}: {exc.strerror or exc}") from exc

        self._record(source_stat.st_ino, [source_path, dest_path])
        logger.info("Hardlink created %s -> %s", source_path, dest_path)

    def link_tree(self, source_dir: str, dest_root: str) -> LinkTreeResult:
        source_path = resolve_under_root(self._root, source_dir)
        dest_root_path = resolve_under_root(self._root, dest_root)

        if not source_path.exists():
            raise LinkNotFoundError(f"Source not found: {source_dir}")
        if source_path.is_symlink() or not source_path.is_dir():
            raise LinkTargetError("Source must be a directory")
        if dest_root_path == source_path or source_path in dest_root_path.parents:
            raise LinkTargetError("Destination root must not be inside the source directory")

        result = LinkTreeResult()
        logger.info("Hardlink tree started src=%s dest=%s", source_path, dest_root_path)

        for current, dir_names, file_names in os.walk(source_path, onerror=self._log_walk_error):
            dir_names[:] = sorted(name for name in dir_names if name not in self._skip_dir_names)
            current_path = Path(current)
            relative_dir = current_path.relative_to(source_path)

            for name in sorted(file_names):
                entry_path = current_path / name
                target = dest_root_path / relative_dir / name
                try:
                    entry_stat = os.lstat(entry_path)
                    if not stat_module.S_ISREG(entry_stat.st_mode):
                        result.skipped += 1
                        continue
                    if os.path.lexists(target):
                        result.skipped += 1
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.link(entry_path, target)
                except OSError as exc:
                    result.errors.append(f"{to_logical_path(self._root, entry_path)}: {exc.strerror or exc}")
                    continue

                result.created += 1
                self._record(entry_stat.st_ino, [target])

        logger.info(
            "Hardlink tree finished src=%s dest=%s created=%d skipped=%d errors=%d",
            source_path,
            dest_root_path,
            result.created,
            result.skipped,
            len(result.errors),
        )
        return result

    def remove_link(self, path: str) -> RemoveLinkResult:
        target = resolve_under_root(self._root, path)
        target_stat = _lstat(target, f"File or directory not found: {path}")

        if stat_module.S_ISDIR(target_stat.st_mode):
            try:
                if any(target.iterdir()):
                    raise LinkTargetError("Directory is not empty")
                target.rmdir()
            except OSError as exc:
                raise LinkTargetError(f"Cannot remove directory {path}: {exc.strerror or exc}") from exc
            logger.info("Empty directory removed %s", target)
            return RemoveLinkResult(path=path, is_dir=True, remaining_links=0)

        if target_stat.st_nlink <= 1:
            raise LinkPolicyError("Cannot delete the last link to this file")

        try:
            target.unlink()
        except OSError as exc:
            raise LinkTargetError(f"Cannot remove {path}: {exc.strerror or exc}") from exc
        remaining = target_stat.st_nlink - 1
        self._forget(target_stat.st_ino, target)
        logger.info("Hardlink removed %s remaining_links=%d", target, remaining)
        return RemoveLinkResult(path=path, is_dir=False, remaining_links=remaining)

    def describe(self, path: str) -> LinkDetails:
        target = resolve_under_root(self._root, path)
        target_stat = _lstat(target, f"File not found: {path}")
        if not stat_module.S_ISREG(target_stat.st_mode):
            raise LinkTargetError("Path is not a regular file")

        linked_paths = self._index.paths_for_inode(target_stat.st_ino) if self._index is not None else []
        return LinkDetails(
            path=to_logical_path(self._root, target),
            size=target_stat.st_size,
            inode=target_stat.st_ino,
            device=target_stat.st_dev,
            nlink=target_stat.st_nlink,
            linked_paths=linked_paths,
        )

    def _log_walk_error(self, exc: OSError) -> None:
        logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc)

    def _record(self, inode: int, paths: list[Path]) -> None:
        if self._index is None:
            return
        try:
            self._index.add_paths((inode, to_logical_path(self._root, path)) for path in paths)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to update inode index for inode %d: %s", inode, exc)

    def _forget(self, inode: int, path: Path) -> None:
        if self._index is None:
            return
        try:
            self._index.remove_path(inode, to_logical_path(self._root, path))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to update inode index for inode %d: %s", inode, exc)


def link_details_to_dict(details: LinkDetails) -> dict[str, object]:
    return {
        "path": details.path,
        "size": details.size,
        "inode": details.inode,
        "device": details.device,
        "nlink": details.nlink,
        "linked_paths": list(details.linked_paths),
    }
