from __future__ import annotations

import logging
import os
import secrets
import stat as stat_module
from pathlib import Path
from typing import Iterable

from hardlinkfs.core.config import Settings
from hardlinkfs.core.path_safety import PathSafetyError, resolve_under_root, to_logical_path
from hardlinkfs.convert.types import ConversionItem, ConversionRequest, ConversionResult, ConversionStatus
from hardlinkfs.index.service import InodeIndexService
from hardlinkfs.scanner.fingerprint import Fingerprinter

logger = logging.getLogger(__name__)


class LinkSwapError(OSError):
    pass


def temporary_sibling(target: Path) -> Path:
    return target.with_name(f".{target.name}.hardlinkfs-{secrets.token_hex(4)}.tmp")


def replace_with_link(master: Path, target: Path) -> None:
    """Make ``target`` a hardlink to ``master`` without ever leaving it missing.

    The new link is created under a temporary sibling name and then renamed
    over ``target``; rename(2) replaces the old entry atomically, so at every
    instant ``target`` resolves either to the old file or to the master's
    inode. If the temporary link cannot be created nothing is touched. If the
    rename fails the original is still in place and the temporary link is
    removed.
    """
    temp_path = temporary_sibling(target)
    try:
        os.link(master, temp_path)
    except OSError as exc:
        raise LinkSwapError(exc.errno, f"failed to create temporary hardlink: {exc.strerror or exc}") from exc

    try:
        os.replace(temp_path, target)
    except OSError as exc:
        try:
            os.unlink(temp_path)
        except OSError as cleanup_exc:
            logger.error("Failed to clean up temporary link %s: %s", temp_path, cleanup_exc)
        raise LinkSwapError(exc.errno, f"failed to move hardlink into place: {exc.strerror or exc}") from exc


class ConversionService:
    """Turns operator-approved duplicates into hardlinks of their master.

    Every pair is re-verified immediately before its swap because the tree
    may have changed since the scan. Failures are collected per item; one bad
    pair never stops the batch.
    """

    def __init__(
        self,
        settings: Settings,
        index: InodeIndexService | None = None,
        fingerprinter: Fingerprinter | None = None,
    ):
        self._settings = settings
        self._root = Path(settings.data_root)
        self._index = index
        self._fingerprinter = fingerprinter or Fingerprinter.from_settings(settings)

    def convert(self, requests: Iterable[ConversionRequest]) -> ConversionResult:
        batch = list(requests)
        result = ConversionResult()
        logger.info("Conversion started for %d groups", len(batch))

        for request in batch:
            if not request.master or not request.others:
                continue
            self._convert_group(request, result)

        logger.info(
            "Conversion finished: created=%d bytes_saved=%d errors=%d",
            result.created,
            result.bytes_saved,
            len(result.errors),
        )
        return result

    def _convert_group(self, request: ConversionRequest, result: ConversionResult) -> None:
        master_label = request.master
        try:
            master_path = resolve_under_root(self._root, request.master)
        except PathSafetyError as exc:
            self._fail_group(request, result, f"Master path outside root: {master_label} ({exc})")
            return

        try:
            master_stat = os.lstat(master_path)
        except FileNotFoundError:
            self._fail_group(request, result, f"Master not found: {master_label}")
            return
        except OSError as exc:
            self._fail_group(request, result, f"Failed to stat master {master_label}: {exc}")
            return

        if not stat_module.S_ISREG(master_stat.st_mode):
            self._fail_group(request, result, f"Master is not a regular file: {master_label}")
            return

        self._normalize_master(master_path)

        for other in request.others:
            message = self._convert_one(master_label, master_path, master_stat, other, result)
            if message is not None:
                logger.warning("Conversion skipped %s: %s", other, message)
                result.record_error(master_label, other, message)

    def _fail_group(self, request: ConversionRequest, result: ConversionResult, message: str) -> None:
        logger.warning("Conversion group rejected: %s", message)
        result.errors.append(message)
        for other in request.others:
            result.items.append(
                ConversionItem(master=request.master, path=other, status=ConversionStatus.FAILED, message=message)
            )

    def _convert_one(
        self,
        master_label: str,
        master_path: Path,
        master_stat: os.stat_result,
        other: str,
        result: ConversionResult,
    ) -> str | None:
        try:
            other_path = resolve_under_root(self._root, other)
        except PathSafetyError:
            return f"Path outside root: {other}"

        if other_path == master_path:
            return f"{other}: same path as master"

        try:
            other_stat = os.lstat(other_path)
        except FileNotFoundError:
            return f"File not found: {other}"
        except OSError as exc:
            return f"Failed to stat {other}: {exc}"

        if not stat_module.S_ISREG(other_stat.st_mode):
            return f"{other}: not a regular file"

        if other_stat.st_ino == master_stat.st_ino and other_stat.st_dev == master_stat.st_dev:
            result.record_success(
                ConversionItem(master=master_label, path=other, status=ConversionStatus.ALREADY_LINKED)
            )
            self._record_links(master_stat.st_ino, [master_path, other_path])
            return None

        if other_stat.st_dev != master_stat.st_dev:
            return f"{other}: on a different filesystem than the master"

        size = other_stat.st_size
        try:
            identical = self._fingerprinter.verify(master_path, other_path)
        except OSError as exc:
            return f"{other}: verification error: {exc}"
        if not identical:
            return f"{other}: files are not identical"

        try:
            replace_with_link(master_path, other_path)
        except LinkSwapError as exc:
            return f"{other}: {exc.strerror or exc}"

        result.record_success(
            ConversionItem(master=master_label, path=other, status=ConversionStatus.CREATED, bytes_saved=size)
        )
        self._forget_link(other_stat.st_ino, other_path)
        self._record_links(master_stat.st_ino, [master_path, other_path])
        return None

    def _normalize_master(self, master_path: Path) -> None:
        uid = self._settings.convert_owner_uid
        gid = self._settings.convert_owner_gid
        mode = self._settings.convert_file_mode
        if uid is not None or gid is not None:
            try:
                os.chown(master_path, -1 if uid is None else uid, -1 if gid is None else gid)
            except OSError as exc:
                logger.warning("Could not set owner on master %s: %s", master_path, exc)
        if mode is not None:
            try:
                os.chmod(master_path, mode)
            except OSError as exc:
                logger.warning("Could not set mode on master %s: %s", master_path, exc)

    def _record_links(self, inode: int, paths: list[Path]) -> None:
        if self._index is None:
            return
        try:
            self._index.add_paths((inode, to_logical_path(self._root, path)) for path in paths)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to update inode index for inode %d: %s", inode, exc)

    def _forget_link(self, inode: int, path: Path) -> None:
        if self._index is None:
            return
        try:
            self._index.remove_path(inode, to_logical_path(self._root, path))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to update inode index for inode %d: %s", inode, exc)


def conversion_result_to_dict(result: ConversionResult) -> dict[str, object]:
    return {
        "ok": True,
        "created": result.created,
        "bytes_saved": result.bytes_saved,
        "bytes_saved_human": result.bytes_saved_human,
        "errors": list(result.errors),
        "items": [
            {
                "master": item.master,
                "path": item.path,
                "status": item.status.value,
                "bytes_saved": item.bytes_saved,
                "message": item.message,
            }
            for item in result.items
        ],
    }
