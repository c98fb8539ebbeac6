from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from hardlinkfs.core.config import Settings
from hardlinkfs.core.units import human_size


def test_settings_defaults_and_database_url(tmp_path: Path) -> None:
    settings = Settings(data_root=tmp_path / "data", state_root=tmp_path / "state")

    assert settings.scan_skip_dir_names == ["@eaDir"]
    assert settings.fingerprint_full_threshold_bytes == 100 * 1024 * 1024
    assert settings.fingerprint_window_bytes == 256 * 1024
    assert settings.fingerprint_chunk_bytes == 64 * 1024
    assert settings.effective_database_url.endswith("/state/hardlinkfs.sqlite3")
    assert (tmp_path / "state").is_dir()


@pytest.mark.parametrize(
    "overrides",
    [
        {"data_root": "relative/data"},
        {"data_root": "~/data"},
        {"data_root": "$HOME/data"},
        {"fingerprint_window_bytes": 1024, "fingerprint_full_threshold_bytes": 1500},
        {"convert_file_mode": "0999"},
        {"convert_file_mode": 0o17777},
    ],
)
def test_settings_reject_invalid_values(tmp_path: Path, overrides: dict[str, object]) -> None:
    values: dict[str, object] = {"data_root": tmp_path / "data", "state_root": tmp_path / "state"}
    values.update(overrides)

    with pytest.raises(ValidationError):
        Settings(**values)


def test_state_root_inside_data_root_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        Settings(data_root=tmp_path / "data", state_root=tmp_path / "data" / "state")


def test_file_mode_accepts_octal_strings(tmp_path: Path) -> None:
    settings = Settings(data_root=tmp_path / "data", state_root=tmp_path / "state", convert_file_mode="0644")

    assert settings.convert_file_mode == 0o644


def test_skip_dir_names_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HARDLINKFS_SCAN_SKIP_DIR_NAMES", '["@eaDir", ".snapshot"]')

    settings = Settings(data_root=tmp_path / "data", state_root=tmp_path / "state")

    assert settings.scan_skip_dir_names == ["@eaDir", ".snapshot"]


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1.0 KB"),
        (1536, "1.5 KB"),
        (10 * 1024 * 1024, "10.0 MB"),
        (3 * 1024**4, "3.0 TB"),
    ],
)
def test_human_size_uses_binary_units(size: int, expected: str) -> None:
    assert human_size(size) == expected
