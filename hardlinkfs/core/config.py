from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, PositiveFloat, PositiveInt, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HARDLINKFS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "hardlinkfs"
    environment: str = "production"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    data_root: Path = Field(default=Path("/data"))
    state_root: Path = Field(default=Path("/state"))
    database_url: str | None = None
    database_busy_timeout_ms: PositiveInt = 5000

    scan_skip_dir_names: list[str] = Field(default_factory=lambda: ["@eaDir"])
    scan_total_progress_interval: PositiveInt = 1000
    scan_processed_progress_interval: PositiveInt = 100

    fingerprint_full_threshold_bytes: PositiveInt = 100 * 1024 * 1024
    fingerprint_window_bytes: PositiveInt = 256 * 1024
    fingerprint_chunk_bytes: PositiveInt = 64 * 1024

    convert_owner_uid: int | None = None
    convert_owner_gid: int | None = None
    convert_file_mode: int | None = None

    inode_index_prune_days: PositiveInt = 30

    progress_stream_interval_seconds: PositiveFloat = 0.5
    progress_stream_heartbeat_seconds: PositiveFloat = 15.0
    progress_stream_timeout_seconds: PositiveFloat = 600.0

    @field_validator("data_root", "state_root", mode="before")
    @classmethod
    def _normalize_path(cls, value: str | Path) -> Path:
        raw = str(value)
        if "~" in raw:
            raise ValueError("Home expansion syntax is not allowed in paths")
        if "$" in raw:
            raise ValueError("Environment variable syntax is not allowed in paths")
        path = Path(raw)
        if not path.is_absolute():
            raise ValueError("Path settings must be absolute")
        return path

    @field_validator("convert_file_mode", mode="before")
    @classmethod
    def _parse_file_mode(cls, value: str | int | None) -> int | None:
        if value is None or isinstance(value, int):
            return value
        token = str(value).strip()
        if not token:
            return None
        try:
            return int(token, 8)
        except ValueError as exc:
            raise ValueError("convert_file_mode must be an octal permission string such as 0644") from exc

    @model_validator(mode="after")
    def _validate_runtime_constraints(self) -> "Settings":
        self.data_root = self.data_root.resolve(strict=False)
        self.state_root = self.state_root.resolve(strict=False)
        self.state_root.mkdir(parents=True, exist_ok=True)

        if self.data_root == self.state_root or self.data_root in self.state_root.parents:
            raise ValueError("state_root must not live inside data_root")

        if self.fingerprint_window_bytes * 2 > self.fingerprint_full_threshold_bytes:
            raise ValueError("fingerprint_full_threshold_bytes must be at least twice fingerprint_window_bytes")

        if self.convert_file_mode is not None and not 0 <= self.convert_file_mode <= 0o7777:
            raise ValueError("convert_file_mode must be a permission mode between 0000 and 7777")

        self.log_level = self.log_level.upper().strip()
        return self

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        db_path = self.state_root / "hardlinkfs.sqlite3"
        return f"sqlite:///{db_path.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
