from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from hardlinkfs.core.units import human_size


class ConversionStatus(str, Enum):
    CREATED = "created"
    ALREADY_LINKED = "already_linked"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConversionRequest:
    master: str
    others: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ConversionItem:
    master: str
    path: str
    status: ConversionStatus
    bytes_saved: int = 0
    message: str | None = None


@dataclass(slots=True)
class ConversionResult:
    created: int = 0
    bytes_saved: int = 0
    errors: list[str] = field(default_factory=list)
    items: list[ConversionItem] = field(default_factory=list)

    @property
    def bytes_saved_human(self) -> str:
        return human_size(self.bytes_saved)

    def record_success(self, item: ConversionItem) -> None:
        self.items.append(item)
        if item.status == ConversionStatus.CREATED:
            self.created += 1
            self.bytes_saved += item.bytes_saved

    def record_error(self, master: str, path: str, message: str) -> None:
        self.errors.append(message)
        self.items.append(ConversionItem(master=master, path=path, status=ConversionStatus.FAILED, message=message))
