from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FileIdentity:
    path: str
    size: int
    device: int
    inode: int


@dataclass(slots=True)
class DuplicateGroup:
    size: int
    master: str
    others: list[str] = field(default_factory=list)
    inode_count: int = 0

    @property
    def reclaimable_bytes(self) -> int:
        return self.size * (self.inode_count - 1)
