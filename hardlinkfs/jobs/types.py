from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from hardlinkfs.db.models import ScanJobStatus
from hardlinkfs.scanner.types import DuplicateGroup


@dataclass(slots=True)
class JobSnapshot:
    id: str
    status: ScanJobStatus
    total_files: int
    processed: int
    groups_found: int
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    results: list[DuplicateGroup] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in {ScanJobStatus.COMPLETED, ScanJobStatus.FAILED}
