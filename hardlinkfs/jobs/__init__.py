from hardlinkfs.jobs.manager import ScanManager, new_job_id
from hardlinkfs.jobs.registry import JobConflictError, LiveScanJob, ScanJobRegistry
from hardlinkfs.jobs.service import (
    InvalidJobStateError,
    JobNotCompletedError,
    JobNotFoundError,
    ScanJobStore,
    duplicate_group_to_dict,
    snapshot_to_dict,
)
from hardlinkfs.jobs.types import JobSnapshot

__all__ = [
    "InvalidJobStateError",
    "JobConflictError",
    "JobNotCompletedError",
    "JobNotFoundError",
    "JobSnapshot",
    "LiveScanJob",
    "ScanJobRegistry",
    "ScanJobStore",
    "ScanManager",
    "duplicate_group_to_dict",
    "new_job_id",
    "snapshot_to_dict",
]
