from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ScanStartedResponse(BaseModel):
    job_id: str


class DuplicateGroupResponse(BaseModel):
    size: int
    size_human: str
    master: str
    others: list[str]
    inode_count: int
    reclaimable_bytes: int


class DuplicateGroupListResponse(BaseModel):
    items: list[DuplicateGroupResponse]


class ScanProgressResponse(BaseModel):
    job_id: str
    status: str
    total_files: int
    processed: int
    groups_found: int
    error: str | None
    started_at: datetime | None
    completed_at: datetime | None
    results: list[DuplicateGroupResponse] | None = None


class ScanJobListResponse(BaseModel):
    items: list[ScanProgressResponse]


class ConvertGroupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    master: str = Field(min_length=1, max_length=4096)
    others: list[str] = Field(default_factory=list, max_length=10000)


class ConvertRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    groups: list[ConvertGroupRequest] = Field(min_length=1, max_length=10000)


class ConvertItemResponse(BaseModel):
    master: str
    path: str
    status: str
    bytes_saved: int
    message: str | None


class ConvertResponse(BaseModel):
    ok: bool
    created: int
    bytes_saved: int
    bytes_saved_human: str
    errors: list[str]
    items: list[ConvertItemResponse]
