from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class InodePathsResponse(BaseModel):
    inode: int
    paths: list[str]


class InodeIndexStatsResponse(BaseModel):
    inode_count: int
    path_count: int


class PruneIndexRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    older_than_days: int | None = Field(default=None, ge=0, le=36500)


class IndexMutationResponse(BaseModel):
    removed: int
