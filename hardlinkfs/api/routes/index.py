from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from hardlinkfs.api.schemas.index import (
    IndexMutationResponse,
    InodeIndexStatsResponse,
    InodePathsResponse,
    PruneIndexRequest,
)
from hardlinkfs.core.config import get_settings
from hardlinkfs.db.session import get_session_factory
from hardlinkfs.index.service import InodeIndexService

router = APIRouter(prefix="/index", tags=["index"])


def get_index_service() -> InodeIndexService:
    return InodeIndexService(get_session_factory())


@router.get("/inodes/{inode}", response_model=InodePathsResponse)
def get_inode_paths(
    inode: int = Path(ge=0),
    service: InodeIndexService = Depends(get_index_service),
) -> InodePathsResponse:
    return InodePathsResponse(inode=inode, paths=service.paths_for_inode(inode))


@router.get("/stats", response_model=InodeIndexStatsResponse)
def get_index_stats(service: InodeIndexService = Depends(get_index_service)) -> InodeIndexStatsResponse:
    stats = service.stats()
    return InodeIndexStatsResponse(inode_count=stats.inode_count, path_count=stats.path_count)


@router.post("/prune", response_model=IndexMutationResponse)
def prune_index(
    request: PruneIndexRequest,
    service: InodeIndexService = Depends(get_index_service),
) -> IndexMutationResponse:
    older_than_days = request.older_than_days
    if older_than_days is None:
        older_than_days = get_settings().inode_index_prune_days
    return IndexMutationResponse(removed=service.prune(older_than_days))


@router.post("/clear", response_model=IndexMutationResponse)
def clear_index(service: InodeIndexService = Depends(get_index_service)) -> IndexMutationResponse:
    return IndexMutationResponse(removed=service.clear())
