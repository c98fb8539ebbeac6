from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hardlinkfs.api.schemas.links import (
    CreateLinkRequest,
    CreateLinkResponse,
    LinkDetailsResponse,
    LinkTreeRequest,
    LinkTreeResponse,
    RemoveLinkRequest,
    RemoveLinkResponse,
)
from hardlinkfs.core.config import get_settings
from hardlinkfs.core.path_safety import PathSafetyError
from hardlinkfs.db.session import get_session_factory
from hardlinkfs.index.service import InodeIndexService
from hardlinkfs.links.service import (
    LinkConflictError,
    LinkNotFoundError,
    LinkPolicyError,
    LinkService,
    LinkTargetError,
    link_details_to_dict,
)

router = APIRouter(prefix="/links", tags=["links"])


def get_link_service() -> LinkService:
    return LinkService(settings=get_settings(), index=InodeIndexService(get_session_factory()))


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LinkNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, LinkConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, LinkPolicyError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, PathSafetyError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Path outside root: {exc}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("", response_model=CreateLinkResponse)
def create_link(request: CreateLinkRequest, service: LinkService = Depends(get_link_service)) -> CreateLinkResponse:
    try:
        service.create_link(request.source, request.dest)
    except (LinkNotFoundError, LinkConflictError, LinkTargetError, PathSafetyError) as exc:
        raise _to_http_error(exc) from exc
    return CreateLinkResponse(ok=True)


@router.post("/folder", response_model=LinkTreeResponse)
def link_folder(request: LinkTreeRequest, service: LinkService = Depends(get_link_service)) -> LinkTreeResponse:
    try:
        result = service.link_tree(request.source, request.dest_root)
    except (LinkNotFoundError, LinkTargetError, PathSafetyError) as exc:
        raise _to_http_error(exc) from exc
    return LinkTreeResponse(ok=True, created=result.created, skipped=result.skipped, errors=result.errors)


@router.post("/delete", response_model=RemoveLinkResponse)
def remove_link(request: RemoveLinkRequest, service: LinkService = Depends(get_link_service)) -> RemoveLinkResponse:
    try:
        result = service.remove_link(request.path)
    except (LinkNotFoundError, LinkPolicyError, LinkTargetError, PathSafetyError) as exc:
        raise _to_http_error(exc) from exc
    return RemoveLinkResponse(ok=True, path=result.path, is_dir=result.is_dir, remaining_links=result.remaining_links)


@router.get("/details", response_model=LinkDetailsResponse)
def get_link_details(
    path: str = Query(min_length=1, max_length=4096),
    service: LinkService = Depends(get_link_service),
) -> LinkDetailsResponse:
    try:
        details = service.describe(path)
    except (LinkNotFoundError, LinkTargetError, PathSafetyError) as exc:
        raise _to_http_error(exc) from exc
    return LinkDetailsResponse.model_validate(link_details_to_dict(details))
