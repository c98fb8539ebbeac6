from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from hardlinkfs.api.schemas.duplicates import (
    ConvertRequest,
    ConvertResponse,
    DuplicateGroupListResponse,
    DuplicateGroupResponse,
    ScanJobListResponse,
    ScanProgressResponse,
    ScanStartedResponse,
)
from hardlinkfs.convert.service import ConversionService, conversion_result_to_dict
from hardlinkfs.convert.types import ConversionRequest
from hardlinkfs.core.config import Settings, get_settings
from hardlinkfs.db.session import get_session_factory
from hardlinkfs.index.service import InodeIndexService
from hardlinkfs.jobs.manager import ScanManager
from hardlinkfs.jobs.registry import JobConflictError
from hardlinkfs.jobs.service import (
    JobNotCompletedError,
    JobNotFoundError,
    duplicate_group_to_dict,
    snapshot_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


def get_scan_manager(request: Request) -> ScanManager:
    return request.app.state.scan_manager


def get_conversion_service() -> ConversionService:
    settings = get_settings()
    return ConversionService(settings=settings, index=InodeIndexService(get_session_factory()))


@router.post("/scan", response_model=ScanStartedResponse, status_code=status.HTTP_202_ACCEPTED)
def start_scan(manager: ScanManager = Depends(get_scan_manager)) -> ScanStartedResponse:
    try:
        job_id = manager.start_scan()
    except JobConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return ScanStartedResponse(job_id=job_id)


@router.get("/jobs", response_model=ScanJobListResponse)
def list_scan_jobs(
    limit: int = Query(default=20, ge=1, le=200),
    manager: ScanManager = Depends(get_scan_manager),
) -> ScanJobListResponse:
    return ScanJobListResponse(
        items=[
            ScanProgressResponse.model_validate(snapshot_to_dict(snapshot, include_results=False))
            for snapshot in manager.list_jobs(limit=limit)
        ]
    )


@router.get("/progress/{job_id}", response_model=ScanProgressResponse)
def get_progress(job_id: str, manager: ScanManager = Depends(get_scan_manager)) -> ScanProgressResponse:
    snapshot = manager.get_progress(job_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Scan job not found: {job_id}")
    return ScanProgressResponse.model_validate(snapshot_to_dict(snapshot))


def _frame(data: str, *, event: str | None = None) -> str:
    if event is None:
        return f"data: {data}\n\n"
    return f"event: {event}\ndata: {data}\n\n"


async def _progress_events(manager: ScanManager, settings: Settings, job_id: str) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    opened_at = loop.time()
    last_heartbeat = opened_at
    frames_sent = 0

    yield ": ping\n\n"
    yield _frame(json.dumps({"job_id": job_id}), event="connected")

    try:
        while True:
            snapshot = await run_in_threadpool(manager.get_progress, job_id)
            if snapshot is None:
                yield _frame(json.dumps({"error": "Job not found"}), event="error")
                return

            payload = ScanProgressResponse.model_validate(snapshot_to_dict(snapshot))
            yield _frame(payload.model_dump_json())
            frames_sent += 1
            if snapshot.is_terminal:
                logger.info("Progress stream closed job=%s status=%s frames=%d", job_id, snapshot.status.value, frames_sent)
                return

            now = loop.time()
            if now - opened_at >= settings.progress_stream_timeout_seconds:
                yield _frame(json.dumps({"error": "Timeout"}), event="timeout")
                return
            if now - last_heartbeat >= settings.progress_stream_heartbeat_seconds:
                yield ": heartbeat\n\n"
                last_heartbeat = now

            await asyncio.sleep(settings.progress_stream_interval_seconds)
    except asyncio.CancelledError:
        # Client went away; the scan thread is unaffected.
        logger.info("Progress stream disconnected job=%s frames=%d", job_id, frames_sent)
        raise


@router.get("/progress/{job_id}/stream")
def stream_progress(job_id: str, manager: ScanManager = Depends(get_scan_manager)) -> StreamingResponse:
    if manager.get_progress(job_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Scan job not found: {job_id}")
    return StreamingResponse(
        _progress_events(manager, get_settings(), job_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/results/{job_id}", response_model=DuplicateGroupListResponse)
def get_results(job_id: str, manager: ScanManager = Depends(get_scan_manager)) -> DuplicateGroupListResponse:
    try:
        groups = manager.get_results(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except JobNotCompletedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return DuplicateGroupListResponse(
        items=[DuplicateGroupResponse.model_validate(duplicate_group_to_dict(group)) for group in groups]
    )


@router.post("/convert", response_model=ConvertResponse)
def convert_duplicates(
    request: ConvertRequest,
    service: ConversionService = Depends(get_conversion_service),
) -> ConvertResponse:
    result = service.convert(
        ConversionRequest(master=group.master, others=tuple(group.others)) for group in request.groups
    )
    return ConvertResponse.model_validate(conversion_result_to_dict(result))
