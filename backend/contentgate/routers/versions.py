"""Versions API router - content revision history."""

import anyio
from fastapi import APIRouter, HTTPException, Request

from contentgate.routers.quality import get_pipeline
from contentgate.schemas import RevisionRequest, VersionHistoryResponse, VersionOut

router = APIRouter(prefix="/api/content", tags=["versions"])


@router.get("/{content_id}/versions", response_model=VersionHistoryResponse)
async def api_list_versions(content_id: str, request: Request) -> VersionHistoryResponse:
    """All versions of a content item, oldest first. Unknown ids have none."""
    recorder = get_pipeline(request).recorder
    versions = await anyio.to_thread.run_sync(recorder.history, content_id)
    return VersionHistoryResponse(
        content_id=content_id,
        versions=[VersionOut.from_version(v) for v in versions],
    )


@router.get("/{content_id}/versions/latest", response_model=VersionOut)
async def api_latest_version(content_id: str, request: Request) -> VersionOut:
    recorder = get_pipeline(request).recorder
    version = await anyio.to_thread.run_sync(recorder.latest, content_id)
    if version is None:
        raise HTTPException(status_code=404, detail="Content not found")
    return VersionOut.from_version(version)


@router.post("/{content_id}/versions", response_model=VersionOut, status_code=201)
async def api_record_revision(content_id: str, body: RevisionRequest, request: Request) -> VersionOut:
    """Record an editor revision without running the quality gate."""
    recorder = get_pipeline(request).recorder
    version = await anyio.to_thread.run_sync(
        recorder.record_revision, content_id, body.content, body.author, body.overall_score
    )
    return VersionOut.from_version(version)
