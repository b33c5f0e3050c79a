"""HTTP endpoints for uploads, files and sync."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..common.constants import RESUME_INCOMPLETE
from ..common.exceptions import NotFoundError, ValidationError
from ..common.logging import get_logger, redact_handle
from ..services import Services
from ..store.models import FileStatus, Owner
from ..upload.models import ChunkResult, UploadSession, UploadTier
from ..upload.orchestrator import last_event
from ..upload.session import check_session_handle
from ..upload.transmitter import parse_content_range
from .deps import get_owner, get_services
from .schemas import (
    ChunkResponse,
    ConfirmUploadRequest,
    ConfirmUploadResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    DeleteResponse,
    FileListResponse,
    FileStats,
    InstantUploadResponse,
    SessionStatusResponse,
    SyncResponse,
    SyncStatusResponse,
)

logger = get_logger(__name__)

router = APIRouter(
    tags=["Uploads"],
    responses={
        400: {"description": "Invalid request"},
        401: {"description": "Authentication failed"},
        429: {"description": "Upload rate limit exceeded"},
    },
)


def _public_file(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Subset of Drive file metadata returned to clients."""
    if not data:
        return None
    keys = ("id", "name", "mimeType", "size", "webViewLink", "thumbnailLink")
    return {k: data[k] for k in keys if k in data}


@router.post("/upload-session", response_model=CreateSessionResponse)
def create_upload_session(
    body: CreateSessionRequest,
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> CreateSessionResponse:
    """Open a resumable upload session the client sends chunks to."""
    existing = services.initiator.find_completed(owner, body.request_id)
    if existing is not None:
        return CreateSessionResponse(
            file_name=existing.name,
            file_size=existing.size or body.file_size,
            mime_type=existing.mime_type,
            recommended_chunk_size=services.settings.chunk_size,
            duplicate=True,
            file=existing.to_dict(),
        )

    if services.dispatcher.classify(body.file_size) == UploadTier.MANUAL:
        raise ValidationError(
            "fileSize",
            body.file_size,
            "File is too large for automatic upload, add it through Google Drive directly",
        )

    session = services.initiator.create(
        owner, body.file_name, body.file_size, body.mime_type, body.request_id
    )
    return CreateSessionResponse(
        session_handle=session.continuation_handle,
        file_name=session.file_name,
        file_size=session.total_size,
        mime_type=session.mime_type,
        recommended_chunk_size=services.settings.chunk_size,
        reused=session.reused,
    )


@router.get("/upload-session", response_model=SessionStatusResponse)
def get_upload_session(
    session_handle: str = Query(..., alias="sessionHandle"),
    file_size: Optional[int] = Query(None, alias="fileSize"),
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> SessionStatusResponse:
    """Report how many bytes Drive holds for a session."""
    handle = check_session_handle(session_handle)
    result = services.uploader.retry_policy.call(
        lambda: services.transmitter.query(handle, file_size)
    )
    if result.complete:
        return SessionStatusResponse(
            status="complete", bytes_uploaded=result.bytes_confirmed, file=_public_file(result.file)
        )
    return SessionStatusResponse(status="in_progress", bytes_uploaded=result.bytes_confirmed)


@router.put(
    "/upload-chunk",
    response_model=ChunkResponse,
    responses={RESUME_INCOMPLETE: {"description": "Chunk accepted, more expected"}},
)
async def upload_chunk(
    request: Request,
    session_handle: str = Query(..., alias="sessionHandle"),
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> Any:
    """Forward one chunk to Drive.

    The body is the raw chunk; ``Content-Range`` places it in the file.
    """
    handle = check_session_handle(session_handle)
    start, end, total = parse_content_range(request.headers.get("Content-Range"))
    data = await request.body()

    if start is None:
        result: ChunkResult = await run_in_threadpool(services.transmitter.query, handle, total)
    else:
        if len(data) != end - start:
            raise ValidationError(
                "Content-Range", request.headers.get("Content-Range"),
                f"Body has {len(data)} bytes, Content-Range expects {end - start}",
            )
        session = UploadSession(
            continuation_handle=handle,
            file_name="",
            total_size=total,
            mime_type="",
            owner_id=owner.id,
        )
        result = await run_in_threadpool(
            services.uploader.retry_policy.call,
            lambda: services.transmitter.send(session, data, start),
        )

    if result.complete:
        logger.info(f"Upload complete for {owner.email}: {redact_handle(handle)}")
        return ChunkResponse(
            status="complete", bytes_uploaded=result.bytes_confirmed, file=_public_file(result.file)
        )

    headers = {}
    if result.bytes_confirmed > 0:
        headers["Range"] = f"bytes=0-{result.bytes_confirmed - 1}"
    return JSONResponse(
        status_code=RESUME_INCOMPLETE,
        content={"status": "incomplete", "bytesUploaded": result.bytes_confirmed},
        headers=headers,
    )


@router.post("/confirm-upload", response_model=ConfirmUploadResponse)
def confirm_upload(
    body: ConfirmUploadRequest,
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> ConfirmUploadResponse:
    """Record a finished upload. Safe to call repeatedly for one session."""
    existing = services.initiator.find_completed(owner, body.request_id)
    if existing is not None:
        return ConfirmUploadResponse(file=existing.to_dict(), created=False)

    session = UploadSession(
        continuation_handle=check_session_handle(body.session_handle),
        file_name=body.file_name,
        total_size=body.file_size,
        mime_type=body.mime_type,
        owner_id=owner.id,
        request_id=body.request_id,
    )
    metadata = {"id": body.file_id} if body.file_id else None
    result = services.reconciler.reconcile(owner, session, metadata)
    return ConfirmUploadResponse(
        file=result.record.to_dict(),
        created=result.created,
        ambiguous=result.ambiguous,
        candidates=result.candidates,
    )


@router.post("/upload", response_model=InstantUploadResponse)
def upload_instant(
    file: UploadFile = File(...),
    request_id: Optional[str] = Form(None, alias="requestId"),
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> InstantUploadResponse:
    """Upload a small file in a single request."""
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)

    if services.dispatcher.classify(size) != UploadTier.INSTANT:
        raise ValidationError(
            "file", size, "File is too large for direct upload, use an upload session"
        )

    final = last_event(
        services.uploader.upload_small(
            owner,
            file.file,
            file.filename or "",
            size,
            file.content_type or "",
            request_id,
        )
    )
    return InstantUploadResponse(file=final.record.to_dict(), duplicate=final.message == "duplicate")


@router.get("/files", response_model=FileListResponse, tags=["Files"])
def list_files(
    include_deleted: bool = Query(False, alias="includeDeleted"),
    file_status: Optional[FileStatus] = Query(None, alias="status"),
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> FileListResponse:
    """List the owner's files with counts by status."""
    everything = services.store.list_files(owner.id, include_deleted=True)
    live = [r for r in everything if not r.is_deleted]
    stats = FileStats(
        total=len(live),
        new=sum(1 for r in live if r.status == FileStatus.NEW),
        transcribing=sum(1 for r in live if r.status == FileStatus.TRANSCRIBING),
        ready=sum(1 for r in live if r.status == FileStatus.READY),
        deleted=len(everything) - len(live),
    )

    files = everything if include_deleted else live
    if file_status is not None:
        files = [r for r in files if r.status == file_status]
    return FileListResponse(files=[r.to_dict() for r in files], stats=stats)


@router.delete("/files/{file_id}", response_model=DeleteResponse, tags=["Files"])
def delete_file(
    file_id: str,
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> DeleteResponse:
    """Delete a file from Drive, then its record."""
    record = services.store.get_file(file_id, owner_id=owner.id)
    if record is None:
        raise NotFoundError(f"No file {file_id} for {owner.email}")

    services.drive_files.delete_file(record.drive_file_id)
    services.store.delete_file(record.id)
    return DeleteResponse(id=record.id)


@router.post("/sync", response_model=SyncResponse, tags=["Sync"])
def run_sync(
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> SyncResponse:
    """Bring the owner's records in line with Drive."""
    log = services.sync.run(owner)
    return SyncResponse(sync=log.to_dict())


@router.get("/sync", response_model=SyncStatusResponse, tags=["Sync"])
def sync_status(
    owner: Owner = Depends(get_owner),
    services: Services = Depends(get_services),
) -> SyncStatusResponse:
    """Last sync result and the number of live files."""
    last = services.store.last_sync(owner.id)
    return SyncStatusResponse(
        last_sync=last.to_dict() if last else None,
        file_count=services.store.count_files(owner.id),
    )
