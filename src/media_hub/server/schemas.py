"""Request and response models for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(ApiModel):
    file_name: str = Field(..., description="Name of the file in Drive")
    file_size: int = Field(..., description="Total size in bytes")
    mime_type: str = Field(..., description="MIME type of the file")
    request_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Client idempotency key; repeating it returns the same session or file",
    )


class CreateSessionResponse(ApiModel):
    session_handle: Optional[str] = None
    file_name: str
    file_size: int
    mime_type: str
    recommended_chunk_size: int
    reused: bool = False
    duplicate: bool = False
    file: Optional[dict[str, Any]] = None


class SessionStatusResponse(ApiModel):
    status: Literal["in_progress", "complete"]
    bytes_uploaded: int
    file: Optional[dict[str, Any]] = None


class ChunkResponse(ApiModel):
    status: Literal["incomplete", "complete"]
    bytes_uploaded: int
    file: Optional[dict[str, Any]] = None


class ConfirmUploadRequest(ApiModel):
    session_handle: str
    file_name: str
    file_size: int
    mime_type: str
    request_id: Optional[str] = Field(default=None, max_length=128)
    file_id: Optional[str] = Field(
        default=None, description="Drive file id from the completion response, when known"
    )


class ConfirmUploadResponse(ApiModel):
    success: bool = True
    file: dict[str, Any]
    created: bool
    ambiguous: bool = False
    candidates: list[str] = Field(default_factory=list)


class InstantUploadResponse(ApiModel):
    success: bool = True
    file: dict[str, Any]
    duplicate: bool = False


class FileStats(ApiModel):
    total: int = 0
    new: int = 0
    transcribing: int = 0
    ready: int = 0
    deleted: int = 0


class FileListResponse(ApiModel):
    files: list[dict[str, Any]]
    stats: FileStats


class DeleteResponse(ApiModel):
    success: bool = True
    id: str


class SyncResponse(ApiModel):
    success: bool = True
    sync: dict[str, Any]


class SyncStatusResponse(ApiModel):
    last_sync: Optional[dict[str, Any]] = None
    file_count: int


class HealthResponse(ApiModel):
    status: str
    version: str
