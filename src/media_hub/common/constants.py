"""Constants used throughout the application."""

# OAuth2 scopes
SCOPES = ["https://www.googleapis.com/auth/drive"]

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Folder tree inside the shared drive
ROOT_FOLDER_NAME = "Media Hub"
INCOMING_FOLDER_NAME = "Incoming"
PROCESSED_FOLDER_NAME = "Processed"

# Media types accepted for upload
SUPPORTED_MIME_TYPES = (
    # Video
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/webm",
    "video/x-matroska",
    # Audio
    "audio/mpeg",
    "audio/wav",
    "audio/x-wav",
    "audio/mp4",
    "audio/x-m4a",
    "audio/ogg",
    "audio/webm",
)

# Size tiers
MIB = 1024 * 1024
INSTANT_LIMIT = int(4.5 * MIB)  # single request through the server
MEDIUM_LIMIT = 500 * MIB  # resumable session
MAX_FILE_SIZE = 5 * 1024 * MIB

# Resumable upload protocol
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
RESUME_INCOMPLETE = 308
CHUNK_ALIGNMENT = 256 * 1024  # Drive requires chunk sizes in multiples of 256 KiB
DEFAULT_CHUNK_SIZE = 10 * MIB
CHUNK_TIMEOUT = 60  # seconds

# Retry policy for chunk transmission
MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0

# Per-owner upload rate limit
UPLOAD_WINDOW_SECONDS = 60 * 60
UPLOAD_MAX_REQUESTS = 20
UPLOAD_MAX_BYTES = 1024 * MIB

# Fields requested for file metadata
FILE_FIELDS = (
    "id, name, mimeType, size, createdTime, modifiedTime, "
    "thumbnailLink, webViewLink, videoMediaMetadata, parents"
)

# File index
DB_NAME = "media_hub.db"
