"""Media Hub: resumable media uploads into a Google Drive Shared Drive."""

__version__ = "0.1.0"
