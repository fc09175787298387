"""Tool capability backends."""

from .base import FileSystemBackend, ProcessBackend, ProcessResult, ReadResult, WriteResult
from .local import LocalFileSystem, LocalProcessRunner

__all__ = [
    "FileSystemBackend",
    "ProcessBackend",
    "ProcessResult",
    "ReadResult",
    "WriteResult",
    "LocalFileSystem",
    "LocalProcessRunner",
]
