"""Recording storage backends: local disk and the call owner's PBX host."""

from callguard.storage.local import LocalRecordingStore
from callguard.storage.sftp import (
    CallOwnerCredentials,
    RemoteFileNotFoundError,
    RemoteFileReplacer,
    RemoteStorageError,
    ReplaceOutcome,
    ReplaceResult,
    download,
    resolve_remote_path,
)

__all__ = [
    "CallOwnerCredentials",
    "LocalRecordingStore",
    "RemoteFileNotFoundError",
    "RemoteFileReplacer",
    "RemoteStorageError",
    "ReplaceOutcome",
    "ReplaceResult",
    "download",
    "resolve_remote_path",
]
