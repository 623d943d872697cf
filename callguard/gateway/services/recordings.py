"""Recording sources for the audio delivery endpoints.

A source is opened per request and must be closed by the caller. The SFTP
source holds an SSH connection for the lifetime of the response.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from pathlib import Path
from typing import BinaryIO

import asyncssh
import structlog

from callguard.common.sftp import (
    CallOwnerCredentials,
    RemoteFileNotFoundError,
    RemoteStorageError,
    get_sftp_client,
)
from callguard.config import Settings
from callguard.db.models import CallModel
from callguard.storage.local import LocalRecordingStore
from callguard.storage.sftp import resolve_remote_path

logger = structlog.get_logger()


class RecordingUnavailableError(Exception):
    """The call has no recording that can be served."""

    pass


class RecordingSource(ABC):
    """Random-access reader over one recording."""

    kind: str = ""
    size: int = 0

    @abstractmethod
    async def read_head(self, length: int) -> bytes:
        """Read up to ``length`` bytes from the start of the recording."""

    @abstractmethod
    def iter_range(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        """Yield the inclusive byte range ``start..end`` in chunks."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying file or connection. Safe to call twice."""


class LocalRecordingSource(RecordingSource):
    """Recording stored on local disk."""

    kind = "local"

    def __init__(self, path: Path, file: BinaryIO, size: int):
        self.path = path
        self.size = size
        self._file: BinaryIO | None = file

    @classmethod
    async def open(cls, path: Path) -> LocalRecordingSource:
        """Open a local recording.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        file = await asyncio.to_thread(path.open, "rb")
        size = (await asyncio.to_thread(path.stat)).st_size
        return cls(path, file, size)

    def _read_at(self, offset: int, length: int) -> bytes:
        if self._file is None:
            raise ValueError("Recording source is closed")
        self._file.seek(offset)
        return self._file.read(length)

    async def read_head(self, length: int) -> bytes:
        return await asyncio.to_thread(self._read_at, 0, length)

    async def iter_range(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        offset = start
        while offset <= end:
            length = min(chunk_size, end - offset + 1)
            chunk = await asyncio.to_thread(self._read_at, offset, length)
            if not chunk:
                raise OSError(f"Unexpected end of file at byte {offset} of {self.path}")
            offset += len(chunk)
            yield chunk

    async def aclose(self) -> None:
        if self._file is not None:
            file, self._file = self._file, None
            await asyncio.to_thread(file.close)


class SftpRecordingSource(RecordingSource):
    """Recording read over a per-request SFTP session."""

    kind = "sftp"

    def __init__(self, stack: AsyncExitStack, file: asyncssh.SFTPClientFile, size: int, timeout: float):
        self.size = size
        self._stack = stack
        self._file = file
        self._timeout = timeout
        self._closed = False

    @classmethod
    async def open(
        cls,
        owner: CallOwnerCredentials,
        remote_path: str,
        settings: Settings,
    ) -> SftpRecordingSource:
        """Connect to the owner's host and open the recording.

        Raises:
            RemoteFileNotFoundError: If the file does not exist
            RemoteStorageError: On connection or SFTP failure
        """
        stack = AsyncExitStack()
        try:
            sftp = await stack.enter_async_context(get_sftp_client(owner, settings))
            async with asyncio.timeout(settings.sftp_operation_timeout_seconds):
                file = await sftp.open(remote_path, "rb")
                stack.push_async_callback(file.close)
                attrs = await file.stat()
        except asyncssh.SFTPNoSuchFile as e:
            await stack.aclose()
            raise RemoteFileNotFoundError(remote_path) from e
        except (asyncssh.Error, OSError) as e:
            await stack.aclose()
            raise RemoteStorageError(f"Opening {remote_path} failed: {e}") from e
        except BaseException:
            await stack.aclose()
            raise

        return cls(stack, file, attrs.size or 0, settings.sftp_operation_timeout_seconds)

    async def _read_at(self, offset: int, length: int) -> bytes:
        try:
            async with asyncio.timeout(self._timeout):
                return await self._file.read(length, offset)
        except (asyncssh.Error, OSError) as e:
            raise RemoteStorageError(f"Read at byte {offset} failed: {e}") from e

    async def read_head(self, length: int) -> bytes:
        return await self._read_at(0, length)

    async def iter_range(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        offset = start
        while offset <= end:
            chunk = await self._read_at(offset, min(chunk_size, end - offset + 1))
            if not chunk:
                raise RemoteStorageError(f"Unexpected end of file at byte {offset}")
            offset += len(chunk)
            yield chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._stack.aclose()
        except (asyncssh.Error, OSError) as e:
            logger.warning("sftp_session_close_failed", error=str(e))


async def open_recording_source(call: CallModel, settings: Settings) -> RecordingSource:
    """Open the current recording of a call.

    The local copy wins when present; otherwise the recording is read from
    the owner's PBX host.

    Raises:
        RecordingUnavailableError: If the call has no recording location
        RemoteFileNotFoundError: If the remote file does not exist
        RemoteStorageError: On remote host failure
    """
    if call.local_audio_path:
        path = LocalRecordingStore(settings).resolve(call.local_audio_path)
        try:
            return await LocalRecordingSource.open(path)
        except FileNotFoundError:
            logger.info("local_recording_missing", path=str(path))

    if call.recording_path and call.owner is not None and call.owner.ssh_host:
        owner = CallOwnerCredentials.from_model(call.owner)
        remote_path = resolve_remote_path(call.recording_path, owner.base_path)
        return await SftpRecordingSource.open(owner, remote_path, settings)

    raise RecordingUnavailableError(f"Call {call.id} has no recording")
