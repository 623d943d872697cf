"""Recording storage on the call owner's PBX host over SFTP.

Replacement protocol for a redacted recording:

1. Open a fresh SSH/SFTP session with the owner's credentials.
2. Upload the new bytes to ``.tmp-redacted-<ts>-<name>`` beside the original.
3. Verify the temp file size equals the buffer length.
4. Delete the original.
5. Rename the temp file to the original path.

A failure in steps 1-3 leaves the original untouched and removes the temp
file. When step 4 reports an error the original is stat-ed first: if it is
still there the failure is safe, if it is gone the swap carries on with
step 5, and if its state cannot be read the run is ``inconsistent``. A
failure in step 5 leaves no file at the original path and is reported as
``inconsistent``; the temp file is kept so an operator can finish the swap
by hand.

With ``sftp_use_posix_rename`` steps 4 and 5 collapse into one
``posix-rename@openssh.com`` call that atomically overwrites the original.
"""

import asyncio
import posixpath
import re
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import asyncssh
import structlog

import callguard.metrics
from callguard.common.sftp import (
    CallOwnerCredentials,
    RemoteFileNotFoundError,
    RemoteStorageError,
    get_sftp_client,
)
from callguard.config import SSH_BASE_PATH_DEFAULT, Settings

logger = structlog.get_logger()

T = TypeVar("T")

TEMP_PREFIX = ".tmp-redacted-"

# Asterisk names recordings <direction>-<ext>-<src>-YYYYMMDD-HHMMSS-<uniqueid>
_RECORDING_DATE_RE = re.compile(r"-(\d{8})-\d{6}-")
_AUDIO_EXT_RE = re.compile(r"\.[A-Za-z][A-Za-z0-9]*")

__all__ = [
    "CallOwnerCredentials",
    "RemoteFileNotFoundError",
    "RemoteFileReplacer",
    "RemoteStorageError",
    "ReplaceOutcome",
    "ReplaceResult",
    "build_target_path",
    "download",
    "resolve_remote_path",
]


class ReplaceOutcome(str, Enum):
    REPLACED = "replaced"
    FAILED = "failed"
    INCONSISTENT = "inconsistent"


@dataclass
class ReplaceResult:
    """Outcome of one remote replacement."""

    outcome: ReplaceOutcome
    target_path: str
    temp_path: str
    method: str
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == ReplaceOutcome.REPLACED


def build_target_path(recording_path: str, base_path: str = SSH_BASE_PATH_DEFAULT) -> str:
    """Map a relative Asterisk recording name to its dated spool location.

    ``out-100-200-20240115-093000-1705311000.42`` becomes
    ``<base>/2024/01/15/out-100-200-20240115-093000-1705311000.42.wav``.
    Names without an embedded date are joined to the base as given.
    """
    if not recording_path:
        raise ValueError("Recording path is required")

    clean = recording_path.lstrip("/")
    if clean.startswith("monitor/"):
        clean = clean[len("monitor/") :]

    stem, ext = posixpath.splitext(clean)
    # Asterisk unique IDs contain a dot, e.g. "1705311000.42"
    if not _AUDIO_EXT_RE.fullmatch(ext):
        stem, ext = clean, ".wav"
    base = base_path.rstrip("/")

    match = _RECORDING_DATE_RE.search(stem)
    if match:
        date = match.group(1)
        return posixpath.join(
            base, date[:4], date[4:6], date[6:8], posixpath.basename(stem) + ext
        )

    return posixpath.join(base, clean)


def resolve_remote_path(recording_path: str, base_path: str | None = None) -> str:
    """Resolve a stored recording path to an absolute path on the PBX host.

    Absolute paths and paths already under the base are returned as-is.
    """
    if not recording_path:
        raise ValueError("Recording path is required")

    base = (base_path or SSH_BASE_PATH_DEFAULT).rstrip("/")
    if recording_path.startswith("/"):
        return recording_path

    normalized = recording_path.lstrip("/")
    if normalized.startswith(base.lstrip("/")):
        return "/" + normalized

    return build_target_path(normalized, base)


def temp_path_for(target_path: str) -> str:
    """Temp upload path beside the target file."""
    timestamp = int(time.time() * 1000)
    return posixpath.join(
        posixpath.dirname(target_path),
        f"{TEMP_PREFIX}{timestamp}-{posixpath.basename(target_path)}",
    )


def _describe(error: BaseException) -> str:
    # TimeoutError and some asyncssh errors stringify to ""
    return str(error) or type(error).__name__


async def download(
    owner: CallOwnerCredentials,
    remote_path: str,
    settings: Settings,
) -> bytes:
    """Fetch a whole recording from the owner's host.

    Raises:
        RemoteFileNotFoundError: If the file does not exist
        RemoteStorageError: On connection, transfer or timeout failure
    """
    async with get_sftp_client(owner, settings) as sftp:
        try:
            async with asyncio.timeout(settings.sftp_operation_timeout_seconds):
                f = await sftp.open(remote_path, "rb")
                try:
                    data = await f.read()
                finally:
                    await f.close()
        except asyncssh.SFTPNoSuchFile as e:
            raise RemoteFileNotFoundError(remote_path) from e
        except (asyncssh.Error, OSError) as e:
            raise RemoteStorageError(
                f"Download of {remote_path} failed: {_describe(e)}"
            ) from e

    logger.info("recording_downloaded", remote_path=remote_path, size=len(data))
    return data


class RemoteFileReplacer:
    """Swaps a recording on the owner's host for its redacted version."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.use_posix_rename = settings.sftp_use_posix_rename

    async def replace(
        self,
        owner: CallOwnerCredentials,
        remote_path: str,
        new_bytes: bytes,
    ) -> ReplaceResult:
        """Replace the file at ``remote_path`` with ``new_bytes``.

        Never raises for remote failures; the outcome is reported in the
        result and counted in metrics.
        """
        temp_path = temp_path_for(remote_path)
        method = "posix_rename" if self.use_posix_rename else "delete+rename"
        log = logger.bind(
            host=owner.host, target_path=remote_path, temp_path=temp_path, method=method
        )

        try:
            async with get_sftp_client(owner, self.settings) as sftp:
                result = await self._swap(sftp, remote_path, temp_path, new_bytes, method)
        except RemoteStorageError as e:
            result = ReplaceResult(
                ReplaceOutcome.FAILED, remote_path, temp_path, method, _describe(e)
            )

        if result.outcome == ReplaceOutcome.REPLACED:
            log.info("remote_replace_succeeded", size=len(new_bytes))
        elif result.outcome == ReplaceOutcome.INCONSISTENT:
            log.error("remote_replace_inconsistent", error=result.error)
        else:
            log.warning("remote_replace_failed", error=result.error)

        callguard.metrics.inc_remote_replacements(result.outcome.value)
        return result

    async def _step(self, operation: Awaitable[T]) -> T:
        async with asyncio.timeout(self.settings.sftp_operation_timeout_seconds):
            return await operation

    async def _upload(self, sftp: asyncssh.SFTPClient, path: str, data: bytes) -> None:
        f = await sftp.open(path, "wb")
        try:
            await f.write(data)
        finally:
            await f.close()

    async def _swap(
        self,
        sftp: asyncssh.SFTPClient,
        target_path: str,
        temp_path: str,
        new_bytes: bytes,
        method: str,
    ) -> ReplaceResult:
        try:
            await self._step(self._upload(sftp, temp_path, new_bytes))
            attrs = await self._step(sftp.stat(temp_path))
            if attrs.size != len(new_bytes):
                raise RemoteStorageError(
                    f"Uploaded size {attrs.size} does not match {len(new_bytes)} bytes"
                )
            if self.use_posix_rename:
                await self._step(sftp.posix_rename(temp_path, target_path))
        except (asyncssh.Error, OSError, RemoteStorageError) as e:
            await self._discard_temp(sftp, temp_path)
            return ReplaceResult(
                ReplaceOutcome.FAILED, target_path, temp_path, method, _describe(e)
            )

        if self.use_posix_rename:
            return ReplaceResult(ReplaceOutcome.REPLACED, target_path, temp_path, method)

        try:
            await self._step(sftp.remove(target_path))
        except (asyncssh.Error, OSError) as e:
            # A timeout or dropped reply can arrive after the server already
            # deleted the original, so check before treating this as safe.
            exists = await self._exists(sftp, target_path)
            if exists is None:
                return ReplaceResult(
                    ReplaceOutcome.INCONSISTENT,
                    target_path,
                    temp_path,
                    method,
                    f"Delete failed and target state is unknown: {_describe(e)}",
                )
            if exists:
                await self._discard_temp(sftp, temp_path)
                return ReplaceResult(
                    ReplaceOutcome.FAILED, target_path, temp_path, method, _describe(e)
                )
            logger.warning(
                "remote_delete_error_after_removal",
                target_path=target_path,
                error=_describe(e),
            )

        try:
            await self._step(sftp.rename(temp_path, target_path))
        except (asyncssh.Error, OSError) as e:
            return ReplaceResult(
                ReplaceOutcome.INCONSISTENT, target_path, temp_path, method, _describe(e)
            )

        return ReplaceResult(ReplaceOutcome.REPLACED, target_path, temp_path, method)

    async def _exists(self, sftp: asyncssh.SFTPClient, path: str) -> bool | None:
        """Whether ``path`` exists, or None when the host cannot tell us."""
        try:
            await self._step(sftp.stat(path))
        except asyncssh.SFTPNoSuchFile:
            return False
        except (asyncssh.Error, OSError) as e:
            logger.warning("remote_stat_failed", path=path, error=_describe(e))
            return None
        return True

    async def _discard_temp(self, sftp: asyncssh.SFTPClient, temp_path: str) -> None:
        try:
            await self._step(sftp.remove(temp_path))
        except asyncssh.SFTPNoSuchFile:
            pass
        except (asyncssh.Error, OSError) as e:
            logger.warning(
                "remote_temp_cleanup_failed", temp_path=temp_path, error=_describe(e)
            )
