"""Async SFTP client factory using asyncssh.

Every operation against a call owner's PBX host opens its own SSH
connection and closes it on exit, including on cancellation.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import asyncssh

from callguard.config import SSH_BASE_PATH_DEFAULT, Settings, get_settings

if TYPE_CHECKING:
    from callguard.db.models import CallOwnerModel


class RemoteStorageError(Exception):
    """A remote storage operation failed."""

    pass


class RemoteFileNotFoundError(RemoteStorageError):
    """The requested remote file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Remote file not found: {path}")


@dataclass(frozen=True)
class CallOwnerCredentials:
    """SSH credentials of the PBX host that stores a call owner's recordings."""

    host: str
    username: str
    port: int = 22
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None, repr=False)
    passphrase: str | None = field(default=None, repr=False)
    base_path: str = SSH_BASE_PATH_DEFAULT

    @classmethod
    def from_model(cls, owner: CallOwnerModel) -> CallOwnerCredentials:
        """Build credentials from a call owner row.

        Raises:
            RemoteStorageError: If the owner has no SSH host or username
        """
        if not owner.ssh_host or not owner.ssh_username:
            raise RemoteStorageError(
                f"Call owner {owner.id} has no SSH host or username configured"
            )
        return cls(
            host=owner.ssh_host,
            username=owner.ssh_username,
            port=owner.ssh_port or 22,
            password=owner.ssh_password,
            private_key=owner.ssh_private_key,
            passphrase=owner.ssh_passphrase,
            base_path=owner.ssh_base_path or SSH_BASE_PATH_DEFAULT,
        )


def _connect_options(owner: CallOwnerCredentials, settings: Settings) -> dict:
    options: dict = {
        "host": owner.host,
        "port": owner.port,
        "username": owner.username,
        "known_hosts": settings.sftp_known_hosts,
        "connect_timeout": settings.sftp_connect_timeout_seconds,
        # Never fall back to keys or agents of the service account
        "client_keys": None,
        "agent_path": None,
    }

    if owner.private_key:
        try:
            key = asyncssh.import_private_key(owner.private_key, owner.passphrase)
        except (asyncssh.KeyImportError, ValueError) as e:
            raise RemoteStorageError(f"Invalid SSH private key: {e}") from e
        options["client_keys"] = [key]
    elif owner.password:
        options["password"] = owner.password
    else:
        raise RemoteStorageError("SSH password or private key is required")

    return options


@asynccontextmanager
async def get_sftp_client(
    owner: CallOwnerCredentials,
    settings: Settings | None = None,
) -> AsyncIterator[asyncssh.SFTPClient]:
    """Async context manager for an SFTP session on the owner's host.

    Usage:
        async with get_sftp_client(owner) as sftp:
            attrs = await sftp.stat(path)

    Raises:
        RemoteStorageError: If the connection or SFTP subsystem fails to start
    """
    if settings is None:
        settings = get_settings()

    options = _connect_options(owner, settings)

    try:
        conn = await asyncssh.connect(**options)
    except (OSError, asyncssh.Error) as e:
        raise RemoteStorageError(
            f"SSH connection to {owner.host}:{owner.port} failed: {e}"
        ) from e

    async with conn:
        try:
            sftp = await conn.start_sftp_client()
        except asyncssh.Error as e:
            raise RemoteStorageError(f"SFTP session on {owner.host} failed: {e}") from e

        async with sftp:
            yield sftp
