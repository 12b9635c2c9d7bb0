"""
Delivery of partner documents to the exchange directory.

The partner polls the outgoing directory, so a file must never be visible
under its final name before it is complete.  ``deliver`` therefore writes to
``<name>.part`` and then renames in one step; the rename is the only
operation that creates the final name.

Two clients implement the same small interface:

* ``SftpClient``          – paramiko session to the partner's SFTP server
* ``LocalDirectoryClient`` – a local or mounted folder (dev / tests)

Every failure inside a client surfaces as ``TransportError`` carrying the
stage (``connect``, ``auth``, ``write``, ``rename`` …) so callers can tell it
apart from validation problems.
"""

from __future__ import annotations

import io
import logging
import os
import posixpath
import socket
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import paramiko

from edi_outbound.core.config import Settings
from edi_outbound.core.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".part"


@contextmanager
def _stage(stage: str, target: str) -> Iterator[None]:
    """Translate transport-level exceptions raised in the block into TransportError."""
    try:
        yield
    except TransportError:
        raise
    except paramiko.AuthenticationException as exc:
        raise TransportError(f"authentication failed for {target}: {exc}", stage="auth", cause=exc) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise TransportError(f"timed out on {target}", stage=stage, cause=exc) from exc
    except (paramiko.SSHException, OSError, EOFError) as exc:
        raise TransportError(f"{exc.__class__.__name__} on {target}: {exc}", stage=stage, cause=exc) from exc


# --------------------------------------------------------------------------- #
# client interface                                                            #
# --------------------------------------------------------------------------- #
class RemoteDirectoryClient(ABC):
    """A connected session on the exchange; use as a context manager."""

    def join(self, directory: str, name: str) -> str:
        return posixpath.join(directory.rstrip("/") or "/", name)

    @abstractmethod
    def write_file(self, path: str, data: bytes) -> None:
        raise NotImplementedError

    @abstractmethod
    def rename(self, src: str, dst: str) -> None:
        """Atomically move *src* to *dst*, replacing *dst* if it exists."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, path: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def exists(self, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "RemoteDirectoryClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class SftpClient(RemoteDirectoryClient):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        *,
        timeout: float = 30.0,
        known_hosts: str = "",
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.known_hosts = known_hosts
        self._ssh: paramiko.SSHClient | None = None
        self._sftp: paramiko.SFTPClient | None = None

    @property
    def target(self) -> str:
        return f"sftp://{self.username}@{self.host}:{self.port}"

    def connect(self) -> "SftpClient":
        ssh = paramiko.SSHClient()
        if self.known_hosts:
            ssh.load_host_keys(self.known_hosts)
            ssh.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            ssh.set_missing_host_key_policy(paramiko.WarningPolicy())
        try:
            with _stage("connect", self.target):
                ssh.connect(
                    self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    timeout=self.timeout,
                    banner_timeout=self.timeout,
                    auth_timeout=self.timeout,
                    look_for_keys=False,
                    allow_agent=False,
                )
                sftp = ssh.open_sftp()
                sftp.get_channel().settimeout(self.timeout)
        except TransportError:
            ssh.close()
            raise
        self._ssh, self._sftp = ssh, sftp
        logger.debug("sftp connected %s", self.target)
        return self

    def _client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            raise TransportError(f"not connected to {self.target}", stage="connect")
        return self._sftp

    def write_file(self, path: str, data: bytes) -> None:
        with _stage("write", f"{self.target}{path}"):
            self._client().putfo(io.BytesIO(data), path, file_size=len(data), confirm=True)

    def rename(self, src: str, dst: str) -> None:
        # posix-rename@openssh.com replaces dst atomically; plain SFTP rename fails if dst exists
        with _stage("rename", f"{self.target}{dst}"):
            self._client().posix_rename(src, dst)

    def remove(self, path: str) -> None:
        with _stage("remove", f"{self.target}{path}"):
            self._client().remove(path)

    def exists(self, path: str) -> bool:
        try:
            with _stage("stat", f"{self.target}{path}"):
                self._client().stat(path)
        except TransportError as exc:
            if isinstance(exc.cause, FileNotFoundError):
                return False
            raise
        return True

    def close(self) -> None:
        sftp, ssh = self._sftp, self._ssh
        self._sftp = self._ssh = None
        if sftp is not None:
            sftp.close()
        if ssh is not None:
            ssh.close()
            logger.debug("sftp closed %s", self.target)


class LocalDirectoryClient(RemoteDirectoryClient):
    """Exchange directory on the local filesystem (or a mounted share)."""

    def join(self, directory: str, name: str) -> str:
        return os.path.join(directory, name)

    def write_file(self, path: str, data: bytes) -> None:
        with _stage("write", path):
            p = Path(path)
            p.parent.mkdir(parents=True, exist_ok=True)
            with open(p, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())

    def rename(self, src: str, dst: str) -> None:
        with _stage("rename", dst):
            os.replace(src, dst)

    def remove(self, path: str) -> None:
        with _stage("remove", path):
            os.remove(path)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def close(self) -> None:
        return None


# --------------------------------------------------------------------------- #
# protocol                                                                    #
# --------------------------------------------------------------------------- #
def deliver(client: RemoteDirectoryClient, directory: str, filename: str, content: str | bytes) -> str:
    """Write *content* as *directory*/*filename* via temp file + rename.

    Returns the final path.  On a failed rename the temp file is removed when
    possible; the final name is never created in that case.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    final_path = client.join(directory, filename)
    temp_path = final_path + TEMP_SUFFIX

    client.write_file(temp_path, data)
    try:
        client.rename(temp_path, final_path)
    except TransportError:
        _discard(client, temp_path)
        raise
    logger.info("delivered %s (%d bytes)", final_path, len(data))
    return final_path


def _discard(client: RemoteDirectoryClient, path: str) -> None:
    try:
        client.remove(path)
    except TransportError as exc:
        logger.warning("could not remove temp file %s: %s", path, exc)


# --------------------------------------------------------------------------- #
# factory                                                                     #
# --------------------------------------------------------------------------- #
ClientFactory = Callable[[], RemoteDirectoryClient]


def target_directory(settings: Settings) -> str:
    return settings.local_out_dir if settings.transport == "local" else settings.sftp_out_dir


def open_transport(settings: Settings) -> RemoteDirectoryClient:
    """Open a connected client for the configured transport."""
    settings.validate_transfer()
    if settings.transport == "local":
        return LocalDirectoryClient()
    if settings.transport == "sftp":
        return SftpClient(
            settings.sftp_host,
            settings.sftp_port,
            settings.sftp_user,
            settings.sftp_password,
            timeout=settings.sftp_timeout,
            known_hosts=settings.sftp_known_hosts,
        ).connect()
    raise ConfigurationError(f"unknown transport {settings.transport!r}")


def transport_factory(settings: Settings) -> ClientFactory:
    return lambda: open_transport(settings)


__all__ = [
    "TEMP_SUFFIX",
    "ClientFactory",
    "LocalDirectoryClient",
    "RemoteDirectoryClient",
    "SftpClient",
    "deliver",
    "open_transport",
    "target_directory",
    "transport_factory",
]
