"""SSH utilities built on top of Paramiko."""

from __future__ import annotations

import logging
import socket
from contextlib import suppress
from typing import Sequence

import paramiko
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_delay, wait_fixed

from ephstack_core.errors import ProviderError, RemoteCommandError, UnreachableError
from services.base import RemoteSession, SSHService


logger = logging.getLogger(__name__)

_BANNER_PREFIX = b"SSH-"


class _SSHNotReady(Exception):
    """SSH daemon not answering yet - retry."""


class ParamikoSession(RemoteSession):
    """Remote session wrapping a connected ``paramiko.SSHClient``."""

    def __init__(self, client: paramiko.SSHClient, host: str, *, timeout: int = 60) -> None:
        self._client = client
        self._host = host
        self._timeout = timeout

    def run(self, commands: Sequence[str]) -> list[str]:
        return [self._exec(command) for command in commands]

    def _exec(self, command: str) -> str:
        logger.debug("Executing remote command", extra={"host": self._host, "command": command})
        try:
            stdin, stdout, stderr = self._client.exec_command(command, timeout=self._timeout)
        except paramiko.SSHException as exc:
            raise ProviderError(f"Failed to execute remote command on {self._host}: {exc}") from exc
        try:
            exit_code = stdout.channel.recv_exit_status()
            output = stdout.read().decode("utf-8", "replace")
            error_output = stderr.read().decode("utf-8", "replace")
        finally:
            with suppress(Exception):
                stdin.close()
            with suppress(Exception):
                stdout.close()
            with suppress(Exception):
                stderr.close()

        if exit_code != 0:
            logger.error("Remote command failed", extra={"exit_code": exit_code, "stderr": error_output})
            raise RemoteCommandError(command, exit_code, error_output)

        return output

    def close(self) -> None:
        with suppress(Exception):
            self._client.close()


class ParamikoSSHService(SSHService):
    """Default SSH implementation using Paramiko transport."""

    def __init__(self, *, connect_timeout: int = 30, command_timeout: int = 60, poll_interval: float = 5.0) -> None:
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout
        self._poll_interval = poll_interval

    def _build_client(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        return client

    def wait_for_sshd(self, host: str, port: int, *, timeout: float) -> None:
        logger.debug("Waiting for SSH daemon", extra={"host": host, "port": port, "timeout": timeout})

        @retry(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(self._poll_interval),
            retry=retry_if_exception_type(_SSHNotReady),
        )
        def _probe() -> None:
            try:
                with socket.create_connection((host, port), timeout=self._connect_timeout) as sock:
                    banner = sock.recv(256)
            except OSError:
                raise _SSHNotReady() from None
            if not banner.startswith(_BANNER_PREFIX):
                raise _SSHNotReady()

        try:
            _probe()
        except RetryError as exc:
            raise UnreachableError(host, port, timeout) from exc
        logger.debug("SSH daemon is answering", extra={"host": host, "port": port})

    def open_session(
        self,
        host: str,
        username: str,
        *,
        port: int = 22,
        password: str | None = None,
        key_path: str | None = None,
    ) -> ParamikoSession:
        logger.debug(
            "Opening SSH session",
            extra={"host": host, "port": port, "username": username, "auth": "password" if password else "key"},
        )
        client = self._build_client()
        try:
            client.connect(
                hostname=host,
                port=port,
                username=username,
                password=password,
                key_filename=key_path,
                timeout=self._connect_timeout,
                allow_agent=password is None,
                look_for_keys=password is None,
            )
        except (paramiko.SSHException, OSError) as exc:
            logger.error("SSH connection failed", extra={"host": host, "port": port}, exc_info=exc)
            with suppress(Exception):
                client.close()
            raise ProviderError(f"Failed to open SSH session to {host}:{port}: {exc}") from exc
        return ParamikoSession(client, host, timeout=self._command_timeout)
