"""SSH local port forwarding for database connections.

One SshTunnel serves one request: it authenticates to the jump host,
opens a single direct-tcpip channel to the database, binds an
OS-assigned port on 127.0.0.1 and relays exactly one downstream
connection over that channel.

State machine: IDLE -> CONNECTING -> READY -> CLOSED, with
CONNECTING -> FAILED on handshake, auth or forwarding errors.
"""

from __future__ import annotations

import contextlib
import io
import select
import socket
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import paramiko

from pgconsole.core.config import Settings
from pgconsole.core.exceptions import (
    TunnelAuthError,
    TunnelFailure,
    TunnelNetworkError,
)
from pgconsole.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from pgconsole.core.models import TunnelSpec

LOCAL_HOST = "127.0.0.1"

_BUFFER_SIZE = 32768
_POLL_INTERVAL = 0.5

_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


class TunnelState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class TunnelEndpoint:
    host: str
    port: int


def load_private_key(material: str, passphrase: str | None = None) -> paramiko.PKey:
    """Parse PEM/OpenSSH key text, trying each supported key type."""
    last_error: Exception | None = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(material), password=passphrase)
        except paramiko.PasswordRequiredException as e:
            msg = "SSH private key is encrypted and no passphrase was given"
            raise TunnelAuthError(msg) from e
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    msg = "Unable to load SSH private key: wrong passphrase or unsupported key type"
    raise TunnelAuthError(msg) from last_error


class SshTunnel:
    """Single-use forwarding endpoint to ``target_host:target_port``."""

    def __init__(
        self,
        spec: TunnelSpec,
        settings: Settings | None = None,
        *,
        client_factory: Callable[[], Any] = paramiko.SSHClient,
    ) -> None:
        self.spec = spec
        self.settings = settings or Settings()
        self.state = TunnelState.IDLE
        self.endpoint: TunnelEndpoint | None = None
        self._client_factory = client_factory
        self._client: Any = None
        self._channel: Any = None
        self._listener: socket.socket | None = None
        self._downstream: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._lock = threading.Lock()

    def __enter__(self) -> SshTunnel:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- lifecycle --

    def open(self, target_host: str, target_port: int) -> TunnelEndpoint:
        """Authenticate, open the forward channel and bind the local endpoint."""
        log = get_logger(__name__)
        with self._lock:
            if self.state is not TunnelState.IDLE:
                msg = f"Tunnel cannot be opened from state '{self.state}'"
                raise TunnelFailure(msg)
            self.state = TunnelState.CONNECTING

        log.debug(
            "opening ssh tunnel",
            ssh=self.spec.safe_description(),
            target=f"{target_host}:{target_port}",
        )
        try:
            self._client = self._handshake()
            self._channel = self._open_channel(target_host, target_port)
            self._listener = self._bind_local()
        except TunnelFailure as e:
            self._fail(str(e))
            raise
        except Exception as e:
            self._fail(str(e))
            msg = f"SSH tunnel to {self.spec.safe_description()} failed: {e}"
            raise TunnelNetworkError(msg) from e

        port = self._listener.getsockname()[1]
        self.endpoint = TunnelEndpoint(LOCAL_HOST, port)
        self._thread = threading.Thread(
            target=self._serve, name=f"pgconsole-tunnel-{port}", daemon=True
        )
        with self._lock:
            self.state = TunnelState.READY
        self._thread.start()
        log.debug("ssh tunnel ready", local_port=port)
        return self.endpoint

    def close(self) -> None:
        """Tear down the tunnel. No-op unless the tunnel is READY."""
        with self._lock:
            if self.state is not TunnelState.READY:
                return
            self.state = TunnelState.CLOSED
        self._stop.set()
        self._release_resources()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        get_logger(__name__).debug("ssh tunnel closed")

    # -- setup steps --

    def _handshake(self) -> Any:
        spec = self.spec
        client = self._client_factory()
        client.load_system_host_keys()
        if self.settings.strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        kwargs: dict[str, Any] = {
            "hostname": spec.host,
            "port": spec.port,
            "username": spec.username,
            "timeout": self.settings.connect_timeout,
            "banner_timeout": self.settings.connect_timeout,
            "auth_timeout": self.settings.connect_timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        try:
            kwargs.update(self._credentials())
        except TunnelAuthError:
            client.close()
            raise

        where = spec.safe_description()
        try:
            client.connect(**kwargs)
        except paramiko.BadHostKeyException as e:
            client.close()
            msg = f"SSH host key for {spec.host} does not match known_hosts"
            raise TunnelAuthError(msg) from e
        except paramiko.AuthenticationException as e:
            client.close()
            msg = f"SSH authentication failed for {where}"
            raise TunnelAuthError(msg) from e
        except paramiko.SSHException as e:
            client.close()
            msg = f"SSH handshake with {where} failed: {e}"
            raise TunnelNetworkError(msg) from e
        except OSError as e:
            client.close()
            msg = f"Cannot reach SSH host {where}: {e}"
            raise TunnelNetworkError(msg) from e
        return client

    def _credentials(self) -> dict[str, Any]:
        spec = self.spec
        if spec.uses_key:
            passphrase = spec.passphrase.get_secret_value() if spec.passphrase else None
            pkey = load_private_key(
                spec.private_key.get_secret_value(),  # type: ignore[union-attr]
                passphrase,
            )
            return {"pkey": pkey}
        if spec.password is not None:
            return {"password": spec.password.get_secret_value()}
        msg = "No SSH password or private key supplied"
        raise TunnelAuthError(msg)

    def _open_channel(self, target_host: str, target_port: int) -> Any:
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            msg = "SSH transport closed before forwarding could start"
            raise TunnelNetworkError(msg)
        try:
            return transport.open_channel(
                "direct-tcpip",
                (target_host, target_port),
                (LOCAL_HOST, 0),
                timeout=self.settings.connect_timeout,
            )
        except paramiko.ChannelException as e:
            msg = f"SSH server refused forwarding to {target_host}:{target_port}: {e}"
            raise TunnelNetworkError(msg) from e
        except (paramiko.SSHException, OSError) as e:
            msg = f"Forwarding to {target_host}:{target_port} failed: {e}"
            raise TunnelNetworkError(msg) from e

    def _bind_local(self) -> socket.socket:
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((LOCAL_HOST, 0))
            listener.listen(1)
            listener.settimeout(self.settings.connect_timeout)
        except OSError as e:
            listener.close()
            msg = f"Cannot bind local tunnel endpoint: {e}"
            raise TunnelNetworkError(msg) from e
        return listener

    def _fail(self, reason: str) -> None:
        with self._lock:
            self.state = TunnelState.FAILED
        self._release_resources()
        get_logger(__name__).warning(
            "ssh tunnel failed", ssh=self.spec.safe_description(), error=reason
        )

    # -- forwarding --

    def _serve(self) -> None:
        log = get_logger(__name__)
        listener = self._listener
        if listener is None:
            return
        try:
            downstream, _ = listener.accept()
        except OSError as e:
            if not self._stop.is_set():
                log.warning("tunnel endpoint accept failed", error=str(e))
            return
        finally:
            listener.close()
        self._downstream = downstream
        try:
            self._pump(downstream, self._channel)
        finally:
            downstream.close()
            self._channel.close()

    def _pump(self, downstream: socket.socket, channel: Any) -> None:
        log = get_logger(__name__)
        while not self._stop.is_set():
            try:
                readable, _, _ = select.select(
                    [downstream, channel], [], [], _POLL_INTERVAL
                )
                if downstream in readable:
                    data = downstream.recv(_BUFFER_SIZE)
                    if not data:
                        break
                    channel.sendall(data)
                if channel in readable:
                    data = channel.recv(_BUFFER_SIZE)
                    if not data:
                        break
                    downstream.sendall(data)
            except (OSError, ValueError, EOFError, paramiko.SSHException) as e:
                if not self._stop.is_set():
                    log.debug("tunnel relay stopped", error=str(e))
                break

    def _release_resources(self) -> None:
        for sock in (self._listener, self._downstream):
            if sock is None:
                continue
            # shutdown wakes a thread blocked in accept/recv on this socket
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            sock.close()
        if self._channel is not None:
            self._channel.close()
        if self._client is not None:
            self._client.close()
