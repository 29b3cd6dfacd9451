"""Connection provisioning with guaranteed release.

acquire() turns a ConnectionSpec into a ScopedConnection. Direct targets
are served from a keyed psycopg_pool registry (one pool per target and
credential, idle connections expire); tunneled targets get a dedicated
connection through a per-request SshTunnel. Either way the caller holds
the connection exclusively and release happens exactly once.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, NamedTuple

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout

from pgconsole.core.config import Settings
from pgconsole.core.exceptions import ConnectionRefused, MissingParameter, TunnelFailure
from pgconsole.core.logging import get_logger
from pgconsole.core.tunnel import SshTunnel

if TYPE_CHECKING:
    from collections.abc import Callable

    from pgconsole.core.models import ConnectionSpec


def validate_spec(spec: ConnectionSpec) -> None:
    """Raise MissingParameter naming every absent required field."""
    missing = [
        label
        for label, value in (
            ("host", spec.host),
            ("username", spec.username),
            ("database", spec.database),
        )
        if not value
    ]
    tunnel = spec.tunnel
    if tunnel is not None:
        if not tunnel.host:
            missing.append("tunnel.host")
        if not tunnel.username:
            missing.append("tunnel.username")
        if not tunnel.uses_key and tunnel.password is None:
            missing.append("tunnel.password or tunnel.private_key")
    if missing:
        msg = f"Missing required connection parameter(s): {', '.join(missing)}"
        raise MissingParameter(msg)


def connection_kwargs(
    spec: ConnectionSpec,
    settings: Settings,
    *,
    host: str | None = None,
    port: int | None = None,
) -> dict[str, Any]:
    return {
        "host": host or spec.host,
        "port": port or spec.port,
        "dbname": spec.database,
        "user": spec.username,
        "password": spec.password_value(),
        "sslmode": spec.sslmode,
        "connect_timeout": settings.connect_timeout,
        "application_name": settings.application_name,
    }


def open_connection(
    spec: ConnectionSpec,
    settings: Settings,
    *,
    host: str | None = None,
    port: int | None = None,
    connect: Callable[..., psycopg.Connection[Any]] = psycopg.connect,
) -> psycopg.Connection[Any]:
    """Open a dedicated autocommit connection, mapping failures to ConnectionRefused."""
    try:
        return connect(
            **connection_kwargs(spec, settings, host=host, port=port),
            autocommit=True,
        )
    except psycopg.OperationalError as e:
        msg = f"Connection failed to {spec.safe_description()}: {e}"
        raise ConnectionRefused(msg) from e


class ScopedConnection:
    """An exclusively held connection released exactly once.

    Use as a context manager; ``__enter__`` yields the psycopg connection.
    """

    def __init__(
        self,
        connection: psycopg.Connection[Any],
        release: Callable[[psycopg.Connection[Any]], None],
        *,
        tunnel: SshTunnel | None = None,
    ) -> None:
        self.connection = connection
        self.tunnel = tunnel
        self._release = release
        self._released = False
        self._lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def __enter__(self) -> psycopg.Connection[Any]:
        return self.connection

    def __exit__(self, *exc: object) -> None:
        self.release()

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        try:
            self._release(self.connection)
        finally:
            if self.tunnel is not None:
                self.tunnel.close()


class PoolKey(NamedTuple):
    host: str
    port: int
    database: str
    username: str
    sslmode: str
    secret_digest: str


def pool_key(spec: ConnectionSpec) -> PoolKey:
    digest = hashlib.sha256((spec.password_value() or "").encode()).hexdigest()
    return PoolKey(
        spec.host, spec.port, spec.database, spec.username, spec.sslmode, digest
    )


class PoolRegistry:
    """Keyed connection pools for direct (untunneled) targets.

    At most ``settings.max_pools`` pools are kept, least recently used
    first out, and a pool unused for ``settings.pool_max_idle`` seconds is
    closed on the next checkout. Connections already handed out from an
    evicted pool stay usable and are closed when returned.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        pool_factory: Callable[..., ConnectionPool] = ConnectionPool,
        connect: Callable[..., psycopg.Connection[Any]] = psycopg.connect,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self._pool_factory = pool_factory
        self._connect = connect
        self._clock = clock
        self._pools: OrderedDict[PoolKey, ConnectionPool] = OrderedDict()
        self._last_used: dict[PoolKey, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pools)

    def checkout(
        self, spec: ConnectionSpec
    ) -> tuple[ConnectionPool, psycopg.Connection[Any]]:
        key = pool_key(spec)
        pool = self._pool_for(spec, key)
        self._evict(keep=key)
        try:
            conn = pool.getconn(timeout=self.settings.connect_timeout)
        except PoolTimeout as e:
            msg = f"Timed out waiting for a connection to {spec.safe_description()}"
            raise ConnectionRefused(msg) from e
        return pool, conn

    def _touch(self, key: PoolKey) -> None:
        self._pools.move_to_end(key)
        self._last_used[key] = self._clock()

    def _pool_for(self, spec: ConnectionSpec, key: PoolKey) -> ConnectionPool:
        with self._lock:
            pool = self._pools.get(key)
            if pool is not None:
                self._touch(key)
                return pool

        # First use of this target: connect once directly so a bad password or
        # unreachable host surfaces with the server's message, not a pool timeout.
        probe = open_connection(spec, self.settings, connect=self._connect)
        probe.close()

        pool = self._pool_factory(
            conninfo="",
            kwargs={
                **connection_kwargs(spec, self.settings),
                "autocommit": True,
            },
            min_size=0,
            max_size=self.settings.pool_max_size,
            max_idle=self.settings.pool_max_idle,
            timeout=self.settings.connect_timeout,
            check=ConnectionPool.check_connection,
            name=f"pgconsole-{spec.host}:{spec.port}/{spec.database}",
            open=True,
        )
        with self._lock:
            existing = self._pools.setdefault(key, pool)
            self._touch(key)
        if existing is not pool:
            pool.close()
        get_logger(__name__).debug("connection pool created", target=spec.safe_description())
        return existing

    def _evict(self, keep: PoolKey) -> None:
        now = self._clock()
        stale: list[ConnectionPool] = []
        with self._lock:
            for key in list(self._pools):
                if key != keep and now - self._last_used[key] > self.settings.pool_max_idle:
                    stale.append(self._drop(key))
            while len(self._pools) > self.settings.max_pools:
                oldest = next(iter(self._pools))
                if oldest == keep:
                    break
                stale.append(self._drop(oldest))
        for pool in stale:
            pool.close()
        if stale:
            get_logger(__name__).debug("connection pools evicted", count=len(stale))

    def _drop(self, key: PoolKey) -> ConnectionPool:
        self._last_used.pop(key, None)
        return self._pools.pop(key)

    def close(self) -> None:
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
            self._last_used.clear()
        for pool in pools:
            pool.close()


_default_registry: PoolRegistry | None = None
_default_lock = threading.Lock()


def default_registry(settings: Settings | None = None) -> PoolRegistry:
    """Process-wide registry, created on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = PoolRegistry(settings)
        return _default_registry


def close_default_registry() -> None:
    global _default_registry
    with _default_lock:
        registry, _default_registry = _default_registry, None
    if registry is not None:
        registry.close()


def _close(connection: psycopg.Connection[Any]) -> None:
    connection.close()


def acquire(
    spec: ConnectionSpec,
    settings: Settings | None = None,
    *,
    pools: PoolRegistry | None = None,
    tunnel_factory: Callable[..., SshTunnel] = SshTunnel,
    connect: Callable[..., psycopg.Connection[Any]] = psycopg.connect,
) -> ScopedConnection:
    """Provision an exclusive connection for one request.

    With ``spec.tunnel`` the tunnel is opened first and the connection
    targets its local endpoint; a tunnel failure means no connection is
    attempted. Without a tunnel the connection comes from ``pools`` when
    given, else a dedicated connection is opened.
    """
    settings = settings or Settings()
    validate_spec(spec)
    log = get_logger(__name__)

    if spec.tunnel is not None:
        tunnel = tunnel_factory(spec.tunnel, settings)
        try:
            endpoint = tunnel.open(spec.host, spec.port)
        except TunnelFailure:
            raise
        except Exception as e:
            tunnel.close()
            msg = f"SSH tunnel setup failed for {spec.tunnel.safe_description()}: {e}"
            raise TunnelFailure(msg) from e
        try:
            conn = open_connection(
                spec, settings, host=endpoint.host, port=endpoint.port, connect=connect
            )
        except BaseException:
            tunnel.close()
            raise
        log.debug("connection acquired", target=spec.safe_description(), tunneled=True)
        return ScopedConnection(conn, _close, tunnel=tunnel)

    if pools is None:
        conn = open_connection(spec, settings, connect=connect)
        log.debug("connection acquired", target=spec.safe_description(), pooled=False)
        return ScopedConnection(conn, _close)

    pool, conn = pools.checkout(spec)
    log.debug("connection acquired", target=spec.safe_description(), pooled=True)
    return ScopedConnection(conn, pool.putconn)
