"""Upstream proxy servers and the pool that chooses one per connection."""

from __future__ import annotations

import collections
import dataclasses
import datetime
import random
import threading
from typing import Iterable, Sequence

from .applog import LIMIT_TIME_HISTORY_NUMBER, log_with_id
from .rules import RuleEnum
from .utiltools import get_random_generator

UNKNOWN_PING = -1


def now() -> datetime.datetime:
    """Return the current local wall-clock time."""
    return datetime.datetime.now()


def format_time_point(moment: datetime.datetime) -> str:
    """Format ``moment`` as ``YYYY.mm.dd-HH.MM.SS.<milliseconds>``."""
    return f"{moment.strftime('%Y.%m.%d-%H.%M.%S')}.{moment.microsecond // 1000}"


@dataclasses.dataclass(frozen=True)
class UpstreamConfig:
    """Configuration of one upstream proxy server."""

    host: str
    port: int
    name: str = ""
    auth_user: str = ""
    auth_pwd: str = ""
    disable: bool = False
    slow_impl: bool = False


@dataclasses.dataclass
class PoolConfig:
    """Settings that govern upstream selection and health checking."""

    upstreams: Sequence[UpstreamConfig] = ()
    upstream_select_rule: RuleEnum = RuleEnum.random
    server_change_time: datetime.timedelta = datetime.timedelta(seconds=5)
    disable_connect_test: bool = False
    tradition_tcp_relay: bool = False
    tcp_check_start: datetime.timedelta = datetime.timedelta(seconds=1)
    connect_check_start: datetime.timedelta = datetime.timedelta(seconds=1)
    tcp_check_period: datetime.timedelta = datetime.timedelta(seconds=5)
    connect_check_period: datetime.timedelta = datetime.timedelta(seconds=300)
    addition_check_period: datetime.timedelta = datetime.timedelta(seconds=10)
    sleep_time: datetime.timedelta = datetime.timedelta(minutes=30)
    test_remote_host: str = "www.google.com"
    test_remote_port: int = 443


class UpstreamServer:
    """One upstream proxy server and what health checks have learnt about it."""

    def __init__(
        self,
        index: int,
        name: str,
        host: str,
        port: int,
        auth_user: str = "",
        auth_pwd: str = "",
        disable: bool = False,
        slow_impl: bool = False,
        tradition_tcp_relay: bool = False,
    ) -> None:
        self.lock = threading.RLock()
        self.index = index
        self.name = name
        self.host = host
        self.port = port
        self.auth_user = auth_user
        self.auth_pwd = auth_pwd
        self.disable = disable
        self.is_manual_disable = disable
        self.slow_impl = slow_impl
        self.tradition_tcp_relay = tradition_tcp_relay

        self.last_online_time: datetime.datetime | None = None
        self.last_connect_time: datetime.datetime | None = None
        self.last_connect_failed = True
        self.last_connect_check_result = ""
        self.is_offline = True
        self.connect_count = 0
        self.last_online_ping = UNKNOWN_PING
        self.last_connect_ping = UNKNOWN_PING
        self.tcp_ping_history: collections.deque[int] = collections.deque(maxlen=LIMIT_TIME_HISTORY_NUMBER)
        self.http_ping_history: collections.deque[int] = collections.deque(maxlen=LIMIT_TIME_HISTORY_NUMBER)

    @classmethod
    def from_config(cls, index: int, config: UpstreamConfig, tradition_tcp_relay: bool = False) -> "UpstreamServer":
        """Build a server from its configuration entry."""
        return cls(
            index,
            config.name,
            config.host,
            config.port,
            config.auth_user,
            config.auth_pwd,
            config.disable,
            config.slow_impl,
            tradition_tcp_relay,
        )

    def describe(self) -> str:
        """Return a one-line summary of the server."""
        return f"[index:{self.index}, name:{self.name}, host:{self.host}, port:{self.port}, ]"

    def update_online_time(self) -> None:
        """Mark the server online as of now."""
        with self.lock:
            self.is_offline = False
            self.last_online_time = now()

    def record_tcp_success(self, ping: int) -> None:
        """Record a successful TCP reachability test taking ``ping`` milliseconds."""
        with self.lock:
            if self.is_offline:
                self.last_connect_failed = False
            self.last_online_time = now()
            self.is_offline = False
            self.last_online_ping = ping
            self.tcp_ping_history.append(ping)

    def record_tcp_failure(self) -> None:
        """Record a failed TCP reachability test."""
        with self.lock:
            self.is_offline = True
            self.last_online_ping = UNKNOWN_PING
            self.tcp_ping_history.append(UNKNOWN_PING)

    def record_connect_success(self, ping: int, status_code: int) -> None:
        """Record a successful request through the proxy that got ``status_code``."""
        with self.lock:
            self.last_connect_time = now()
            self.last_connect_failed = False
            self.last_connect_check_result = f"status_code:{int(status_code)}"
            self.last_connect_ping = ping
            self.http_ping_history.append(ping)

    def record_connect_failure(self) -> None:
        """Record a failed request through the proxy."""
        with self.lock:
            self.last_connect_failed = True
            self.last_connect_ping = UNKNOWN_PING
            self.http_ping_history.append(UNKNOWN_PING)


def _flag(value: bool) -> str:
    return "1" if value else "0"


def _time_text(moment: datetime.datetime | None) -> str:
    return "empty" if moment is None else format_time_point(moment)


class UpstreamPool:
    """The configured upstream servers and the rules for choosing among them."""

    def __init__(self, config: PoolConfig | None = None, rng: random.Random | None = None) -> None:
        self._lock = threading.RLock()
        self._pool: list[UpstreamServer] = []
        self._config = PoolConfig()
        self._rng = rng if rng is not None else get_random_generator()
        self.last_use_index = 0
        self.last_change_upstream_time = now()
        self.last_connect_come_time = now()
        if config is not None:
            self.set_config(config)

    @property
    def pool(self) -> tuple[UpstreamServer, ...]:
        """The servers, in configuration order."""
        return tuple(self._pool)

    @property
    def config(self) -> PoolConfig:
        """The configuration in use."""
        return self._config

    def set_config(self, config: PoolConfig) -> None:
        """Replace the configuration and rebuild the server list from it."""
        with self._lock:
            self._config = config
            self._pool = [
                UpstreamServer.from_config(i, entry, config.tradition_tcp_relay)
                for i, entry in enumerate(config.upstreams)
            ]

    def force_set_last_use_index(self, index: int) -> None:
        """Set the last used index; out-of-range values are ignored."""
        with self._lock:
            if 0 <= index < len(self._pool):
                self.last_use_index = index

    def check_server(self, server: UpstreamServer | None) -> bool:
        """Return whether ``server`` may be used for a new connection."""
        if server is None:
            return False
        if self._config.disable_connect_test:
            return not server.is_manual_disable
        return (
            server.last_connect_time is not None
            and server.last_online_time is not None
            and not server.last_connect_failed
            and not server.is_offline
            and not server.is_manual_disable
        )

    def _candidates(self, start: int) -> Iterable[int]:
        n = len(self._pool)
        return ((start + step) % n for step in range(n))

    def _next_server(self, index: int) -> tuple[UpstreamServer | None, int]:
        n = len(self._pool)
        if n == 0:
            return None, index
        start = index if index < n else n - 1
        for i in self._candidates(start + 1):
            if self.check_server(self._pool[i]):
                return self._pool[i], i
        return None, start

    def _try_last_server(self, index: int) -> tuple[UpstreamServer | None, int]:
        n = len(self._pool)
        if n == 0:
            return None, index
        start = index if index < n else 0
        for i in self._candidates(start):
            if self.check_server(self._pool[i]):
                return self._pool[i], i
        return None, start

    def _valid_servers(self) -> list[UpstreamServer]:
        return [server for server in self._pool if self.check_server(server)]

    def get_server_by_hint(
        self,
        rule: RuleEnum | str,
        last_index: int,
        relay_id: object,
        dont_fallback_to_global: bool = False,
    ) -> tuple[UpstreamServer | None, int]:
        """Choose a server by ``rule`` starting from ``last_index``.

        Returns the chosen server (or None) and the updated last index.
        ``inherit`` yields None unless ``dont_fallback_to_global`` is set, in
        which case the pool's configured rule is used.
        """
        if isinstance(rule, str):
            rule = RuleEnum.parse(rule)
        with self._lock:
            if rule is RuleEnum.inherit:
                if not dont_fallback_to_global:
                    return None, last_index
                rule = self._config.upstream_select_rule

            if rule is RuleEnum.force_only_one:
                server = self._pool[last_index] if 0 <= last_index < len(self._pool) else None
                label = "force_only_one"
            elif rule is RuleEnum.loop:
                server, last_index = self._next_server(last_index)
                label = "loop"
            elif rule is RuleEnum.one_by_one:
                server, last_index = self._try_last_server(last_index)
                label = "one_by_one"
            elif rule is RuleEnum.change_by_time:
                if now() - self.last_change_upstream_time > self._config.server_change_time:
                    server, last_index = self._next_server(last_index)
                    self.last_change_upstream_time = now()
                else:
                    server, last_index = self._try_last_server(last_index)
                label = "change_by_time"
            else:
                valid = self._valid_servers()
                if valid:
                    server = valid[self._rng.randrange(len(valid))]
                    last_index = server.index
                else:
                    server = None
                label = "random"

            log_with_id(
                relay_id,
                "trace",
                f"get_server_by_hint {label}:{server.describe() if server else 'None'}",
            )
            return server, last_index

    def get_server_global(self, relay_id: object) -> UpstreamServer | None:
        """Choose a server by the configured rule, advancing the pool's own index."""
        with self._lock:
            server, self.last_use_index = self.get_server_by_hint(
                self._config.upstream_select_rule, self.last_use_index, relay_id, True
            )
            return server

    def update_last_connect_come_time(self) -> None:
        """Note that a client connection has just arrived."""
        with self._lock:
            self.last_connect_come_time = now()

    def all_down(self) -> bool:
        """Return whether no server is currently usable."""
        with self._lock:
            return all(not self.check_server(server) for server in self._pool)

    def describe(self) -> str:
        """Return a multi-line report of every server's state."""
        with self._lock:
            parts = []
            for r in self._pool:
                parts.append(
                    f"{r.index}:[\n"
                    f"\tname :{r.name}\n"
                    f"\thost :{r.host}\n"
                    f"\tport :{r.port}\n"
                    f"\tauthUser :{r.auth_user}\n"
                    f"\tauthPwd :{r.auth_pwd}\n"
                    f"\tisOffline :{_flag(r.is_offline)}\n"
                    f"\tlastConnectFailed :{_flag(r.last_connect_failed)}\n"
                    f"\tlastOnlineTime :{_time_text(r.last_online_time)}\n"
                    f"\tlastConnectTime :{_time_text(r.last_connect_time)}\n"
                    f"\tlastConnectCheckResult :{r.last_connect_check_result}\n"
                    f"\tdisable :{_flag(r.disable)}\n"
                    f"\tisManualDisable :{_flag(r.is_manual_disable)}\n"
                    f"\tconnectCount :{r.connect_count}\n"
                    "]\n"
                )
            return "".join(parts)