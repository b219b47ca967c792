"""Periodic and on-demand health checks for the servers of an upstream pool."""

from __future__ import annotations

import asyncio
import datetime
from typing import Any, Awaitable, Callable, Coroutine

from .applog import log, log_with_id
from .upstream import UpstreamPool, UpstreamServer, now

TcpProbe = Callable[[str, int, datetime.timedelta], Awaitable[int]]
"""Connects to ``(host, port)`` and returns the ping in milliseconds; raises on failure."""

ConnectProbe = Callable[[UpstreamServer, str, int, datetime.timedelta], Awaitable[tuple[int, int]]]
"""Requests the test remote through ``server``; returns ``(ping_ms, status_code)``; raises on failure."""

FORCE_CHECK_DELAY = datetime.timedelta(milliseconds=500)

_DETAIL = "trace"


def _seconds(delta: datetime.timedelta) -> float:
    return max(0.0, delta.total_seconds())


class HealthChecker:
    """Runs reachability and proxy checks against the servers of a pool.

    ``tcp_probe`` tests that a server accepts TCP connections and
    ``connect_probe`` tests a request through it; both are coroutine
    functions supplied by the caller and must raise when the test fails.
    """

    def __init__(self, pool: UpstreamPool, tcp_probe: TcpProbe, connect_probe: ConnectProbe) -> None:
        self.pool = pool
        self._tcp_probe = tcp_probe
        self._connect_probe = connect_probe
        self._timers: list[asyncio.Task] = []
        self._background: set[asyncio.Task] = set()
        self._force_task: asyncio.Task | None = None
        self._addition_running = False
        self._addition_reset: asyncio.TimerHandle | None = None

    @property
    def running(self) -> bool:
        """Whether the periodic timers are active."""
        return any(not task.done() for task in self._timers)

    @property
    def addition_check_running(self) -> bool:
        """Whether an extra all-servers check is in its quiet period."""
        return self._addition_running

    def _disabled(self) -> bool:
        return self.pool.config.disable_connect_test

    def _awake(self) -> bool:
        return now() - self.pool.last_connect_come_time <= self.pool.config.sleep_time

    def _max_delay(self, period: datetime.timedelta) -> datetime.timedelta:
        half_seconds = int(period.total_seconds()) // 2
        return datetime.timedelta(milliseconds=min(len(self.pool.pool), half_seconds) * 1000)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _probe_tcp(self, server: UpstreamServer, max_delay: datetime.timedelta) -> bool:
        try:
            ping = await self._tcp_probe(server.host, server.port, max_delay)
        except Exception as exc:
            log_with_id(server.index, _DETAIL, f"tcp check failed {server.describe()}: {exc}")
            server.record_tcp_failure()
            return False
        server.record_tcp_success(int(ping))
        return True

    async def _probe_connect(self, server: UpstreamServer, max_delay: datetime.timedelta) -> bool:
        config = self.pool.config
        try:
            ping, status_code = await self._connect_probe(
                server, config.test_remote_host, config.test_remote_port, max_delay
            )
        except Exception as exc:
            log_with_id(server.index, _DETAIL, f"connect check failed {server.describe()}: {exc}")
            server.record_connect_failure()
            return False
        server.record_connect_success(int(ping), int(status_code))
        return True

    def _targets(self) -> list[UpstreamServer]:
        return [server for server in self.pool.pool if not server.is_manual_disable]

    async def run_tcp_checks(self) -> list[UpstreamServer]:
        """Test TCP reachability of every server not disabled by hand.

        Returns the servers that were tested.
        """
        if self._disabled():
            return []
        max_delay = self._max_delay(self.pool.config.tcp_check_period)
        targets = self._targets()
        await asyncio.gather(*(self._probe_tcp(server, max_delay) for server in targets))
        return targets

    async def run_connect_checks(self) -> list[UpstreamServer]:
        """Test a request through every server not disabled by hand.

        Returns the servers that were tested.
        """
        if self._disabled():
            return []
        max_delay = self._max_delay(self.pool.config.connect_check_period)
        targets = self._targets()
        await asyncio.gather(*(self._probe_connect(server, max_delay) for server in targets))
        return targets

    async def check_one(self, server: UpstreamServer) -> tuple[bool, bool] | None:
        """Run both tests on ``server``; return their outcomes, or None if testing is disabled."""
        if self._disabled():
            return None
        no_delay = datetime.timedelta(0)
        tcp_ok, connect_ok = await asyncio.gather(
            self._probe_tcp(server, no_delay), self._probe_connect(server, no_delay)
        )
        return tcp_ok, connect_ok

    def _clear_addition_flag(self) -> None:
        self._addition_running = False
        self._addition_reset = None

    async def run_addition_check(self) -> bool:
        """Check all servers at once unless such a check ran recently.

        Returns whether the check was run.
        """
        if self._disabled() or self._addition_running:
            return False
        self._addition_running = True
        log(_DETAIL, "run_addition_check()")
        quiet = _seconds(self.pool.config.addition_check_period * 3)
        self._addition_reset = asyncio.get_running_loop().call_later(quiet, self._clear_addition_flag)
        await asyncio.gather(self.run_tcp_checks(), self.run_connect_checks())
        return True

    async def _periodic(
        self,
        first_delay: datetime.timedelta,
        period: Callable[[], datetime.timedelta],
        action: Callable[[], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + _seconds(first_delay)
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            action()
            deadline += _seconds(period())

    def _on_tcp_timer(self) -> None:
        if self._awake():
            self._spawn(self.run_tcp_checks())

    def _on_connect_timer(self) -> None:
        if self._awake():
            self._spawn(self.run_connect_checks())

    def _on_addition_timer(self) -> None:
        if self.pool.all_down() and self._awake():
            self._spawn(self.run_addition_check())

    def start(self) -> None:
        """Start the periodic timers; must be called with an event loop running."""
        if self.running:
            return
        self._cancel_timers()
        if self._disabled():
            return
        loop = asyncio.get_running_loop()
        config = self.pool.config
        addition_start = (config.tcp_check_start + config.connect_check_start + config.tcp_check_period) * 2
        self._timers = [
            loop.create_task(
                self._periodic(addition_start, lambda: self.pool.config.addition_check_period, self._on_addition_timer)
            ),
            loop.create_task(
                self._periodic(config.tcp_check_start, lambda: self.pool.config.tcp_check_period, self._on_tcp_timer)
            ),
            loop.create_task(
                self._periodic(
                    config.connect_check_start, lambda: self.pool.config.connect_check_period, self._on_connect_timer
                )
            ),
        ]

    def _cancel_timers(self) -> None:
        for task in self._timers:
            task.cancel()
        self._timers = []

    def stop(self) -> None:
        """Stop the timers and cancel any checks still in progress."""
        self._cancel_timers()
        if self._force_task is not None:
            self._force_task.cancel()
            self._force_task = None
        for task in list(self._background):
            task.cancel()

    async def _force_after(self, delay: datetime.timedelta) -> None:
        await asyncio.sleep(_seconds(delay))
        log(_DETAIL, "force_check_now()")
        await asyncio.gather(self.run_tcp_checks(), self.run_connect_checks())

    def force_check_now(self) -> asyncio.Task | None:
        """Schedule a check of every server shortly from now.

        Returns the scheduled task, or None if testing is disabled or a forced
        check is already pending.
        """
        if self._disabled():
            return None
        if self._force_task is not None and not self._force_task.done():
            return None
        self._force_task = asyncio.get_running_loop().create_task(self._force_after(FORCE_CHECK_DELAY))
        return self._force_task

    def force_check_one(self, index: int) -> asyncio.Task | None:
        """Schedule both tests on the server at ``index``.

        Returns the scheduled task, or None if testing is disabled or the
        index is out of range.
        """
        if self._disabled():
            return None
        servers = self.pool.pool
        if not 0 <= index < len(servers):
            return None
        return self._spawn(self.check_one(servers[index]))