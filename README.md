# upstreambalancer

Choose an upstream proxy for each incoming connection, and keep track of
which upstreams are alive.

The package holds a pool of upstream SOCKS5 servers. It can probe each one
in two ways: a plain TCP connect, and a request sent through the proxy. You
supply both probes as coroutine functions. A server counts as usable only
when both probes have succeeded at least once, the last connect probe did not
fail, the server is not offline and it has not been disabled by hand. When
`disable_connect_test` is set in the configuration, every server that is not
disabled by hand counts as usable.

## Selection rules

`upstreambalancer.rules.RuleEnum` lists the ways a server is chosen:

- `loop`: move on to the next usable server for every connection.
- `random`: choose uniformly among the usable servers.
- `one_by_one`: keep the server at the current index while it stays usable,
  and otherwise move on to the next usable one.
- `change_by_time`: like `one_by_one`, except that once `server_change_time`
  has passed since the last change it moves on to the next usable server.
- `force_only_one`: always use the server at the current index, usable or not.
- `inherit`: no rule of its own. Fall back to the pool's configured rule, or
  return no server when fallback is not allowed.

`RuleEnum.parse(text)` turns a rule name into a member and raises
`ValueError` for an unknown name. `ConnectType` names the protocols a client
can use to open a connection (`socks5`, `socks4`, `httpConnect`,
`httpOther`, `unknown`).

## Modules

- `upstreambalancer.upstream`: `UpstreamConfig` (one server's settings),
  `PoolConfig` (servers, selection rule, check periods and timings),
  `UpstreamServer` and `UpstreamPool`.
  - `UpstreamPool(config)` or `set_config(config)` builds the server list.
  - `get_server_global(relay_id)` chooses by the configured rule and advances
    the pool's own `last_use_index`; it returns a server or `None`.
  - `get_server_by_hint(rule, last_index, relay_id, dont_fallback_to_global)`
    chooses with a rule and index of your own and returns
    `(server_or_None, new_index)`.
  - `check_server(server)`, `all_down()`, `force_set_last_use_index(index)`,
    `update_last_connect_come_time()` and `describe()` (a multi-line report
    of every server's state).
  - `UpstreamServer.record_tcp_success(ping)`, `record_tcp_failure()`,
    `record_connect_success(ping, status_code)` and `record_connect_failure()`
    update a server's state; the last pings are kept in `tcp_ping_history`
    and `http_ping_history`.
- `upstreambalancer.checker`: `HealthChecker(pool, tcp_probe, connect_probe)`
  runs the probes on asyncio.
  - `tcp_probe(host, port, max_delay)` must return the ping in milliseconds;
    `connect_probe(server, remote_host, remote_port, max_delay)` must return
    `(ping_ms, status_code)`. Both must raise when the test fails.
  - `start()` begins the periodic TCP, connect and "all down" timers and must
    be called with an event loop running; `stop()` cancels them and any
    checks in progress.
  - `run_tcp_checks()`, `run_connect_checks()`, `check_one(server)` and
    `run_addition_check()` run probes directly; `force_check_now()` and
    `force_check_one(index)` schedule them.
  - Periodic checks only run while a client connection has arrived within
    `sleep_time`, so call `pool.update_last_connect_come_time()` whenever a
    client connects.
- `upstreambalancer.applog`: logging setup. `init_logging(stream)` sends log
  lines to a stream (standard output by default). `SeverityLevel`,
  `log(level, message)`, `log_with_id(relay_id, level, message)`,
  `relay_prefix(relay_id)`, `set_thread_name(name)` / `get_thread_name()`,
  `version_info()`, and `assertion_failed(...)` /
  `assertion_failed_msg(...)`, which log at fatal level and raise
  `AssertionFailure`.
- `upstreambalancer.b64`: `base64_encode`, `base64_encode_string`,
  `base64_decode` and `base64_decode_string`; decoding accepts text with or
  without padding and raises `ValueError` on bad input.
- `upstreambalancer.utiltools`: `get_random(start, end)` returns an integer
  from the closed range `[start, end]`; `get_random_generator()` returns the
  shared `random.Random`.

## Example

```python
from upstreambalancer.rules import RuleEnum
from upstreambalancer.upstream import PoolConfig, UpstreamConfig, UpstreamPool

config = PoolConfig(
    upstreams=[
        UpstreamConfig(host="127.0.0.1", port=1080, name="a"),
        UpstreamConfig(host="127.0.0.1", port=1081, name="b"),
    ],
    upstream_select_rule=RuleEnum.loop,
    disable_connect_test=True,
)
pool = UpstreamPool(config)

assert pool.get_server_global(relay_id=1).name == "b"
assert pool.get_server_global(relay_id=2).name == "a"

server, index = pool.get_server_by_hint(RuleEnum.one_by_one, 1, relay_id=3)
assert (server.name, index) == ("b", 1)
```

## What it does not do

This package is the selection and health-checking core of a balancer. It has
no command to run, does not listen for client connections or relay traffic,
does not read a configuration file (build `PoolConfig` yourself), and ships
no TCP or HTTP probe: `HealthChecker` calls the probe functions you give it.