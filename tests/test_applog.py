import io
import threading

import pytest

from upstreambalancer import applog
from upstreambalancer.applog import AssertionFailure, SeverityLevel

LABELS = ["trace", "debug", "info", "info_VSERION", "warning", "error", "fatal"]


@pytest.fixture
def stream():
    buf = io.StringIO()
    applog.init_logging(buf)
    buf.seek(0)
    buf.truncate()
    return buf


def test_severity_order():
    levels = [SeverityLevel.parse(label) for label in LABELS]
    assert levels == list(SeverityLevel)
    assert levels == sorted(levels)
    assert levels[0] < levels[-1]
    assert [lvl.label for lvl in levels] == LABELS


def test_logging_levels_increase():
    numbers = [SeverityLevel.parse(label).logging_level for label in LABELS]
    assert numbers == sorted(numbers)
    assert len(set(numbers)) == len(numbers)


def test_parse_accepts_names_and_numbers():
    assert SeverityLevel.parse("warning") is SeverityLevel.warning
    assert SeverityLevel.parse(SeverityLevel.error.value) is SeverityLevel.error
    assert SeverityLevel.parse(SeverityLevel.info) is SeverityLevel.info


@pytest.mark.parametrize("bad", ["loud", 99])
def test_parse_rejects_unknown(bad):
    with pytest.raises(ValueError):
        SeverityLevel.parse(bad)


def test_thread_name_default_and_per_thread():
    seen = {}

    def worker():
        seen["before"] = applog.get_thread_name()
        applog.set_thread_name("Th-0")
        seen["after"] = applog.get_thread_name()

    applog.set_thread_name("Main")
    t = threading.Thread(target=worker)
    t.start()
    t.join()
    assert seen["before"] == "no name"
    assert seen["after"] == "Th-0"
    assert applog.get_thread_name() == "Main"


def test_init_logging_writes_banner_and_samples():
    buf = io.StringIO()
    applog.init_logging(buf)
    out = buf.getvalue()
    assert applog.version_info() in out
    for level in SeverityLevel:
        assert f"[{level.label}] " in out


def test_init_logging_replaces_previous_handler():
    first = io.StringIO()
    second = io.StringIO()
    applog.init_logging(first)
    applog.init_logging(second)
    first.seek(0)
    first.truncate()
    applog.log("info", "only-second")
    assert "only-second" not in first.getvalue()
    assert "only-second" in second.getvalue()


def test_log_line_format(stream):
    applog.set_thread_name("Main")
    applog.log(SeverityLevel.warning, "hello")
    line = stream.getvalue().strip()
    assert line.endswith("[warning] hello")
    assert f"[G:{applog.GIT_REV_SHORT}]" in line
    assert "[  Main]" in line


def test_relay_prefix_pads_to_six():
    assert applog.relay_prefix(42) == "[R:    42] "
    assert applog.relay_prefix(1234567) == "[R:1234567] "


def test_log_with_id(stream):
    applog.log_with_id(7, "trace", "picked")
    assert f"[trace] {applog.relay_prefix(7)}picked" in stream.getvalue()


def test_version_info_contents():
    info = applog.version_info()
    assert info.startswith(applog.PROGRAM_NAME)
    assert "ProgramVersion 1.6.0" in info
    assert "Need_ProxyHandshakeAuth OFF" in info
    assert applog.version_info() is info


def test_assertion_failed_raises_and_logs(stream):
    with pytest.raises(AssertionFailure) as info:
        applog.assertion_failed("x > 0", "run", "pool.py", 10)
    err = info.value
    assert (err.expr, err.function, err.file, err.line, err.msg) == ("x > 0", "run", "pool.py", 10, None)
    out = stream.getvalue()
    assert "[fatal] assertion_failed : [x > 0]" in out
    assert "at line [10]" in out


def test_assertion_failed_msg_raises_and_logs(stream):
    with pytest.raises(AssertionFailure) as info:
        applog.assertion_failed_msg("ok", "broken", "run", "pool.py", 3)
    assert info.value.msg == "broken"
    assert isinstance(info.value, AssertionError)
    assert "assertion_failed_msg : [ok] msg [broken]" in stream.getvalue()