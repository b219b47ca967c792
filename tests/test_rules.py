import pytest

from upstreambalancer.rules import ConnectType, RuleEnum


@pytest.mark.parametrize("member", list(RuleEnum))
def test_parse_round_trips_every_member(member):
    assert RuleEnum.parse(member.name) is member


def test_parse_strips_whitespace():
    assert RuleEnum.parse("  change_by_time\n") is RuleEnum.change_by_time


def test_parse_unknown_rule_raises():
    with pytest.raises(ValueError):
        RuleEnum.parse("best_latency")


def test_parse_is_case_sensitive():
    with pytest.raises(ValueError):
        RuleEnum.parse("LOOP")


def test_parse_rejects_non_string():
    with pytest.raises(TypeError):
        RuleEnum.parse(3)


def test_rule_order_matches_declaration():
    names = [
        "loop",
        "random",
        "one_by_one",
        "change_by_time",
        "force_only_one",
        "inherit",
    ]
    parsed = [RuleEnum.parse(name) for name in names]
    assert parsed == list(RuleEnum)
    assert [m.name for m in parsed] == names


def test_connect_type_members():
    names = [
        "socks5",
        "socks4",
        "httpConnect",
        "httpOther",
        "unknown",
    ]
    members = [ConnectType[name] for name in names]
    assert members == list(ConnectType)
    assert [ConnectType(m.value) for m in members] == members