"""Upstream selection rules and client connection types."""

from __future__ import annotations

import enum


class RuleEnum(enum.Enum):
    """How an upstream server is chosen for a new connection."""

    loop = "loop"
    random = "random"
    one_by_one = "one_by_one"
    change_by_time = "change_by_time"
    force_only_one = "force_only_one"
    inherit = "inherit"

    @classmethod
    def parse(cls, text: str) -> "RuleEnum":
        """Return the rule named by ``text``; raise ValueError for unknown names."""
        if not isinstance(text, str):
            raise TypeError(f"rule name must be a string, not {type(text).__name__}")
        key = text.strip()
        try:
            return cls[key]
        except KeyError:
            known = ", ".join(member.name for member in cls)
            raise ValueError(f"unknown upstream select rule {text!r}; expected one of: {known}") from None


class ConnectType(enum.Enum):
    """Protocol detected on an incoming client connection."""

    socks5 = "socks5"
    socks4 = "socks4"
    httpConnect = "httpConnect"
    httpOther = "httpOther"
    unknown = "unknown"