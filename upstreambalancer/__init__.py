"""Upstream proxy selection rules, pool and asyncio health checking."""

__version__ = "1.6.0"
__all__ = ["__version__"]