"""
thinkgate distribution import namespace.

This package re-exports the core `reasoning_session` package so hosts can
import the engine under the distribution name.
"""

from importlib.metadata import PackageNotFoundError, version

# src/thinkgate/__init__.py
from reasoning_session import *  # noqa: F401,F403
from reasoning_session import __all__ as _engine_all

try:
    __version__ = version("thinkgate")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout without metadata
    __version__ = "0+unknown"

__all__ = ["__version__", *_engine_all]
