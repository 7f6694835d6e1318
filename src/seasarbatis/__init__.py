"""
seasarbatis - Seasar2-style data mapping and transaction propagation over SQLAlchemy.

Public entry point is :class:`JdbcManager`; entities are dataclasses
declared with :func:`table`, :class:`Id` and :class:`Column`.
"""

__version__ = "0.1.0"

from seasarbatis.core import *  # noqa: E402,F403
from seasarbatis.core import __all__ as _core_all  # noqa: E402
from seasarbatis.core.logging import configure_logging, get_logger  # noqa: E402
from seasarbatis.core.session import create_batis_engine  # noqa: E402
from seasarbatis.core.settings import BatisSettings, get_settings  # noqa: E402
from seasarbatis.manager import JdbcManager  # noqa: E402

__all__ = [
    *_core_all,
    "BatisSettings",
    "JdbcManager",
    "configure_logging",
    "create_batis_engine",
    "get_logger",
    "get_settings",
]
