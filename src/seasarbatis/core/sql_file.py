"""SQL-file loading with two-way SQL support.

SQL files are resolved relative to a root directory (absolute paths are
used as-is), read once and cached for the life of the loader.

Two-way SQL: a bind written as ``/*name*/literal`` runs unchanged in a
SQL console (the comment is ignored and the literal used) and is turned
into the named bind ``:name`` when loaded here::

    SELECT * FROM users
     WHERE tenant_id = /*tenantId*/1
       AND name LIKE /*pattern*/'A%'

becomes ``... WHERE tenant_id = :tenantId AND name LIKE :pattern``.
The dummy literal may be a quoted string, a number, ``null`` or a
parenthesised list ``('a', 'b')``.
"""

from __future__ import annotations

import re
import threading
from pathlib import Path

from seasarbatis.core.errors import SqlFileError
from seasarbatis.core.logging import get_logger

logger = get_logger(__name__)

_TWO_WAY_BIND = re.compile(
    r"/\*(\w+)\*/"
    r"(?:'(?:[^']|'')*'|\([^)]*\)|-?\d+(?:\.\d+)?|null|NULL|true|false|TRUE|FALSE)?"
)


def convert_two_way_sql(sql: str) -> str:
    """Replace ``/*name*/literal`` bind comments with ``:name``."""
    return _TWO_WAY_BIND.sub(lambda m: f":{m.group(1)}", sql)


class SqlFileLoader:
    """Resolve, read and cache SQL files."""

    def __init__(self, root: str | Path | None = None, *, encoding: str = "utf-8") -> None:
        self.root = Path(root) if root is not None else Path.cwd()
        self.encoding = encoding
        self._cache: dict[Path, str] = {}
        self._lock = threading.Lock()

    def resolve(self, sql_file: str | Path) -> Path:
        path = Path(sql_file)
        if not path.is_absolute():
            path = self.root / path
        return path

    def load(self, sql_file: str | Path) -> str:
        """Return the converted SQL text of ``sql_file``.

        Raises:
            SqlFileError: if the file does not exist or cannot be read.
        """
        path = self.resolve(sql_file)
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        try:
            raw = path.read_text(encoding=self.encoding)
        except OSError as exc:
            raise SqlFileError(
                f"Cannot read SQL file {path}",
                sql_file=str(sql_file),
                cause=exc,
            ) from exc

        sql = convert_two_way_sql(raw).strip().rstrip(";").strip()
        with self._lock:
            self._cache[path] = sql
        logger.debug("sql_file_loaded", sql_file=str(path))
        return sql

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


__all__ = [
    "SqlFileLoader",
    "convert_two_way_sql",
]
