"""Read-only access to the vehicle/lot store.

Every statement passes a SELECT/WITH guard before it reaches the pool, runs
under an absolute timeout, and is retried once on transient backend errors.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import RowMapping
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql import Executable

from backend.app.core.errors import BackendUnavailableError, ReadonlyViolation, TransientBackendError
from backend.app.core.log_config import trace_id as current_trace_id

logger = logging.getLogger(__name__)

# serialization failure, lock not available, too many connections,
# configuration limit exceeded, admin shutdown, cannot connect now
TRANSIENT_SQLSTATES = {"40001", "55P03", "53300", "53400", "57P01", "57P03"}
RETRY_DELAY_SECONDS = 0.1

_LINE_COMMENT = re.compile(r"--.*?$", re.MULTILINE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_READONLY_HEAD = re.compile(r"^(SELECT|WITH)\b", re.IGNORECASE)

Statement = Union[str, Executable]


def is_readonly_sql(sql: str) -> bool:
    """True for a single SELECT/WITH statement once comments are stripped."""
    stripped = _BLOCK_COMMENT.sub("", _LINE_COMMENT.sub("", sql)).strip()
    if not stripped:
        return False
    if ";" in stripped:
        return False
    return bool(_READONLY_HEAD.match(stripped))


def sqlstate_of(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def is_transient(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    return sqlstate_of(exc) in TRANSIENT_SQLSTATES


class ReadOnlyGateway:
    def __init__(
        self,
        engine: AsyncEngine,
        *,
        timeout: float = 3.0,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ):
        self.engine = engine
        self.timeout = timeout
        self.retry_delay = retry_delay

    async def execute(
        self,
        statement: Statement,
        params: Optional[Mapping[str, Any]] = None,
        *,
        trace_id: Optional[str] = None,
    ) -> List[RowMapping]:
        trace = trace_id or current_trace_id.get("") or None
        sql = self._render(statement)
        if not is_readonly_sql(sql):
            logger.warning(
                "db.query.block",
                extra={"extra_data": {"code": "READONLY_GUARD", "sql": sql[:120], "trace_id": trace}},
            )
            raise ReadonlyViolation("only single SELECT/WITH statements are allowed")

        executable = text(statement) if isinstance(statement, str) else statement
        started = time.perf_counter()
        try:
            rows = await self._run(executable, params)
        except DBAPIError as exc:
            self._log("db.query.fail", started, trace, error=sqlstate_of(exc) or type(exc.orig).__name__, level=logging.ERROR)
            if not is_transient(exc):
                raise
            await asyncio.sleep(self.retry_delay)
            try:
                rows = await self._run(executable, params)
            except DBAPIError as retry_exc:
                self._log("db.query.retry_fail", started, trace, error=sqlstate_of(retry_exc), level=logging.ERROR)
                if is_transient(retry_exc):
                    raise TransientBackendError("database unavailable after retry") from retry_exc
                raise
            self._log("db.query.retry_ok", started, trace, row_count=len(rows))
            return rows

        self._log("db.query.ok", started, trace, row_count=len(rows))
        return rows

    async def ping(self) -> bool:
        try:
            await self.execute("SELECT 1")
        except Exception:
            logger.warning("db.ping.fail", exc_info=True)
            return False
        return True

    async def _run(self, statement: Executable, params: Optional[Mapping[str, Any]]) -> List[RowMapping]:
        async def _query() -> List[RowMapping]:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement, dict(params or {}))
                return list(result.mappings().all())

        try:
            return await asyncio.wait_for(_query(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("db.query.timeout", extra={"extra_data": {"timeout_s": self.timeout}})
            raise BackendUnavailableError() from exc

    def _render(self, statement: Statement) -> str:
        if isinstance(statement, str):
            return statement
        return str(statement.compile(dialect=self.engine.dialect))

    @staticmethod
    def _log(event: str, started: float, trace: Optional[str], *, level: int = logging.INFO, **fields: Any) -> None:
        data: Dict[str, Any] = {"dur_ms": round((time.perf_counter() - started) * 1000, 1), "trace_id": trace}
        data.update(fields)
        logger.log(level, event, extra={"extra_data": data})
