"""Error reporter - durable, day-partitioned error and event logs."""

import asyncio
import json
import secrets
import time
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic_core import to_jsonable_python

from project_planner.models.enums import EventLevel

logger = structlog.get_logger()


class ErrorReporter:
    """Writes errors and events to append-only JSON-lines files.

    Files are partitioned by day: ``error_YYYYMMDD.log`` for errors and
    ``app_<level>_YYYYMMDD.log`` for events. Every write failure is logged and
    swallowed; the reporter never raises into its caller.
    """

    def __init__(
        self,
        log_dir: str | Path,
        min_level: EventLevel | str = EventLevel.INFO,
    ):
        self.log_dir = Path(log_dir)
        self.min_level = EventLevel(min_level)

    @staticmethod
    def new_error_id() -> str:
        """Issue an error id: epoch milliseconds plus a random suffix."""
        return f"err_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    async def log_error(
        self,
        error: BaseException,
        context: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record an error.

        Args:
            error: The exception to record
            context: Where it happened (stage name, operation label)
            metadata: Extra fields stored with the record

        Returns:
            The issued error id
        """
        error_id = self.new_error_id()
        now = datetime.now()
        record = {
            "error_id": error_id,
            "timestamp": now.isoformat(),
            "context": context,
            "error_type": type(error).__name__,
            "message": str(error),
            "error_code": getattr(error, "error_code", None),
            "stack": "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            ),
            "metadata": metadata or {},
        }

        logger.error(
            "error_recorded",
            error_id=error_id,
            context=context,
            error=str(error),
            error_type=type(error).__name__,
        )

        path = self.log_dir / f"error_{now:%Y%m%d}.log"
        await self._append(path, record)
        return error_id

    async def record_event(
        self,
        level: EventLevel | str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        """Record an event if it meets the minimum level.

        Returns:
            True if the event passed the level filter
        """
        try:
            level = EventLevel(level)
        except ValueError:
            logger.warning("event_level_unknown", level=level, message=message)
            return False

        if level.severity < self.min_level.severity:
            return False

        now = datetime.now()
        record = {
            "timestamp": now.isoformat(),
            "level": level.value,
            "message": message,
            "data": data or {},
        }

        log_method = {
            EventLevel.DEBUG: logger.debug,
            EventLevel.INFO: logger.info,
            EventLevel.WARN: logger.warning,
            EventLevel.ERROR: logger.error,
        }[level]
        log_method("event_recorded", message=message, data=data or {})

        path = self.log_dir / f"app_{level.value}_{now:%Y%m%d}.log"
        await self._append(path, record)
        return True

    async def _append(self, path: Path, record: dict[str, Any]) -> None:
        try:
            line = json.dumps(to_jsonable_python(record, fallback=repr))
        except (TypeError, ValueError) as e:
            logger.warning("report_serialize_failed", path=str(path), error=str(e))
            line = json.dumps({k: repr(v) for k, v in record.items()})

        try:
            await asyncio.to_thread(self._write_line, path, line)
        except OSError as e:
            logger.warning("report_write_failed", path=str(path), error=str(e))

    @staticmethod
    def _write_line(path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
