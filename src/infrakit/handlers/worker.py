from __future__ import annotations

import logging
import os
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=UTC).isoformat()


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Sample workflow task.

    Logs the task it runs and returns execution metadata. Queue and stream
    batches report how many records they carried.
    """
    start_ms = int(time.time() * 1000)
    task = os.environ.get("TASK_NAME", "unknown")
    records = event.get("Records", [])
    logger.info("Task %s received %d record(s)", task, len(records))
    end_ms = int(time.time() * 1000)
    return {
        "functionName": getattr(context, "function_name", "unknown"),
        "requestId": getattr(context, "aws_request_id", "unknown"),
        "task": task,
        "table": os.environ.get("TABLE_NAME"),
        "recordCount": len(records),
        "startTime": _iso(start_ms),
        "endTime": _iso(end_ms),
        "durationMs": end_ms - start_ms,
    }
