"""Per-request logging with the process identifier attached."""

import logging
import time
from collections.abc import MutableMapping
from typing import Any, Literal

StageAction = Literal["start", "complete", "error"]


class ProcessLogger(logging.LoggerAdapter):
    """LoggerAdapter that tags every record with a process id.

    The id is passed in explicitly for each request, there is no ambient
    correlation state.
    """

    def __init__(self, logger: logging.Logger, process_id: str):
        super().__init__(logger, {"process_id": process_id})
        self.process_id = process_id

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("process_id", self.process_id)
        kwargs["extra"] = extra
        return f"[{self.process_id}] {msg}", kwargs

    def stage(self, stage: str, action: StageAction, **meta: Any) -> None:
        """Log a stage transition (start / complete / error)."""
        message = f"{stage.upper()}: {action}"
        if meta:
            message += " " + " ".join(f"{k}={v}" for k, v in meta.items())
        if action == "error":
            self.error(message)
        else:
            self.info(message)

    def timing(self, stage: str, started_at: float, **meta: Any) -> int:
        """Log how long a stage took since ``started_at`` (perf_counter)."""
        elapsed_ms = int((time.perf_counter() - started_at) * 1000)
        message = f"{stage.upper()}: completed in {elapsed_ms}ms"
        if meta:
            message += " " + " ".join(f"{k}={v}" for k, v in meta.items())
        self.info(message)
        return elapsed_ms


def get_process_logger(name: str, process_id: str) -> ProcessLogger:
    return ProcessLogger(logging.getLogger(name), process_id)
