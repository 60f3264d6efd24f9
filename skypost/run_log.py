from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO

from .collaborators import FaultRecord
from .retry import RetryEvent


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class RunLogger:
    """
    JSONL logger for post builds; also the fault sink for dropped mentions.

    Each line is one JSON object. Writes go to a file (opened lazily) or to a
    stream the caller owns, such as stderr.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        stream: TextIO | None = None,
        overwrite: bool = False,
        session_id: str | None = None,
    ) -> None:
        if path is None and stream is None:
            raise ValueError("RunLogger needs a path or a stream")
        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = stream
        self._owns_fp = stream is None
        self._lock = Lock()

    @classmethod
    def open(cls, path: str | Path, *, overwrite: bool = False) -> "RunLogger":
        logger = cls(path, overwrite=overwrite)
        logger._ensure_open()
        return logger

    def close(self) -> None:
        with self._lock:
            if self._fp is not None and self._owns_fp:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def info(self, event: str, **data: Any) -> None:
        self.log("INFO", event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log("WARN", event, **data)

    def exception(self, event: str, *, exc: BaseException, **data: Any) -> None:
        self.log("ERROR", event, error=_error_payload(exc), **data)

    def fault(self, record: FaultRecord) -> None:
        self.log(
            "WARN",
            "fault",
            stage=record.stage,
            input=_truncate(record.input_summary, limit=200),
            error=_error_payload(record.cause),
        )

    def retry(self, event: RetryEvent) -> None:
        self.log(
            "WARN",
            "retry",
            operation=event.operation,
            attempt=event.failure_attempt,
            max_attempts=event.max_attempts,
            delay_seconds=round(event.delay_seconds, 3),
            reason=event.reason,
            url=event.context_url,
            error_type=event.error_type,
        )

    def log(self, level: str, event: str, **data: Any) -> None:
        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": (level or "").strip().upper() or "INFO",
            "event": (event or "").strip() or "event",
            "session_id": self._session_id,
        }
        if data:
            record["data"] = data
        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None or self._path is None:
            return

        with self._lock:
            if self._fp is not None:
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite else "a"
            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            # Later reopens append to what this session already wrote.
            self._overwrite = False

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()


def _error_payload(exc: BaseException) -> dict[str, str]:
    return {
        "type": type(exc).__name__,
        "message": _truncate(str(exc), limit=2000),
    }
