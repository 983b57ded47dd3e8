import dataclasses
import json
import logging
import sys
from typing import Any, TextIO

from asr_stream.domain.errors import SessionError
from asr_stream.domain.events import ServiceEvent

logger = logging.getLogger(__name__)

CLIENT_ERROR_TYPE = "client.error"


class JsonLinesEventSink:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._records_written = 0

    @property
    def records_written(self) -> int:
        return self._records_written

    def emit(self, event: ServiceEvent) -> None:
        self._write(_record_for(event))

    def report_failure(self, error: SessionError) -> None:
        self._write({
            "type": CLIENT_ERROR_TYPE,
            "code": error.code,
            "message": error.message,
        })

    def _write(self, record: dict[str, Any]) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n")
        stream.flush()
        self._records_written += 1


def _record_for(event: ServiceEvent) -> dict[str, Any]:
    if event.payload is not None:
        return event.payload
    # events built locally carry no wire payload
    record = {k: v for k, v in dataclasses.asdict(event).items() if k != "payload"}
    record.setdefault("type", type(event).__name__)
    return record
