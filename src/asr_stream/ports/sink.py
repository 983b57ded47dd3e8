from typing import Protocol

from asr_stream.domain.errors import SessionError
from asr_stream.domain.events import ServiceEvent


class EventSinkPort(Protocol):
    def emit(self, event: ServiceEvent) -> None: ...
    def report_failure(self, error: SessionError) -> None: ...
