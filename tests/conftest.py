import asyncio
import base64
import errno
import io
import json
from collections.abc import Callable

import numpy as np
import pytest

from asr_stream.domain.errors import ConnectFailure, TransportClosed
from asr_stream.domain.settings import SessionSettings


SAMPLE_RATE = 16000
SAMPLE_WIDTH = 2


def generate_silence(duration_ms: int = 100, sample_rate: int = SAMPLE_RATE) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(num_samples, dtype=np.int16).tobytes()


def generate_sine_wave(
    frequency: float = 440.0,
    duration_ms: int = 1000,
    amplitude: float = 0.8,
    sample_rate: int = SAMPLE_RATE,
) -> bytes:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    signal = np.sin(2 * np.pi * frequency * t) * amplitude
    return (signal.astype(np.float32) * 32767).astype("<i2").tobytes()


def split_bursts(data: bytes, sizes: list[int]) -> list[bytes]:
    bursts = []
    offset = 0
    for size in sizes:
        bursts.append(data[offset : offset + size])
        offset += size
    return bursts


def decode_audio_messages(sent: list[dict]) -> list[bytes]:
    return [
        base64.b64decode(message["audio"])
        for message in sent
        if message["type"] == "input_audio_buffer.append"
    ]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FakeTransport:
    def __init__(
        self,
        fail_connect: bool = False,
        ack: bool = True,
        reject: dict | None = None,
        script: list[dict | str] | None = None,  # queued after the session ack
        finish_ack: bool = True,
        close_on_finish: bool = False,
        drop_after_audio: int | None = None,
    ) -> None:
        self._fail_connect = fail_connect
        self._ack = ack
        self._reject = reject
        self._script = script or []
        self._finish_ack = finish_ack
        self._close_on_finish = close_on_finish
        self._drop_after_audio = drop_after_audio
        self._inbound: asyncio.Queue = asyncio.Queue()

        self.sent: list[dict] = []
        self.log: list[tuple[str, str]] = []
        self.connected = False
        self.closed = False
        self.close_calls = 0

    @property
    def audio_messages(self) -> list[dict]:
        return [m for m in self.sent if m["type"] == "input_audio_buffer.append"]

    async def connect(self) -> None:
        if self._fail_connect:
            raise ConnectFailure("cannot reach wss://unreachable.invalid/realtime")
        self.connected = True

    async def send(self, message: str | bytes) -> None:
        if self.closed:
            raise TransportClosed(close_code=1006, reason="connection lost")
        payload = json.loads(message)
        self.sent.append(payload)
        self.log.append(("out", payload["type"]))

        if payload["type"] == "session.update":
            if self._reject is not None:
                self.push(self._reject)
            elif self._ack:
                self.push({"type": "session.updated", "event_id": "evt_ack", "session": {"id": "sess_test"}})
                for entry in self._script:
                    if isinstance(entry, str):
                        self.push_raw(entry)
                    else:
                        self.push(entry)
        elif payload["type"] == "input_audio_buffer.append":
            if self._drop_after_audio is not None and len(self.audio_messages) >= self._drop_after_audio:
                self.drop()
        elif payload["type"] == "session.finish":
            if self._close_on_finish:
                self.drop(close_code=1000, reason="session finished")
            elif self._finish_ack:
                self.push({"type": "session.finished", "event_id": "evt_done"})

    async def receive(self) -> str | bytes:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        try:
            kind = json.loads(item).get("type", "")
        except (ValueError, AttributeError):
            kind = "<raw>"
        self.log.append(("in", kind))
        return item

    async def close(self) -> None:
        self.closed = True
        self.close_calls += 1

    def push(self, payload: dict) -> None:
        self._inbound.put_nowait(json.dumps(payload))

    def push_raw(self, text: str) -> None:
        self._inbound.put_nowait(text)

    def drop(self, close_code: int = 1006, reason: str = "connection lost") -> None:
        self.closed = True
        self._inbound.put_nowait(TransportClosed(close_code=close_code, reason=reason))


class FakeAudioSource:
    def __init__(self, bursts: list[bytes] | None = None, hold_open: bool = False) -> None:
        self._bursts = list(bursts or [])
        self._hold_open = hold_open
        self._release = asyncio.Event()
        self.started = False
        self.stopped = False
        self.reads = 0

    async def start(self) -> None:
        self.started = True

    async def read(self) -> bytes:
        self.reads += 1
        await asyncio.sleep(0)
        if self._bursts:
            return self._bursts.pop(0)
        if self._hold_open:
            await self._release.wait()
        return b""

    async def stop(self) -> None:
        self.stopped = True

    def end_input(self) -> None:
        self._release.set()


class FailingStream(io.RawIOBase):
    def __init__(self, head: bytes) -> None:
        self._head = head

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        if self._head:
            data, self._head = self._head, b""
            return data
        raise OSError(errno.EIO, "Input/output error")


class RecordingSink:
    def __init__(self) -> None:
        self.events: list = []
        self.failures: list = []

    def emit(self, event) -> None:
        self.events.append(event)

    def report_failure(self, error) -> None:
        self.failures.append(error)


@pytest.fixture
def one_second_of_audio():
    return generate_sine_wave(duration_ms=1000)


@pytest.fixture
def session_settings():
    return SessionSettings(
        chunk_size=6400,
        configure_timeout=1.0,
        drain_timeout=1.0,
        stop_deadline=2.0,
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def recording_sink():
    return RecordingSink()
