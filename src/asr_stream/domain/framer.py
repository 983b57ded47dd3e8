import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from asr_stream.domain.errors import ConfigurationError, FramingError

logger = logging.getLogger(__name__)

FIRST_SEQUENCE = 0


@dataclass(frozen=True)
class AudioChunk:
    sequence: int
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


class Framer:
    def __init__(self, chunk_size: int, sample_width: int = 2, channels: int = 1) -> None:
        frame_width = sample_width * channels
        if frame_width <= 0 or chunk_size <= 0 or chunk_size % frame_width:
            raise ConfigurationError(
                [f"chunk_size {chunk_size} must be a positive multiple of the {frame_width}-byte sample frame"]
            )
        self._chunk_size = chunk_size
        self._frame_width = frame_width
        self._buffer = bytearray()
        self._next_sequence = FIRST_SEQUENCE
        self._bytes_framed = 0
        self._halted = False

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def next_sequence(self) -> int:
        return self._next_sequence

    @property
    def bytes_framed(self) -> int:
        return self._bytes_framed

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def push(self, data: bytes) -> list[AudioChunk]:
        self._ensure_running()
        self._buffer.extend(data)
        chunks = []
        while len(self._buffer) >= self._chunk_size:
            chunks.append(self._cut(self._chunk_size))
        return chunks

    def flush(self, truncate_partial: bool = False) -> list[AudioChunk]:
        self._ensure_running()
        partial = len(self._buffer) % self._frame_width
        if partial:
            if not truncate_partial:
                self._halted = True
                raise FramingError(
                    f"{len(self._buffer)} trailing bytes do not form whole "
                    f"{self._frame_width}-byte sample frames"
                )
            logger.warning("Dropping %d trailing bytes of an incomplete sample frame", partial)
            del self._buffer[-partial:]
        if not self._buffer:
            return []
        return [self._cut(len(self._buffer))]

    def _cut(self, size: int) -> AudioChunk:
        chunk = AudioChunk(sequence=self._next_sequence, data=bytes(self._buffer[:size]))
        del self._buffer[:size]
        self._next_sequence += 1
        self._bytes_framed += size
        return chunk

    def _ensure_running(self) -> None:
        if self._halted:
            raise FramingError("framer halted after a previous framing error")


def frame_bursts(bursts: Iterable[bytes], framer: Framer) -> Iterator[AudioChunk]:
    for burst in bursts:
        yield from framer.push(burst)
    yield from framer.flush()
    logger.debug("Framed %d bytes into %d chunks", framer.bytes_framed, framer.next_sequence)
