import logging
import sys
import threading
from typing import BinaryIO

import janus

from asr_stream.domain.errors import AudioInputError

logger = logging.getLogger(__name__)

EOF_MARKER = b""


class StdinAudioSource:
    def __init__(
        self,
        stream: BinaryIO | None = None,
        read_size: int = 8192,
        max_blocks: int = 128,
    ) -> None:
        self._stream = stream
        self._read_size = read_size
        self._max_blocks = max_blocks
        self._queue: janus.Queue[bytes | OSError] | None = None
        self._thread: threading.Thread | None = None
        self._eof = False
        self._bytes_read = 0

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    async def start(self) -> None:
        self._queue = janus.Queue(maxsize=self._max_blocks)
        stream = self._stream if self._stream is not None else sys.stdin.buffer
        self._thread = threading.Thread(
            target=self._read_blocks,
            args=(stream, self._queue.sync_q),
            name="audio-reader",
            daemon=True,
        )
        self._thread.start()
        logger.info("Audio input started (read=%d bytes, queue=%d blocks)", self._read_size, self._max_blocks)

    async def read(self) -> bytes:
        if self._eof or self._queue is None:
            return EOF_MARKER
        try:
            data = await self._queue.async_q.get()
        except janus.AsyncQueueShutDown:
            data = EOF_MARKER
        if isinstance(data, OSError):
            self._eof = True
            raise AudioInputError(f"reading audio input failed: {data}") from data
        if not data:
            self._eof = True
        self._bytes_read += len(data)
        return data

    async def stop(self) -> None:
        if self._queue:
            self._queue.close()
            await self._queue.wait_closed()
            self._queue = None
        logger.info("Audio input stopped (%d bytes read)", self._bytes_read)

    def _read_blocks(self, stream: BinaryIO, queue: "janus.SyncQueue[bytes | OSError]") -> None:
        read = getattr(stream, "read1", stream.read)
        try:
            while True:
                data = read(self._read_size)
                if not data:
                    break
                queue.put(data)
            queue.put(EOF_MARKER)
        except janus.SyncQueueShutDown:
            pass
        except OSError as exc:
            logger.error("Error reading audio input: %s", exc)
            try:
                queue.put(exc)
            except janus.SyncQueueShutDown:
                pass
