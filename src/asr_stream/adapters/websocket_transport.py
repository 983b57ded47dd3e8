import asyncio
import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus, InvalidURI

from asr_stream.domain.errors import ConnectFailure, TransportClosed, TransportError

logger = logging.getLogger(__name__)


class WebsocketTransport:
    def __init__(
        self,
        url: str,
        api_key: str,
        open_timeout: float = 10.0,
        max_queue: int = 64,
        write_limit: int = 64 * 1024,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._open_timeout = open_timeout
        self._max_queue = max_queue
        self._write_limit = write_limit
        self._connection: ClientConnection | None = None

    def __repr__(self) -> str:
        return f"WebsocketTransport(url={self._url!r})"

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        logger.info("Connecting to %s", self._url)
        try:
            self._connection = await connect(
                self._url,
                additional_headers=headers,
                open_timeout=self._open_timeout,
                max_queue=self._max_queue,
                write_limit=self._write_limit,
            )
        except InvalidStatus as exc:
            raise ConnectFailure(
                f"service rejected the handshake with HTTP {exc.response.status_code}"
            ) from exc
        except (InvalidURI, InvalidHandshake) as exc:
            raise ConnectFailure(f"handshake with {self._url} failed: {exc}") from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise ConnectFailure(f"cannot reach {self._url}: {exc or type(exc).__name__}") from exc
        logger.info("Connected")

    async def send(self, message: str | bytes) -> None:
        connection = self._require_connection()
        try:
            await connection.send(message)
        except ConnectionClosed as exc:
            raise _closed_error(exc) from exc
        except OSError as exc:
            raise TransportError(f"send failed: {exc}") from exc

    async def receive(self) -> str | bytes:
        connection = self._require_connection()
        try:
            return await connection.recv()
        except ConnectionClosed as exc:
            raise _closed_error(exc) from exc
        except OSError as exc:
            raise TransportError(f"receive failed: {exc}") from exc

    async def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        await connection.close()
        logger.info("Connection closed")

    def _require_connection(self) -> ClientConnection:
        if self._connection is None:
            raise TransportError("transport is not connected")
        return self._connection


def _closed_error(exc: ConnectionClosed) -> TransportClosed:
    frame = exc.rcvd
    if frame is None:
        return TransportClosed(reason="no close frame received")
    return TransportClosed(close_code=frame.code, reason=frame.reason)
