from typing import Protocol


class TransportPort(Protocol):
    async def connect(self) -> None: ...
    async def send(self, message: str | bytes) -> None: ...
    async def receive(self) -> str | bytes: ...
    async def close(self) -> None: ...
