from typing import Protocol


class AudioSourcePort(Protocol):
    async def start(self) -> None: ...
    async def read(self) -> bytes: ...
    async def stop(self) -> None: ...
