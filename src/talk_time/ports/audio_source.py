from typing import AsyncIterator, Protocol


class AudioSourcePort(Protocol):
    async def start(self) -> None: ...
    def read_chunks(self) -> AsyncIterator[bytes]: ...
    async def terminate(self) -> None: ...
    async def wait(self) -> int | None: ...
