from typing import Protocol

from talk_time.domain.errors import ResolutionError

__all__ = ["MediaResolverPort", "ResolutionError"]


class MediaResolverPort(Protocol):
    async def resolve(self, page_url: str) -> str: ...
