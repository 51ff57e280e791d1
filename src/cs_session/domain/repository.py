"""Session registry Protocol.

There is deliberately no delete: records retire through TTL expiry only.
"""

from typing import Protocol

from src.cs_session.domain.models import SessionRecord


class SessionRegistryProtocol(Protocol):
    async def put(self, username: str, record: SessionRecord, ttl_seconds: int | None = None) -> None: ...

    async def get(self, username: str) -> SessionRecord | None: ...
