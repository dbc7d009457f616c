"""Interfaces the client expects from its auth and storage providers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class SessionProvider(Protocol):
    """Source of the signed-in user's access token."""

    async def get_access_token(self) -> str | None: ...


@runtime_checkable
class StorageBucket(Protocol):
    """Object storage holding uploaded images and audio."""

    async def create_signed_url(self, path: str, expires_in: int) -> str | None: ...


__all__ = ["SessionProvider", "StorageBucket"]
