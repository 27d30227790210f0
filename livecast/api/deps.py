from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from livecast.core.auth import AuthContext, get_auth_context
from livecast.core.config import Settings, get_settings
from livecast.core.storage import Storage
from livecast.services.live_service import LiveService


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):
        raise RuntimeError("session_factory_not_configured")
    return session_factory


async def get_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


def get_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


def get_live_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
) -> LiveService:
    return LiveService(settings, storage, session_factory)


LiveServiceDependency = Annotated[LiveService, Depends(get_live_service)]
SessionDependency = Annotated[AsyncSession, Depends(get_session)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]


__all__ = [
    "get_session_factory",
    "get_session",
    "get_storage",
    "get_app_settings",
    "get_live_service",
    "LiveServiceDependency",
    "SessionDependency",
    "AuthDependency",
]
