from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from bot.config import Settings


async def get_db(request: Request) -> AsyncSession:
    async with request.app.state.session_factory() as session:
        yield session


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sender(request: Request):
    return request.app.state.sender
