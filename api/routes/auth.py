"""Auth routes — Telegram initData validation + JWT"""
import hashlib
import hmac
import json
import logging
import time
import urllib.parse
import jwt
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from api.deps import get_app_settings, get_db
from bot.config import Settings
from bot.services.order_service import upsert_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

JWT_ALGO = "HS256"
JWT_EXP = 86400 * 7  # 7 days


class TelegramAuthRequest(BaseModel):
    init_data: str
    time_zone: str | None = None


class TelegramAuthResponse(BaseModel):
    user: dict
    token: str


def verify_init_data(init_data: str, bot_token: str, max_age: int = 86400, now: float | None = None) -> dict | None:
    """Validate Telegram WebApp initData, return the user dict or None"""
    if not init_data or not bot_token:
        return None

    parsed = dict(urllib.parse.parse_qsl(init_data, keep_blank_values=True))
    received_hash = parsed.pop("hash", "")
    if not received_hash:
        return None

    check_string = "\n".join(sorted(f"{k}={v}" for k, v in parsed.items()))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    computed = hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(computed, received_hash):
        return None

    try:
        auth_date = int(parsed.get("auth_date", "0"))
    except ValueError:
        return None
    now = time.time() if now is None else now
    if max_age and now - auth_date > max_age:
        return None

    try:
        user = json.loads(parsed.get("user", "null"))
    except ValueError:
        return None
    if not isinstance(user, dict) or not isinstance(user.get("id"), int):
        return None
    return user


def make_jwt(telegram_id: int, secret: str) -> str:
    payload = {
        "sub": str(telegram_id),
        "exp": int(time.time()) + JWT_EXP,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGO)


def telegram_id_from_jwt(token: str, secret: str) -> int | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGO])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        return None


async def get_current_telegram_id(request: Request, settings: Settings = Depends(get_app_settings)) -> int:
    """Verified Telegram id of the caller, or 401."""
    auth = request.headers.get("Authorization", "")

    if auth.startswith("Bearer "):
        telegram_id = telegram_id_from_jwt(auth[7:], settings.api_secret_key)
        if telegram_id:
            return telegram_id

    init_data = auth[4:] if auth.startswith("tma ") else request.headers.get("X-Telegram-Init-Data", "")
    if init_data:
        user = verify_init_data(init_data, settings.bot_token, settings.init_data_max_age)
        if user:
            return user["id"]

    raise HTTPException(401, "Unauthorized: Invalid or missing initData")


@router.post("/telegram", response_model=TelegramAuthResponse)
async def auth_telegram(
    req: TelegramAuthRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Authenticate via Telegram WebApp initData"""
    tg_user = verify_init_data(req.init_data, settings.bot_token, settings.init_data_max_age)
    if not tg_user:
        raise HTTPException(401, "Invalid initData")

    user = await upsert_user(
        db, tg_user["id"],
        first_name=tg_user.get("first_name"),
        last_name=tg_user.get("last_name"),
        username=tg_user.get("username"),
        photo_url=tg_user.get("photo_url"),
        time_zone=req.time_zone,
    )
    await db.commit()

    return TelegramAuthResponse(
        user={
            "telegram_id": user.telegram_id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "username": user.username,
            "photo_url": user.photo_url,
            "time_zone": user.time_zone,
        },
        token=make_jwt(user.telegram_id, settings.api_secret_key),
    )
