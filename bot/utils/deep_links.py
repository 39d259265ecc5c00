"""
Deep link utilities for Mini App integration.
Generates WebApp buttons that open specific pages in the Mini App.
"""
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, WebAppInfo


def order_path(order_id: str) -> str:
    return f"/orders/{order_id}"


def project_path(project_id: str) -> str:
    return f"/projects/{project_id}/orders"


def webapp_url(base: str, path: str = "/") -> str:
    base = base.rstrip("/")
    return f"{base}{path}" if path != "/" else base


def webapp_button(text: str, base: str, path: str = "/") -> InlineKeyboardButton:
    """Create a WebApp inline button with deep link path."""
    return InlineKeyboardButton(text=text, web_app=WebAppInfo(url=webapp_url(base, path)))


def webapp_keyboard(text: str, base: str, path: str = "/") -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[webapp_button(text, base, path)]])
