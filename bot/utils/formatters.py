"""
Formatters — тексты уведомлений бота (HTML parse mode).
"""
from datetime import datetime
from html import escape
from bot.services.due_dates import format_due_label


def bold(value) -> str:
    return f"<b>{escape(str(value))}</b>"


def _with_assignee(lines: list[str], assignee_name: str | None) -> list[str]:
    if assignee_name and assignee_name.strip():
        lines.insert(2, f"Исполнитель: {bold(assignee_name.strip())}")
    return lines


def reminder_message(
    title: str,
    due: datetime,
    reminder_label: str,
    assignee_name: str | None = None,
    time_zone: str | None = None,
) -> str:
    lines = [
        "⏰ <b>Скоро срок задачи</b>",
        "",
        f"Задача: {bold(title)}",
        f"Срок: {bold(format_due_label(due, True, time_zone))}",
        f"Напоминание: {bold(reminder_label)} до срока",
        "",
        "Не забудьте завершить задачу вовремя.",
    ]
    return "\n".join(_with_assignee(lines, assignee_name))


def overdue_message(
    title: str,
    due: datetime,
    include_time: bool,
    assignee_name: str | None = None,
    time_zone: str | None = None,
) -> str:
    lines = [
        "⚠️ <b>Задача просрочена</b>",
        "",
        f"Задача: {bold(title)}",
        f"Срок: {bold(format_due_label(due, include_time, time_zone))}",
        "",
        "Пожалуйста завершите задачу или измените срок.",
    ]
    return "\n".join(_with_assignee(lines, assignee_name))


def taken_into_work_message(
    title: str,
    code: str | None,
    assignee_name: str | None,
    reminders: str | None = None,
) -> str:
    lines = [
        "🚀 <b>Задача взята в работу</b>",
        "",
        f"Задача: {bold(title)}",
    ]
    if code:
        lines.append(f"Код: {bold(code)}")
    if reminders:
        lines.append(f"Напоминания: {bold(reminders)} до срока")
    return "\n".join(_with_assignee(lines, assignee_name))


def new_member_message(project_title: str | None, member_name: str, role: str) -> str:
    return "\n".join([
        "👥 <b>Новый участник в проекте</b>",
        "",
        f"Проект: {bold(project_title or 'Без названия')}",
        f"Участник: {bold(member_name)}",
        f"Роль: {bold(role)}",
    ])


def welcome_message(first_name: str | None, last_name: str | None) -> str:
    full_name = f"{first_name or ''} {last_name or ''}".strip() or "Пользователь"
    return (
        f"Привет {bold(full_name)}!\n\n"
        "Добро пожаловать в систему управления заказами!\n\n"
        "Мы сделали всё, чтобы ты мог быстро создавать проекты, "
        "управлять задачами и легко работать в команде.\n\n"
        "Начинай прямо сейчас! Жми кнопку ниже 👇"
    )
