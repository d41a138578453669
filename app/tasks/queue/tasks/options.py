"""Presets de publicação usados pelos handlers de fila"""
from app.tasks.queue.options import format_expiration

HIGH_PRIORITY = 9
MEDIUM_PRIORITY = 5
LOW_PRIORITY = 1


def expiration_minutes(minutes: int) -> str:
    return format_expiration(minutes * 60 * 1000)


def expiration_hours(hours: int) -> str:
    return format_expiration(hours * 60 * 60 * 1000)
