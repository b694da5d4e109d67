"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations

import base64
import binascii
import secrets
from typing import Any


def b64_decode(data_b64: str) -> bytes:
    """
    base64(str) -> bytes. Невалидный ввод -> ValueError.
    Допускаем data-URL префикс (data:audio/webm;base64,...), его шлёт браузер.
    """
    raw = (data_b64 or "").strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    try:
        return base64.b64decode(raw.encode("utf-8"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("invalid_base64") from e


def new_qr_token() -> str:
    """Токен для QR check-in."""
    return secrets.token_urlsafe(24)


def safe_dict(d: dict[str, Any], max_len: int = 500) -> dict[str, Any]:
    """
    Безопасное "обрезание" полей для логов (чтобы не утащить большие тексты).
    """
    out: dict[str, Any] = {}
    for k, v in d.items():
        if isinstance(v, str) and len(v) > max_len:
            out[k] = v[:max_len] + "...(truncated)"
        else:
            out[k] = v
    return out
