"""
Версии контрактов событий (WS/HTTP).

Назначение:
- единая точка истинных версий
"""

from __future__ import annotations

WS_SCHEMA_VERSION = "v1"
HTTP_API_VERSION = "v1"
