"""
Структурированные результаты суммаризации.

Зачем:
- LLM возвращает произвольный JSON; здесь он валидируется на границе
- дальше по коду ходят только типизированные записи
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TBD_ASSIGNEE = "TBD"


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _as_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none"}:
        return None
    return text


class ActionItem(BaseModel):
    """
    Пункт "кто что делает". assigned_to / deadline - подсказки модели,
    не проверенные данные.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str = "Untitled Action Item"
    description: str | None = None
    assignee_hint: str = Field(default=TBD_ASSIGNEE, alias="assigned_to")
    deadline_hint: str | None = Field(default=None, alias="deadline")

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v: Any) -> str:
        text = _as_optional_text(v)
        return text or "Untitled Action Item"

    @field_validator("description", "deadline_hint", mode="before")
    @classmethod
    def _optional(cls, v: Any) -> str | None:
        return _as_optional_text(v)

    @field_validator("assignee_hint", mode="before")
    @classmethod
    def _assignee(cls, v: Any) -> str:
        return _as_optional_text(v) or TBD_ASSIGNEE


class StructuredSummary(BaseModel):
    """
    Итоговое резюме встречи: abstract, key points, решения, action items.
    """

    abstract: str = "No summary available"
    key_points: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)

    @field_validator("abstract", mode="before")
    @classmethod
    def _abstract(cls, v: Any) -> str:
        return _as_optional_text(v) or "No summary available"

    @field_validator("key_points", "decisions", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_text_list(v)

    @field_validator("action_items", mode="before")
    @classmethod
    def _items(cls, v: Any) -> list[Any]:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    def to_document(self) -> dict[str, Any]:
        """JSON-документ в исходных (wire) именах полей."""
        return self.model_dump(by_alias=True)


class InterimSummary(BaseModel):
    """
    Промежуточная сводка во время live-транскрипции.
    Модель отвечает в camelCase (keyPoints), принимаем оба варианта.
    """

    model_config = ConfigDict(populate_by_name=True)

    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    decisions: list[str] = Field(default_factory=list)
    sentiment: str = "neutral"
    insights: str = "Analysis in progress..."

    @field_validator("key_points", "decisions", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return _as_text_list(v)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, v: Any) -> str:
        text = (_as_optional_text(v) or "neutral").lower()
        return text if text in {"positive", "neutral", "negative"} else "neutral"

    @field_validator("insights", mode="before")
    @classmethod
    def _insights(cls, v: Any) -> str:
        return _as_optional_text(v) or "Analysis in progress..."
