from __future__ import annotations

from datetime import datetime, timezone
from collections.abc import Mapping
from typing import Literal, TypeVar

from pydantic import BaseModel, Field, field_validator


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")

RunStatus = Literal["completed", "interrupted", "failed"]


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class RunSummary(BaseSchema):
    status: RunStatus
    cycles: int = Field(ge=0)
    hits: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    rows: int | None = None
    elapsed_seconds: float = Field(default=0.0, ge=0)
    seed: int | None = None
    error: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("started_at")
    @classmethod
    def started_at_utc(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    def cycles_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.cycles / self.elapsed_seconds
