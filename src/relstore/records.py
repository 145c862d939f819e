# src/relstore/records.py
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Type, TypeVar

import structlog
from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError

from relstore.errors import DecodeFailure

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive values; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class Lifecycle(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


R = TypeVar("R", bound=BaseModel)


def decode(record_cls: Type[R], row: Any) -> R:
    try:
        return record_cls.model_validate(row)
    except ValidationError as e:
        logger.error("row_decode_failed", record=record_cls.__name__, error=str(e))
        raise DecodeFailure(f"stored {record_cls.__name__} row does not decode: {e}") from e
