# src/relstore/cache/schemas.py
from typing import Any, Optional

from relstore.records import Record, UtcDatetime


class CacheRecord(Record):
    resource_type: str
    key: str
    value: Any
    expires_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime
