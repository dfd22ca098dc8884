from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """
    One row-level change. `new` is the full row for INSERT/UPDATE and empty
    for DELETE; `old` carries the primary key for UPDATE/DELETE.
    """
    table: str
    event_type: EventType
    new: Dict[str, Any] = Field(default_factory=dict)
    old: Dict[str, Any] = Field(default_factory=dict)
    seq: Optional[int] = None
    commit_timestamp: Optional[datetime] = None

    @property
    def record_id(self) -> Optional[str]:
        """Primary key of the affected row, as a string."""
        row_id = self.new.get("id") or self.old.get("id")
        return str(row_id) if row_id is not None else None
