from typing import Dict, Any, Optional
from deliverysync.models.change_log import ChangeLogEntry
from deliverysync.schemas.events import ChangeEvent, EventType


async def create_change_event(
    table: str,
    event_type: EventType,
    new: Optional[Dict[str, Any]] = None,
    old: Optional[Dict[str, Any]] = None,
    conn: Any = None
) -> ChangeLogEntry:
    """
    Records a row change in the change log using the provided database connection (transaction).

    CRITICAL: Passing 'conn' ensures the change is logged atomically with the row it describes.
    """
    return await ChangeLogEntry.create(
        table_name=table,
        event_type=event_type.value,
        new_record=new or {},
        old_record=old or {},
        published=False,
        attempts=0,
        using_db=conn
    )


def to_change_event(entry: ChangeLogEntry) -> ChangeEvent:
    """Converts a stored change log row into the event handed to subscribers."""
    return ChangeEvent(
        table=entry.table_name,
        event_type=EventType(entry.event_type),
        new=entry.new_record or {},
        old=entry.old_record or {},
        seq=entry.seq,
        commit_timestamp=entry.created_at,
    )
