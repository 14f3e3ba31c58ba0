"""Task data models."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class Task:
    """A row of the todos table, as seen by the assistant."""
    id: str
    title: str
    user_id: str
    description: str = ""
    is_completed: bool = False
    priority: int = 3
    deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Task":
        """Build a Task from a Supabase row."""
        priority = record.get("priority")
        try:
            priority = int(priority)
        except (TypeError, ValueError):
            priority = 3

        return cls(
            id=str(record["id"]),
            title=record.get("title") or "",
            user_id=str(record.get("user_id") or ""),
            description=record.get("description") or "",
            is_completed=bool(record.get("is_completed")),
            priority=priority,
            deadline=parse_timestamp(record.get("deadline")),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view handed back to the model in observations."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "is_completed": self.is_completed,
            "priority": self.priority,
            "deadline": to_utc_iso(self.deadline) if self.deadline else None,
        }


def to_utc_iso(value: datetime) -> str:
    """Render a datetime as canonical UTC, e.g. 2026-10-19T03:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """
    Parse timestamp string from Supabase, handling various formats.

    Supabase can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This method
    normalizes the timestamp format. Naive values are taken as UTC.

    Args:
        timestamp_str: Timestamp string from Supabase

    Returns:
        timezone-aware datetime object, or None for empty input
    """
    if not timestamp_str:
        return None
    if isinstance(timestamp_str, datetime):
        parsed = timestamp_str
    else:
        # Replace 'Z' with '+00:00' for timezone
        timestamp_str = str(timestamp_str).strip().replace("Z", "+00:00")

        # Handle microseconds with more than 6 digits
        # Format: 2026-02-21T02:08:26.18976+00:00
        if "." in timestamp_str:
            head, fraction = timestamp_str.split(".", 1)
            tz = ""
            for sign in ("+", "-"):
                if sign in fraction:
                    fraction, tz = fraction.split(sign, 1)
                    tz = sign + tz
                    break
            fraction = fraction[:6].ljust(6, "0")
            timestamp_str = f"{head}.{fraction}{tz}"

        parsed = datetime.fromisoformat(timestamp_str)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
