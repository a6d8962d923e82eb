"""Record shapes shared by both storage backends (camelCase on the wire and on disk)."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel

from app.core.enums import DispensationStatus


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Naive timestamps (e.g. from a datetime-local input or SQLite) are taken as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DispensationRecord(BaseModel):
    id: int
    tracking_code: str
    student_name: str
    student_class: str
    reason: str
    destination: str = ""
    departure_time: datetime
    return_time: datetime
    photo_path: Optional[str] = None
    photo_original_name: Optional[str] = None
    status: DispensationStatus = DispensationStatus.pending
    approved_by: Optional[str] = None
    created_at: datetime
    returned_at: Optional[datetime] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @field_validator("departure_time", "return_time", "created_at", "returned_at")
    @classmethod
    def _normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DispensationRecord":
        return cls.model_validate(doc)

    def merged(self, fields: Dict[str, Any]) -> "DispensationRecord":
        """Return a validated copy with fields (snake_case keys) merged in."""
        return DispensationRecord.model_validate({**self.model_dump(), **fields})


class TeacherRecord(BaseModel):
    id: int
    username: str
    name: str
    role: str = "teacher"
    password_hash: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TeacherRecord":
        return cls.model_validate(doc)
