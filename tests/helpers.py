"""Shared test doubles and sample data."""

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

SCHOOL_LAT = -6.8057694
SCHOOL_LON = 110.8430016
T0 = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Collects notifications instead of posting them."""

    def __init__(self) -> None:
        self.calls: List[Tuple] = []

    def notify_created(self, record) -> None:
        self.calls.append(("created", record))

    def notify_decision(self, record, decision, approver) -> None:
        self.calls.append(("decision", record, decision, approver))

    async def aclose(self) -> None:
        return None


class FailingNotifier(RecordingNotifier):
    def notify_created(self, record) -> None:
        raise RuntimeError("webhook down")

    def notify_decision(self, record, decision, approver) -> None:
        raise RuntimeError("webhook down")


class StepClock:
    """Deterministic clock: each call returns a time one second later."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeUpload:
    """Stand-in for fastapi.UploadFile."""

    def __init__(self, filename: str, content_type: str, content: bytes) -> None:
        self.filename = filename
        self.content_type = content_type
        self._content = content
        self._pos = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            size = len(self._content) - self._pos
        chunk = self._content[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk


def submission(**overrides) -> dict:
    fields = {
        "studentName": "Ani",
        "studentClass": "8A",
        "reason": "Sakit",
        "destination": "Puskesmas",
        "departureTime": T0.isoformat(),
        "returnTime": (T0 + timedelta(hours=1)).isoformat(),
    }
    fields.update(overrides)
    return fields


