"""
Dispensation lifecycle: submit, approve/reject, complete.

    pending -> approved -> completed
    pending -> rejected

Statuses only move forward. approvedBy is set on approve/reject; returnedAt on complete.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.enums import Decision, DispensationStatus
from app.core.exceptions import InvalidTransition, NotFound, ValidationError

from .rate_limiter import SubmissionRateLimiter
from .records import DispensationRecord
from .store import DispensationStore
from .tracking_code import generate_unique_tracking_code, is_tracking_code
from .uploads import AttachmentStorage, StoredAttachment

logger = logging.getLogger(__name__)

REQUIRED_SUBMIT_FIELDS = ("studentName", "studentClass", "reason", "departureTime", "returnTime")
EDITABLE_FIELDS = {
    "studentName": "student_name",
    "studentClass": "student_class",
    "reason": "reason",
    "destination": "destination",
    "departureTime": "departure_time",
    "returnTime": "return_time",
}
PATCHABLE_KEYS = set(EDITABLE_FIELDS) | {"status", "approvedBy", "returnedAt"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _validation_message(exc: PydanticValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"Invalid {loc}: {first.get('msg')}" if loc else str(first.get("msg"))


class DispensationLifecycle:
    def __init__(
        self,
        store: DispensationStore,
        notifier,
        rate_limiter: SubmissionRateLimiter,
        attachments: Optional[AttachmentStorage] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.rate_limiter = rate_limiter
        self.attachments = attachments
        self._clock = clock

    # ----- reads -----
    async def get(self, dispensation_id: int) -> DispensationRecord:
        record = await self.store.get_by_id(dispensation_id)
        if record is None:
            raise NotFound(f"Dispensation {dispensation_id} not found")
        return record

    async def get_by_tracking_code(self, code: str) -> DispensationRecord:
        record = await self._find_tracking_code(code)
        if record is None:
            raise NotFound(f"No dispensation with tracking code {code}")
        return record

    async def list(self, tracking_code: Optional[str] = None) -> List[DispensationRecord]:
        if tracking_code:
            record = await self._find_tracking_code(tracking_code)
            return [record] if record else []
        return await self.store.list()

    # ----- transitions -----
    async def submit(self, fields: Dict[str, Any], caller: str, upload=None) -> DispensationRecord:
        """
        Create a pending dispensation.

        fields uses the camelCase form names. Rate limiting is checked before anything
        is written; a rejected submission leaves no attachment behind.
        """
        self.rate_limiter.acquire(caller)
        attachment: Optional[StoredAttachment] = None
        try:
            missing = [name for name in REQUIRED_SUBMIT_FIELDS if _blank(fields.get(name))]
            if missing:
                raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

            now = self._clock()
            doc = {
                "id": int(now.timestamp() * 1000),
                "trackingCode": await generate_unique_tracking_code(self.store),
                "studentName": fields["studentName"].strip(),
                "studentClass": fields["studentClass"].strip(),
                "reason": fields["reason"].strip(),
                "destination": (fields.get("destination") or "").strip(),
                "departureTime": fields["departureTime"],
                "returnTime": fields["returnTime"],
                "status": DispensationStatus.pending,
                "approvedBy": None,
                "createdAt": now,
                "returnedAt": None,
            }
            try:
                record = DispensationRecord.model_validate(doc)
            except PydanticValidationError as e:
                raise ValidationError(_validation_message(e)) from e

            if upload is not None and self.attachments is not None:
                attachment = await self.attachments.save(upload)
                record = record.merged(
                    {"photo_path": attachment.public_path, "photo_original_name": attachment.original_name}
                )

            await self.store.create(record)
        except Exception:
            # Leave nothing behind for a submission that was not accepted
            self.rate_limiter.forget(caller)
            await self._discard(attachment)
            raise

        logger.info("Dispensation %s created (%s)", record.id, record.tracking_code)
        self._notify("notify_created", record)
        return record

    async def decide(self, dispensation_id: int, decision, approver: str) -> DispensationRecord:
        """Approve or reject a pending dispensation."""
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError("decision must be 'approved' or 'rejected'")
        if not isinstance(approver, str) or _blank(approver):
            raise ValidationError("approvedBy is required")

        current = await self.get(dispensation_id)
        target = DispensationStatus(decision.value)
        if current.status != DispensationStatus.pending:
            raise InvalidTransition(current.status.value, target.value)

        updated = await self.store.update(
            dispensation_id,
            {"status": target, "approved_by": approver.strip()},
            expect_status=DispensationStatus.pending,
        )
        logger.info("Dispensation %s %s by %s", dispensation_id, target.value, updated.approved_by)
        self._notify("notify_decision", updated, decision, updated.approved_by)
        return updated

    async def complete(self, dispensation_id: int) -> DispensationRecord:
        """Mark an approved dispensation as returned."""
        current = await self.get(dispensation_id)
        if current.status != DispensationStatus.approved:
            raise InvalidTransition(current.status.value, DispensationStatus.completed.value)
        updated = await self.store.update(
            dispensation_id,
            {"status": DispensationStatus.completed, "returned_at": self._clock()},
            expect_status=DispensationStatus.approved,
        )
        logger.info("Dispensation %s completed", dispensation_id)
        return updated

    async def amend(self, dispensation_id: int, fields: Dict[str, Any]) -> DispensationRecord:
        """Edit request details (camelCase keys) while the dispensation is still pending."""
        current = await self.get(dispensation_id)
        if current.status != DispensationStatus.pending:
            raise ValidationError("Only pending dispensations can be edited")

        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            name = EDITABLE_FIELDS.get(key)
            if name is None:
                raise ValidationError(f"{key} cannot be edited")
            if name != "destination" and _blank(value):
                raise ValidationError(f"{key} cannot be empty")
            changes[name] = value.strip() if isinstance(value, str) else value
        try:
            current.merged(changes)
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e
        return await self.store.update(dispensation_id, changes, expect_status=DispensationStatus.pending)

    async def apply_patch(self, dispensation_id: int, body: Dict[str, Any]) -> DispensationRecord:
        """
        Route a partial update to the matching lifecycle operation.

        {"status": "approved"|"rejected", "approvedBy": ...} -> decide
        {"status": "completed"[, "returnedAt": ...]}         -> complete (server time is used)
        {<detail fields>}                                    -> amend
        """
        if not body:
            raise ValidationError("Nothing to update")
        unknown = sorted(set(body) - PATCHABLE_KEYS)
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(unknown)}")

        status = body.get("status")
        if status is None:
            if "approvedBy" in body or "returnedAt" in body:
                raise ValidationError("approvedBy/returnedAt can only be set together with a status change")
            return await self.amend(dispensation_id, body)

        if set(body) & set(EDITABLE_FIELDS):
            raise ValidationError("A status change cannot be combined with other field edits")

        try:
            target = DispensationStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'")

        if target in (DispensationStatus.approved, DispensationStatus.rejected):
            return await self.decide(dispensation_id, target.value, body.get("approvedBy"))
        if target == DispensationStatus.completed:
            return await self.complete(dispensation_id)

        current = await self.get(dispensation_id)
        if current.status != DispensationStatus.pending:
            raise InvalidTransition(current.status.value, target.value)
        return current

    async def _find_tracking_code(self, code: str) -> Optional[DispensationRecord]:
        # Malformed codes can never match; skip the store scan
        code = code.strip()
        if not is_tracking_code(code):
            return None
        return await self.store.get_by_tracking_code(code)

    async def _discard(self, attachment: Optional[StoredAttachment]) -> None:
        if attachment is not None and self.attachments is not None:
            await self.attachments.discard(attachment)

    def _notify(self, method: str, *args) -> None:
        # Notification problems never fail a lifecycle operation
        try:
            getattr(self.notifier, method)(*args)
        except Exception:
            logger.exception("Failed to dispatch %s", method)
