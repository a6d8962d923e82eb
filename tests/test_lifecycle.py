"""Dispensation state machine: submit, decide, complete, patch routing."""

import pytest

from app.core.enums import Decision, DispensationStatus
from app.core.exceptions import InvalidTransition, NotFound, RateLimited, StorageError, ValidationError
from app.dispensations.lifecycle import DispensationLifecycle
from app.dispensations.rate_limiter import SubmissionRateLimiter
from app.dispensations.tracking_code import TRACKING_CODE_PATTERN
from app.dispensations.uploads import AttachmentStorage

from helpers import FailingNotifier, FakeUpload, StepClock, submission


async def submit(lifecycle, caller="10.0.0.1", **overrides):
    return await lifecycle.submit(submission(**overrides), caller)


@pytest.mark.asyncio
async def test_submit_creates_pending_record(lifecycle, notifier) -> None:
    record = await submit(lifecycle)
    assert record.status == DispensationStatus.pending
    assert TRACKING_CODE_PATTERN.match(record.tracking_code)
    assert record.approved_by is None
    assert record.returned_at is None
    assert record.photo_path is None
    assert record.id == int(record.created_at.timestamp() * 1000)
    assert await lifecycle.get(record.id) == record
    assert notifier.calls == [("created", record)]


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["studentName", "studentClass", "reason", "departureTime", "returnTime"])
async def test_submit_requires_fields(lifecycle, missing) -> None:
    with pytest.raises(ValidationError):
        await submit(lifecycle, **{missing: "   "})
    assert await lifecycle.list() == []


@pytest.mark.asyncio
async def test_submit_destination_optional(lifecycle) -> None:
    record = await submit(lifecycle, destination=None)
    assert record.destination == ""


@pytest.mark.asyncio
async def test_submit_rejects_bad_timestamp(lifecycle) -> None:
    with pytest.raises(ValidationError):
        await submit(lifecycle, departureTime="tomorrow-ish")


@pytest.mark.asyncio
async def test_validation_failure_does_not_consume_rate_limit(lifecycle) -> None:
    with pytest.raises(ValidationError):
        await submit(lifecycle, reason="")
    record = await submit(lifecycle)
    assert record.status == DispensationStatus.pending


@pytest.mark.asyncio
async def test_second_submission_within_window_is_rate_limited(lifecycle, uploads_dir) -> None:
    await submit(lifecycle)
    upload = FakeUpload("surat.jpg", "image/jpeg", b"\xff\xd8 image")
    with pytest.raises(RateLimited):
        await lifecycle.submit(submission(), "10.0.0.1", upload=upload)
    assert not uploads_dir.exists() or list(uploads_dir.iterdir()) == []
    # Another caller is unaffected
    await submit(lifecycle, caller="10.0.0.2")
    assert len(await lifecycle.list()) == 2


@pytest.mark.asyncio
async def test_submit_with_attachment(lifecycle, uploads_dir) -> None:
    upload = FakeUpload("Surat Dokter.PDF", "application/pdf", b"%PDF-1.4 ...")
    record = await lifecycle.submit(submission(), "10.0.0.1", upload=upload)
    assert record.photo_path.startswith("/uploads/dispen_")
    assert record.photo_path.endswith(".pdf")
    assert record.photo_original_name == "Surat Dokter.PDF"
    files = list(uploads_dir.iterdir())
    assert len(files) == 1 and files[0].read_bytes() == b"%PDF-1.4 ..."


@pytest.mark.asyncio
async def test_invalid_attachment_type_rejected(lifecycle, uploads_dir) -> None:
    upload = FakeUpload("script.exe", "application/octet-stream", b"MZ")
    with pytest.raises(ValidationError):
        await lifecycle.submit(submission(), "10.0.0.1", upload=upload)
    assert await lifecycle.list() == []
    assert not uploads_dir.exists() or list(uploads_dir.iterdir()) == []


class _BrokenStore:
    async def get_by_tracking_code(self, code):
        return None

    async def create(self, record):
        raise StorageError()


@pytest.mark.asyncio
async def test_storage_failure_discards_attachment(notifier, uploads_dir) -> None:
    lifecycle = DispensationLifecycle(
        _BrokenStore(), notifier, SubmissionRateLimiter(), attachments=AttachmentStorage(uploads_dir)
    )
    upload = FakeUpload("a.png", "image/png", b"\x89PNG")
    with pytest.raises(StorageError):
        await lifecycle.submit(submission(), "10.0.0.1", upload=upload)
    assert list(uploads_dir.iterdir()) == []
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_approve_then_complete(lifecycle, notifier) -> None:
    record = await submit(lifecycle)
    approved = await lifecycle.decide(record.id, "approved", "BuGuru")
    assert approved.status == DispensationStatus.approved
    assert approved.approved_by == "BuGuru"
    assert notifier.calls[-1] == ("decision", approved, Decision.approved, "BuGuru")

    completed = await lifecycle.complete(record.id)
    assert completed.status == DispensationStatus.completed
    assert completed.returned_at is not None
    assert completed.approved_by == "BuGuru"


@pytest.mark.asyncio
async def test_decide_twice_fails(lifecycle, notifier) -> None:
    record = await submit(lifecycle)
    await lifecycle.decide(record.id, "approved", "BuGuru")
    with pytest.raises(InvalidTransition):
        await lifecycle.decide(record.id, "rejected", "PakGuru")
    current = await lifecycle.get(record.id)
    assert current.status == DispensationStatus.approved
    assert current.approved_by == "BuGuru"
    assert len([c for c in notifier.calls if c[0] == "decision"]) == 1


@pytest.mark.asyncio
async def test_complete_requires_approved(lifecycle) -> None:
    record = await submit(lifecycle)
    with pytest.raises(InvalidTransition):
        await lifecycle.complete(record.id)

    await lifecycle.decide(record.id, "rejected", "BuGuru")
    with pytest.raises(InvalidTransition):
        await lifecycle.complete(record.id)
    assert (await lifecycle.get(record.id)).status == DispensationStatus.rejected


@pytest.mark.asyncio
async def test_decide_validation(lifecycle) -> None:
    record = await submit(lifecycle)
    with pytest.raises(ValidationError):
        await lifecycle.decide(record.id, "completed", "BuGuru")
    with pytest.raises(ValidationError):
        await lifecycle.decide(record.id, "approved", "  ")
    with pytest.raises(NotFound):
        await lifecycle.decide(123, "approved", "BuGuru")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_operations(any_store) -> None:
    lifecycle = DispensationLifecycle(any_store, FailingNotifier(), SubmissionRateLimiter(), clock=StepClock())
    record = await submit(lifecycle)
    approved = await lifecycle.decide(record.id, "approved", "BuGuru")
    assert approved.status == DispensationStatus.approved


@pytest.mark.asyncio
async def test_patch_routes_status_changes(lifecycle) -> None:
    record = await submit(lifecycle)
    approved = await lifecycle.apply_patch(record.id, {"status": "approved", "approvedBy": "BuGuru"})
    assert approved.status == DispensationStatus.approved

    completed = await lifecycle.apply_patch(
        record.id, {"status": "completed", "returnedAt": "2000-01-01T00:00:00Z"}
    )
    assert completed.status == DispensationStatus.completed
    # Server time is used, not the client's
    assert completed.returned_at.year != 2000


@pytest.mark.asyncio
async def test_patch_cannot_go_backwards(lifecycle) -> None:
    record = await submit(lifecycle)
    await lifecycle.decide(record.id, "approved", "BuGuru")
    with pytest.raises(InvalidTransition):
        await lifecycle.apply_patch(record.id, {"status": "pending"})
    with pytest.raises(InvalidTransition):
        await lifecycle.apply_patch(record.id, {"status": "rejected", "approvedBy": "X"})


@pytest.mark.asyncio
async def test_patch_edits_details_while_pending(lifecycle) -> None:
    record = await submit(lifecycle)
    edited = await lifecycle.apply_patch(record.id, {"destination": "Rumah", "reason": "Izin keluarga"})
    assert edited.destination == "Rumah"
    assert edited.reason == "Izin keluarga"
    assert edited.tracking_code == record.tracking_code

    await lifecycle.decide(record.id, "approved", "BuGuru")
    with pytest.raises(ValidationError):
        await lifecycle.apply_patch(record.id, {"destination": "Pasar"})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {},
        {"trackingCode": "DSP-AAAAAA"},
        {"id": 5},
        {"createdAt": "2026-01-01T00:00:00Z"},
        {"approvedBy": "BuGuru"},
        {"returnedAt": "2026-01-01T00:00:00Z"},
        {"status": "approved", "approvedBy": "BuGuru", "reason": "x"},
        {"status": "bogus"},
        {"status": "approved"},
        {"studentName": ""},
    ],
)
async def test_patch_rejects_invalid_bodies(lifecycle, body) -> None:
    record = await submit(lifecycle)
    with pytest.raises(ValidationError):
        await lifecycle.apply_patch(record.id, body)
    assert await lifecycle.get(record.id) == record


@pytest.mark.asyncio
async def test_list_filtered_by_tracking_code(lifecycle) -> None:
    first = await submit(lifecycle, caller="a")
    await submit(lifecycle, caller="b")
    assert await lifecycle.list(tracking_code=first.tracking_code) == [first]
    assert await lifecycle.list(tracking_code="DSP-000000") == []
    with pytest.raises(NotFound):
        await lifecycle.get_by_tracking_code("DSP-000000")


class _NoLookupStore:
    async def get_by_tracking_code(self, code):
        raise AssertionError("malformed codes must not reach the store")


@pytest.mark.asyncio
async def test_malformed_tracking_code_skips_store_lookup(notifier) -> None:
    lifecycle = DispensationLifecycle(_NoLookupStore(), notifier, SubmissionRateLimiter())
    assert await lifecycle.list(tracking_code="dsp-abc") == []
    with pytest.raises(NotFound):
        await lifecycle.get_by_tracking_code("DSP-12345")


@pytest.mark.asyncio
async def test_tracking_code_lookup_ignores_surrounding_whitespace(lifecycle) -> None:
    record = await submit(lifecycle)
    assert await lifecycle.list(tracking_code=f" {record.tracking_code} ") == [record]
