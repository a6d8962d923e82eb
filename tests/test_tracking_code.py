"""Unit tests for dispensation tracking codes."""

import pytest

from app.dispensations.tracking_code import (
    TRACKING_CODE_ALPHABET,
    TRACKING_CODE_PATTERN,
    generate_tracking_code,
    generate_unique_tracking_code,
    is_tracking_code,
)


def test_tracking_code_format() -> None:
    """DSP- prefix followed by 6 uppercase alphanumerics."""
    for _ in range(50):
        code = generate_tracking_code()
        assert TRACKING_CODE_PATTERN.match(code)
        assert len(code) == 10


def test_alphabet_is_36_symbols() -> None:
    assert len(set(TRACKING_CODE_ALPHABET)) == 36


def test_codes_vary() -> None:
    codes = {generate_tracking_code() for _ in range(20)}
    assert len(codes) >= 2


@pytest.mark.parametrize("value", ["", "DSP-abc123", "DSP-ABC12", "XYZ-ABC123", "DSP-ABC1234"])
def test_is_tracking_code_rejects_malformed(value) -> None:
    assert is_tracking_code(value) is False


class _TakenStore:
    def __init__(self, taken: int) -> None:
        self.taken = taken
        self.lookups = []

    async def get_by_tracking_code(self, code):
        self.lookups.append(code)
        return object() if len(self.lookups) <= self.taken else None


@pytest.mark.asyncio
async def test_unique_code_retries_on_collision() -> None:
    store = _TakenStore(taken=2)
    code = await generate_unique_tracking_code(store)
    assert len(store.lookups) == 3
    assert code == store.lookups[-1]


@pytest.mark.asyncio
async def test_unique_code_gives_up_after_attempts() -> None:
    store = _TakenStore(taken=100)
    code = await generate_unique_tracking_code(store, attempts=3)
    assert len(store.lookups) == 3
    assert is_tracking_code(code)
