"""
Tracking codes for dispensation requests.
Format: "DSP-" + 6 random uppercase alphanumeric characters, e.g. DSP-7K2QXA.
Not guaranteed unique; use generate_unique_tracking_code to check the store first.
"""

import re
import secrets
import string

TRACKING_CODE_PREFIX = "DSP-"
TRACKING_CODE_LENGTH = 6
TRACKING_CODE_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_CODE_PATTERN = re.compile(r"^DSP-[A-Z0-9]{6}$")


def generate_tracking_code() -> str:
    random_part = "".join(secrets.choice(TRACKING_CODE_ALPHABET) for _ in range(TRACKING_CODE_LENGTH))
    return TRACKING_CODE_PREFIX + random_part


def is_tracking_code(value: str) -> bool:
    return bool(value) and TRACKING_CODE_PATTERN.match(value) is not None


async def generate_unique_tracking_code(store, attempts: int = 5) -> str:
    """
    Draw codes until one is not already in the store.

    With 36^6 (~2.2 billion) codes collisions are rare; after `attempts` draws
    the last candidate is returned as-is.
    """
    code = generate_tracking_code()
    for _ in range(attempts):
        if await store.get_by_tracking_code(code) is None:
            return code
        code = generate_tracking_code()
    return code
