"""Cache key naming scheme.

Key shapes are shared with existing deployments and must not change:

- ``session:{identity}`` - current auth token of a user
- ``healthData:{identity}`` - cached health snapshot of a user
- ``calorie:{bmiBucket}:{conditions}`` - memoized recommendation, profile-keyed
- ``cache:{identity}:{path}`` - generic request-cache wrapper
- ``perf:test`` - diagnostic probe
"""

import math
from collections.abc import Iterable

SESSION_PREFIX = "session"
PROFILE_PREFIX = "healthData"
RECOMMENDATION_PREFIX = "calorie"
REQUEST_PREFIX = "cache"
PERF_PROBE_KEY = "perf:test"

BMI_BUCKET_WIDTH = 2.5
NO_CONDITIONS = "none"
ANONYMOUS = "anonymous"


def session_key(identity: str) -> str:
    return f"{SESSION_PREFIX}:{identity}"


def profile_key(identity: str) -> str:
    return f"{PROFILE_PREFIX}:{identity}"


def request_key(identity: str | None, path: str) -> str:
    return f"{REQUEST_PREFIX}:{identity or ANONYMOUS}:{path}"


def _escape_glob(text: str) -> str:
    for char in ("\\", "*", "?", "[", "]"):
        text = text.replace(char, f"\\{char}")
    return text


def request_prefix(identity: str, path_prefix: str = "") -> str:
    """SCAN pattern for one identity's request-cache keys.

    The ``:`` after the identity keeps ``cache:42:*`` from matching user 420.
    """
    return f"{REQUEST_PREFIX}:{_escape_glob(identity)}:{_escape_glob(path_prefix)}*"


def bmi_bucket(bmi: float) -> float:
    """Quantize a BMI down to the nearest multiple of 2.5.

    Raises:
        ValueError: If bmi is NaN or infinite
    """
    if not math.isfinite(bmi):
        raise ValueError(f"BMI must be a finite number, got {bmi}")
    return math.floor(bmi / BMI_BUCKET_WIDTH) * BMI_BUCKET_WIDTH


def format_bucket(bucket: float) -> str:
    """Render a bucket the way existing keys do: ``25`` not ``25.0``."""
    if float(bucket).is_integer():
        return str(int(bucket))
    return repr(float(bucket))


def normalize_conditions(conditions: Iterable[str] | str | None) -> str:
    """Sorted, de-duplicated, comma-joined condition names, or ``none``."""
    if conditions is None:
        return NO_CONDITIONS
    if isinstance(conditions, str):
        return conditions or NO_CONDITIONS
    names = sorted({name for name in conditions if name})
    return ",".join(names) if names else NO_CONDITIONS


def recommendation_key(bmi: float, conditions: Iterable[str] | str | None) -> str:
    """Profile-keyed recommendation key; similar profiles intentionally collide."""
    bucket = format_bucket(bmi_bucket(bmi))
    return f"{RECOMMENDATION_PREFIX}:{bucket}:{normalize_conditions(conditions)}"
