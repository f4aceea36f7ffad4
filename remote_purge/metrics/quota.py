# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Quota sampling from destination deletion results.

Remote APIs report storage usage under different names and types (ints,
floats, numeric strings).  This module picks out used/quota/free figures,
fills in whichever one is missing from the other two, and computes the
used ratio.
"""

import math
from typing import Any, Dict, Mapping, Optional

_USED_KEYS = ("used", "used_bytes")
_QUOTA_KEYS = ("quota", "quota_bytes", "limit", "total")
_FREE_KEYS = ("free", "free_bytes", "available")


def sanitize_bytes(value: Any) -> Optional[int]:
    """Parse a byte count; junk, non-finite or boolean values give None.

    Negative numbers clamp to 0.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(max(0.0, number))


def _first(source: Mapping[str, Any], keys) -> Optional[int]:
    for key in keys:
        if key in source:
            parsed = sanitize_bytes(source[key])
            if parsed is not None:
                return parsed
    return None


def extract_quota_sample(result: Any, captured_at: float) -> Optional[Dict[str, Any]]:
    """Build a quota sample from a deletion result.

    Looks at ``result["usage"]`` when it is a mapping, otherwise at the
    result mapping itself.

    Args:
        result: Raw result mapping returned for one destination.
        captured_at: Timestamp stored on the sample.

    Returns:
        ``{used_bytes, quota_bytes, free_bytes, ratio, captured_at}`` or None
        when no usage-shaped field is present.
    """
    if not isinstance(result, Mapping):
        return None
    usage = result.get("usage")
    source = usage if isinstance(usage, Mapping) else result

    used = _first(source, _USED_KEYS)
    quota = _first(source, _QUOTA_KEYS)
    free = _first(source, _FREE_KEYS)

    if used is None and quota is None and free is None:
        return None

    if used is None and quota is not None and free is not None:
        used = max(0, quota - free)
    elif quota is None and used is not None and free is not None:
        quota = used + free
    elif free is None and used is not None and quota is not None:
        free = max(0, quota - used)

    ratio = None
    if used is not None and quota:
        ratio = min(1.0, max(0.0, used / quota))

    return {
        "used_bytes": used,
        "quota_bytes": quota,
        "free_bytes": free,
        "ratio": ratio,
        "captured_at": captured_at,
    }
