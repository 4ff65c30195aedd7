"""WKT point helpers."""

from __future__ import annotations

import math
from typing import Optional, Tuple

POINT_PREFIX = "point("


def parse_point(value: Optional[str]) -> Optional[Tuple[float, float]]:
    """Parse ``Point(<lon> <lat>)`` into ``(lat, lon)``.

    Longitude comes first in the literal. Anything other than exactly two
    finite numeric tokens yields None.
    """
    if not value:
        return None

    text = value.strip()
    if not text.lower().startswith(POINT_PREFIX) or not text.endswith(")"):
        return None

    inner = text[len(POINT_PREFIX) : -1]
    parts = inner.split()
    if len(parts) != 2:
        return None

    try:
        lon = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        return None

    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return lat, lon
