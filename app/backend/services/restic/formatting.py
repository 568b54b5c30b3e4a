"""Human readable byte sizes for backup output."""

from __future__ import annotations

from typing import Tuple


# Plain binary boundaries (1 KiB = 1024 B). Older releases compared against
# `2 << 10`-style literals, i.e. twice these values; the binary units are intended.
_UNITS = (
    ("TiB", 1024**4),
    ("GiB", 1024**3),
    ("MiB", 1024**2),
    ("KiB", 1024),
)


def format_size(size_bytes: int) -> Tuple[str, int]:
    """Return the largest fitting unit and the truncated count in that unit.

    A value is promoted to a unit only when it is strictly larger than that
    unit's byte boundary, so exactly 1024 bytes stays `("B", 1024)`.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Tuple[str, int]: (unit, count), e.g. `("MiB", 3)`.
    """

    for unit, boundary in _UNITS:
        if size_bytes > boundary:
            return unit, size_bytes // boundary
    return "B", size_bytes
