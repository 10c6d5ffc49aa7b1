"""
Fixed-threshold halftoning of 8-bit gray rows into TSPL bitmap bytes.

Each group of 8 samples becomes one byte, MSB = leftmost sample. A sample
at or above ``WHITE_THRESHOLD`` is light. The packed "light" bits are then
inverted because TSPL bitmaps use bit set = print. A short final group
still yields one byte; its missing pixels come out as print bits.
"""

from typing import Final

from PIL import Image

__all__ = ["WHITE_THRESHOLD", "threshold_row"]

WHITE_THRESHOLD: Final[int] = 128

_INVERT: Final[bytes] = bytes(0xFF - i for i in range(256))


def _light(value: int) -> int:
    return 255 if value >= WHITE_THRESHOLD else 0


def threshold_row(samples: bytes) -> bytes:
    """
    Convert one row of gray samples (0 = black, 255 = white) to bitmap bytes.

    Returns:
        ``ceil(len(samples) / 8)`` bytes; empty for an empty row.
    """
    if not samples:
        return b""
    row = Image.frombytes("L", (len(samples), 1), bytes(samples))
    packed = row.point(_light, "1").tobytes()
    return packed.translate(_INVERT)
