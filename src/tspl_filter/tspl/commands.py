"""
TSPL command builders for BEEPRT label printers.

TSPL is a line-oriented ASCII command language: every command ends with
CR LF. The one exception is ``BITMAP``, whose parameter list ends with a
comma and is followed directly by raw bitmap bytes; the next CR LF closes
the payload.

Reference: TSC TSPL/TSPL2 Programming Manual
Compatibility: BEEPRT (cupsModelNumber 37155), TSC-compatible firmware

All builders return ``bytes`` ready to be written to the printer.

Example:
    >>> size(102, 153)
    b'SIZE 102 mm,153 mm\\r\\n'
    >>> bitmap_open(102, 1218)
    b'BITMAP 0,0,102,1218,1,'
"""

from typing import Final

__all__ = [
    "CRLF",
    "size",
    "reference",
    "direction",
    "gap",
    "bline",
    "offset",
    "density",
    "speed",
    "setc",
    "cls",
    "bitmap_open",
    "print_labels",
]

CRLF: Final[bytes] = b"\r\n"

# BITMAP mode 1: OR the image into the buffer.
BITMAP_MODE_OR: Final[int] = 1


def _line(text: str) -> bytes:
    return text.encode("ascii") + CRLF


# =============================================================================
# LABEL SETUP
# =============================================================================


def size(width_mm: int, height_mm: int) -> bytes:
    """
    Set label width and length.

    Command: SIZE m mm,n mm
    """
    return _line(f"SIZE {width_mm} mm,{height_mm} mm")


def reference(x_dots: int, y_dots: int) -> bytes:
    """
    Set the reference point of the label (print origin), in dots.

    Command: REFERENCE x,y
    """
    return _line(f"REFERENCE {x_dots},{y_dots}")


def direction(rotate: int, mirror: int = 0) -> bytes:
    """
    Set printout direction and mirror image.

    Command: DIRECTION n,m
    """
    return _line(f"DIRECTION {rotate},{mirror}")


def gap(height_mm: int, offset_mm: int) -> bytes:
    """
    Gap sensing: distance between labels and its offset.

    Command: GAP m mm,n mm
    ``GAP 0 mm,0 mm`` selects continuous media.
    """
    return _line(f"GAP {height_mm} mm,{offset_mm} mm")


def bline(height_mm: int, offset_mm: int) -> bytes:
    """
    Black-mark sensing: mark height and extra feed after the mark.

    Command: BLINE m mm,n mm
    """
    return _line(f"BLINE {height_mm} mm,{offset_mm} mm")


def offset(distance_mm: int) -> bytes:
    """
    Extra feed after printing (peel/cut position).

    Command: OFFSET m mm
    """
    return _line(f"OFFSET {distance_mm} mm")


def density(level: int) -> bytes:
    """
    Print darkness.

    Command: DENSITY n
    """
    return _line(f"DENSITY {level}")


def speed(rate: int) -> bytes:
    """
    Print speed in inches per second.

    Command: SPEED n
    """
    return _line(f"SPEED {rate}")


def setc(setting: str, value: str) -> bytes:
    """
    Printer setting.

    Command: SET<setting> <value>, sent as ``SETC`` for the settings the
    BEEPRT firmware takes that way (AUTODOTTED, PAUSEKEY, WATERMARK).
    """
    return _line(f"SETC {setting} {value}")


def cls() -> bytes:
    """
    Clear the image buffer.

    Command: CLS
    """
    return _line("CLS")


# =============================================================================
# BITMAP / PRINT
# =============================================================================


def bitmap_open(width_bytes: int, height: int, x: int = 0, y: int = 0, mode: int = BITMAP_MODE_OR) -> bytes:
    """
    Open a bitmap frame.

    Command: BITMAP x,y,width,height,mode,<data>

    The returned bytes end with the comma before ``<data>``: the caller must
    write exactly ``width_bytes * height`` bitmap bytes next, one bit per
    dot, MSB first, bit set = print.
    """
    return f"BITMAP {x},{y},{width_bytes},{height},{mode},".encode("ascii")


def print_labels(sets: int = 1, copies: int = 1) -> bytes:
    """
    Print the image buffer.

    Command: PRINT m,n

    A leading CR LF closes any open BITMAP payload.
    """
    return CRLF + _line(f"PRINT {sets},{copies}")
