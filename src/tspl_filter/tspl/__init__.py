"""
TSPL output for label printers.

Module Structure:
    tspl/
    ├── __init__.py     # This file (public API exports)
    ├── commands.py     # One builder per TSPL command
    ├── halftone.py     # 8-bit gray row -> 1-bit bitmap bytes
    └── models.py       # Per-model page emitters and model lookup
"""

from tspl_filter.tspl.commands import CRLF
from tspl_filter.tspl.halftone import WHITE_THRESHOLD, threshold_row
from tspl_filter.tspl.models import (
    BEEPRT,
    BeeprtEmitter,
    MediaTracking,
    PageSettings,
    dots_per_mm,
    lookup_model,
    page_size_mm,
    supported_models,
)

__all__ = [
    "CRLF",
    "WHITE_THRESHOLD",
    "threshold_row",
    "BEEPRT",
    "BeeprtEmitter",
    "MediaTracking",
    "PageSettings",
    "dots_per_mm",
    "lookup_model",
    "page_size_mm",
    "supported_models",
]
