"""
CUPS-side inputs of the filter.

    options.py   # job option string (``lp -o`` syntax)
    ppd.py       # PPD device description, effective job configuration
    raster.py    # CUPS raster page stream
"""

from tspl_filter.cups.options import parse_options
from tspl_filter.cups.ppd import (
    DEFAULT_MARKER,
    EffectiveConfiguration,
    PpdChoice,
    PpdFile,
    PpdOption,
    parse_flag,
    resolve,
)
from tspl_filter.cups.raster import HEADER_SIZE, PageHeader, RasterReader

__all__ = [
    "parse_options",
    "DEFAULT_MARKER",
    "EffectiveConfiguration",
    "PpdChoice",
    "PpdFile",
    "PpdOption",
    "parse_flag",
    "resolve",
    "HEADER_SIZE",
    "PageHeader",
    "RasterReader",
]
