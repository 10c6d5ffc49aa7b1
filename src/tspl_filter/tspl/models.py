"""
Printer models and the page state machine that drives them.

RU: Модели принтеров и генерация TSPL для одной страницы.
EN: Per-model TSPL emitters. A job looks up its emitter once, from the
PPD's ``*cupsModelNumber``, and then runs every page through it:

    start_page(header, config)   PageSetup: label geometry + BITMAP open
    output_line(row)             RowEmit: one halftoned row of bitmap bytes
    end_page(header)             PageFinalize: PRINT

Only the BEEPRT model is implemented; any other model number raises
``UnsupportedModelError``.

All unit conversions use integer ceiling division so a label is never
reported smaller than its pixel extent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Dict, Final, Optional, Tuple, Type

from tspl_filter.cups.ppd import EffectiveConfiguration, parse_flag
from tspl_filter.cups.raster import PageHeader
from tspl_filter.exceptions import UnsupportedModelError
from tspl_filter.tspl import commands
from tspl_filter.tspl.halftone import threshold_row

__all__ = [
    "BEEPRT",
    "MediaTracking",
    "PageSettings",
    "BeeprtEmitter",
    "dots_per_mm",
    "page_size_mm",
    "lookup_model",
    "supported_models",
]

logger: Final = logging.getLogger(__name__)

BEEPRT: Final[int] = 37155

# Tenths of a millimetre per inch; dots/mm = ceil(10 * dpi / 254).
_TENTH_MM_PER_INCH: Final[int] = 254

# PPD keywords as shipped in the vendor PPD ("Horiaontal" included).
OPT_ADJUST_HORIZONTAL: Final[str] = "AdjustHoriaontal"
OPT_ADJUST_VERTICAL: Final[str] = "AdjustVertical"
OPT_ROTATE: Final[str] = "Rotate"
OPT_MEDIA_TRACKING: Final[str] = "zeMediaTracking"
OPT_GAP_OR_MARK_HEIGHT: Final[str] = "GapOrMarkHeight"
OPT_GAP_OR_MARK_OFFSET: Final[str] = "GapOrMarkOffset"
OPT_FEED_OFFSET: Final[str] = "FeedOffset"
OPT_DARKNESS: Final[str] = "Darkness"
OPT_PRINT_RATE: Final[str] = "zePrintRate"
OPT_AUTODOTTED: Final[str] = "Autodotted"


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def dots_per_mm(resolution: int) -> int:
    """Dots per millimetre for a dots-per-inch resolution, rounded up."""
    return _ceil_div(10 * resolution, _TENTH_MM_PER_INCH)


def page_size_mm(header: PageHeader) -> Tuple[int, int]:
    """Label width and height in whole millimetres, rounded up."""
    x_dpmm = dots_per_mm(header.hw_resolution[0])
    y_dpmm = dots_per_mm(header.hw_resolution[1])
    if x_dpmm == 0 or y_dpmm == 0:
        raise ValueError(f"page header has no resolution: {header.hw_resolution}")
    return _ceil_div(header.cups_width, x_dpmm), _ceil_div(header.cups_height, y_dpmm)


# =============================================================================
# PAGE SETTINGS
# =============================================================================


class MediaTracking(Enum):
    """How the printer finds label boundaries."""

    GAP = "Gap"
    BLINE = "BLine"
    CONTINUOUS = "Continuous"

    @classmethod
    def from_choice(cls, choice: Optional[str]) -> "MediaTracking":
        """Map a ``zeMediaTracking`` choice; anything unknown means gap sensing."""
        for member in cls:
            if member.value == choice:
                return member
        return cls.GAP


@dataclass(frozen=True, slots=True)
class PageSettings:
    """Label settings read from the job configuration, with printer fallbacks."""

    reference_x_mm: int = 0
    reference_y_mm: int = 0
    rotate: int = 0
    media_tracking: MediaTracking = MediaTracking.GAP
    gap_mark_height_mm: int = 3
    gap_mark_offset_mm: int = 0
    feed_offset_mm: int = 0
    darkness: int = 8
    speed: int = 4
    autodotted: bool = False

    @classmethod
    def from_config(cls, config: EffectiveConfiguration) -> "PageSettings":
        """
        Resolve every page-setup value in a fixed order.

        Raises:
            OptionParseError: An explicit choice is not a valid value.
        """

        def get(name: str, fallback: int, parser: Callable[[str], int] = int) -> int:
            value = config.parse_choice_unless_default(name, parser)
            return fallback if value is None else value

        reference_x = get(OPT_ADJUST_HORIZONTAL, 0)
        reference_y = get(OPT_ADJUST_VERTICAL, 0)
        rotate = get(OPT_ROTATE, 0)
        media_tracking = MediaTracking.from_choice(config.find_choice(OPT_MEDIA_TRACKING))
        gap_height = get(OPT_GAP_OR_MARK_HEIGHT, 3)
        gap_offset = get(OPT_GAP_OR_MARK_OFFSET, 0)
        feed_offset = get(OPT_FEED_OFFSET, 0)
        darkness = get(OPT_DARKNESS, 8)
        speed = get(OPT_PRINT_RATE, 4)
        autodotted = config.parse_choice_unless_default(OPT_AUTODOTTED, parse_flag)

        return cls(
            reference_x_mm=reference_x,
            reference_y_mm=reference_y,
            rotate=rotate,
            media_tracking=media_tracking,
            gap_mark_height_mm=gap_height,
            gap_mark_offset_mm=gap_offset,
            feed_offset_mm=feed_offset,
            darkness=darkness,
            speed=speed,
            autodotted=bool(autodotted),
        )


# =============================================================================
# EMITTERS
# =============================================================================


class BeeprtEmitter:
    """
    TSPL output for BEEPRT label printers.

    Writes to a binary stream and flushes after every command and every
    bitmap row, so protocol bytes never sit in a buffer across a row.
    """

    model_number: Final[int] = BEEPRT
    name: Final[str] = "BEEPRT"

    def __init__(self, out: BinaryIO) -> None:
        self._out = out

    def _write(self, data: bytes) -> None:
        self._out.write(data)
        self._out.flush()

    def setup(self) -> None:
        """Job start. The BEEPRT needs no job-level preamble."""

    def start_page(self, header: PageHeader, config: EffectiveConfiguration) -> None:
        x_dpmm = dots_per_mm(header.hw_resolution[0])
        y_dpmm = dots_per_mm(header.hw_resolution[1])
        width_mm, height_mm = page_size_mm(header)

        settings = PageSettings.from_config(config)
        logger.debug("Page settings: %s", settings)

        self._write(commands.size(width_mm, height_mm))
        self._write(commands.reference(x_dpmm * settings.reference_x_mm, y_dpmm * settings.reference_y_mm))
        self._write(commands.direction(settings.rotate))

        if settings.media_tracking is MediaTracking.BLINE:
            self._write(commands.bline(settings.gap_mark_height_mm, settings.gap_mark_offset_mm))
        elif settings.media_tracking is MediaTracking.CONTINUOUS:
            self._write(commands.gap(0, 0))
        else:
            self._write(commands.gap(settings.gap_mark_height_mm, settings.gap_mark_offset_mm))

        self._write(commands.offset(settings.feed_offset_mm))
        self._write(commands.density(settings.darkness))
        self._write(commands.speed(settings.speed))
        self._write(commands.setc("AUTODOTTED", "ON" if settings.autodotted else "OFF"))
        self._write(commands.setc("PAUSEKEY", "ON"))
        self._write(commands.setc("WATERMARK", "OFF"))
        self._write(commands.cls())

        self._write(commands.bitmap_open(_ceil_div(header.cups_width, 8), header.cups_height))

    def output_line(self, row: bytes) -> None:
        self._write(threshold_row(row))

    def end_page(self, header: PageHeader) -> None:
        """Close the page with PRINT. The BEEPRT frame does not depend on ``header``."""
        self._write(commands.print_labels(1, 1))


_MODELS: Final[Dict[int, Type[BeeprtEmitter]]] = {
    BEEPRT: BeeprtEmitter,
}


def supported_models() -> list[int]:
    return sorted(_MODELS)


def lookup_model(model_number: int, out: BinaryIO) -> BeeprtEmitter:
    """
    Emitter for the PPD's model number.

    Raises:
        UnsupportedModelError: No emitter exists for ``model_number``.
    """
    emitter_cls = _MODELS.get(model_number)
    if emitter_cls is None:
        raise UnsupportedModelError(model_number, supported_models())
    logger.debug("Using %s emitter for model %d", emitter_cls.name, model_number)
    return emitter_cls(out)
