"""
CUPS raster stream reader.

Reads the page stream CUPS hands to a raster filter: a 4-byte sync word,
then for every page a 1796-byte ``cups_page_header2_t`` followed by
``cupsHeight`` rows of ``cupsBytesPerLine`` bytes.

Supported sync words:

    ======  =========  ===========  ==========
    bytes   version    byte order   row data
    ======  =========  ===========  ==========
    RaSt    1          big          plain
    RaS2    2          big          compressed
    RaS3    3          big          plain
    tSaR    1          little       plain
    2SaR    2          little       compressed
    3SaR    3          little       plain
    ======  =========  ===========  ==========

Compressed (v2) rows: one line-repeat byte per row group, then runs:
``0x80`` fills the rest of the line with white, ``n > 0x80`` copies
``257 - n`` literal pixels, ``n < 0x80`` repeats the next pixel ``n + 1``
times.

Usage:
    >>> with RasterReader.open_file("job.ras") as reader:
    ...     while (header := reader.read_page_header()) is not None:
    ...         row = bytearray(header.cups_bytes_per_line)
    ...         while reader.read_row(row):
    ...             handle(row)
"""

from __future__ import annotations

import logging
import struct
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Final, Optional, Tuple, Union

from tspl_filter.exceptions import RasterOpenError, RasterReadError

__all__ = [
    "HEADER_SIZE",
    "PageHeader",
    "RasterReader",
]

logger: Final = logging.getLogger(__name__)

# =============================================================================
# FORMAT CONSTANTS
# =============================================================================

HEADER_SIZE: Final[int] = 1796

_SYNC_WORDS: Final[dict[bytes, Tuple[int, str]]] = {
    b"RaSt": (1, ">"),
    b"RaS2": (2, ">"),
    b"RaS3": (3, ">"),
    b"tSaR": (1, "<"),
    b"2SaR": (2, "<"),
    b"3SaR": (3, "<"),
}

# MediaClass, MediaColor, MediaType, OutputType, 29 page words,
# 12 cups* words, cupsNumColors, cupsBorderlessScalingFactor,
# cupsPageSize[2], cupsImagingBBox[4], cupsInteger[16], cupsReal[16],
# cupsString[16][64], cupsMarkerType, cupsRenderingIntent, cupsPageSizeName.
_HEADER_LAYOUT: Final[str] = "64s64s64s64s29I12II f2f4f16I16f1024s64s64s64s"

# Colour spaces whose white is all bits set (additive spaces).
_WHITE_IS_FF: Final[frozenset[int]] = frozenset({0, 1, 2, 17, 18, 19, 20})

# One reader at a time may consume the process stdin.
_STDIN_LOCK: Final = threading.Lock()


def _cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


# =============================================================================
# PAGE HEADER
# =============================================================================


@dataclass(frozen=True, slots=True)
class PageHeader:
    """
    Per-page metadata from ``cups_page_header2_t``.

    Only the fields a raster filter cares about are kept; names follow the
    CUPS header fields in snake case.
    """

    media_class: str = ""
    media_color: str = ""
    media_type: str = ""
    output_type: str = ""
    hw_resolution: Tuple[int, int] = (0, 0)
    imaging_bbox: Tuple[int, int, int, int] = (0, 0, 0, 0)
    margins: Tuple[int, int] = (0, 0)
    num_copies: int = 0
    orientation: int = 0
    page_size: Tuple[int, int] = (0, 0)
    cups_width: int = 0
    cups_height: int = 0
    cups_media_type: int = 0
    cups_bits_per_color: int = 8
    cups_bits_per_pixel: int = 8
    cups_bytes_per_line: int = 0
    cups_color_order: int = 0
    cups_color_space: int = 0
    cups_compression: int = 0
    cups_row_count: int = 0
    cups_row_feed: int = 0
    cups_row_step: int = 0
    cups_num_colors: int = 0
    cups_page_size_name: str = ""

    @property
    def bytes_per_pixel(self) -> int:
        return max(1, (self.cups_bits_per_pixel + 7) // 8)

    @classmethod
    def unpack(cls, data: bytes, byte_order: str = "<") -> "PageHeader":
        """Decode a raw 1796-byte header in the given struct byte order."""
        if len(data) != HEADER_SIZE:
            raise RasterReadError(f"page header must be {HEADER_SIZE} bytes, got {len(data)}")
        fields = struct.unpack(byte_order + _HEADER_LAYOUT, data)
        media_class, media_color, media_type, output_type = fields[0:4]
        page = fields[4:33]
        cups = fields[33:45]
        num_colors = fields[45]
        page_size_name = fields[-1]
        return cls(
            media_class=_cstr(media_class),
            media_color=_cstr(media_color),
            media_type=_cstr(media_type),
            output_type=_cstr(output_type),
            hw_resolution=(page[5], page[6]),
            imaging_bbox=(page[7], page[8], page[9], page[10]),
            margins=(page[14], page[15]),
            num_copies=page[21],
            orientation=page[22],
            page_size=(page[24], page[25]),
            cups_width=cups[0],
            cups_height=cups[1],
            cups_media_type=cups[2],
            cups_bits_per_color=cups[3],
            cups_bits_per_pixel=cups[4],
            cups_bytes_per_line=cups[5],
            cups_color_order=cups[6],
            cups_color_space=cups[7],
            cups_compression=cups[8],
            cups_row_count=cups[9],
            cups_row_feed=cups[10],
            cups_row_step=cups[11],
            cups_num_colors=num_colors,
            cups_page_size_name=_cstr(page_size_name),
        )

    def validate(self) -> None:
        """Reject headers CUPS itself would refuse to read pixels for."""
        if self.hw_resolution[0] == 0 or self.hw_resolution[1] == 0:
            raise RasterReadError(
                "page header has no resolution",
                context={"resolution": "x".join(str(r) for r in self.hw_resolution)},
            )
        if self.cups_height == 0 or self.cups_bytes_per_line == 0:
            raise RasterReadError(
                "page header has no pixel data",
                context={"height": self.cups_height, "bytes_per_line": self.cups_bytes_per_line},
            )
        if self.cups_bits_per_pixel == 0 or self.cups_bytes_per_line % self.bytes_per_pixel:
            raise RasterReadError(
                "bytes per line is not a whole number of pixels",
                context={"bytes_per_line": self.cups_bytes_per_line, "bits_per_pixel": self.cups_bits_per_pixel},
            )
        expected = (self.cups_width * self.cups_bits_per_pixel + 7) // 8
        if self.cups_bytes_per_line != expected:
            raise RasterReadError(
                "bytes per line does not match page width",
                context={"bytes_per_line": self.cups_bytes_per_line, "expected": expected},
            )


# =============================================================================
# READER
# =============================================================================


class RasterReader:
    """
    Sequential reader over a CUPS raster stream.

    The reader owns its source: a file opened by :meth:`open_file` is
    closed by :meth:`close`, while a reader from :meth:`stdin` only gives
    back its exclusive hold on stdin and leaves the stream open.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        owns_stream: bool = False,
        lock: Optional[threading.Lock] = None,
        name: str = "<raster>",
    ) -> None:
        self._stream = stream
        self._owns_stream = owns_stream
        self._lock = lock
        self._closed = False
        self.name = name

        self.version = 0
        self._byte_order = "<"
        self._exhausted = False

        self._header: Optional[PageHeader] = None
        self._rows_left = 0
        self._line = bytearray()
        self._line_repeats = 0

        try:
            self._read_sync()
        except BaseException:
            self.close()
            raise

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def open_file(cls, path: Union[str, Path]) -> "RasterReader":
        try:
            stream = open(path, "rb")
        except OSError as e:
            raise RasterOpenError(f"unable to open raster file: {e.strerror or e}", context={"path": str(path)}) from e
        return cls(stream, owns_stream=True, name=str(path))

    @classmethod
    def stdin(cls, stream: Optional[BinaryIO] = None) -> "RasterReader":
        """
        Reader over the job's standard input.

        Holds the module-wide stdin lock until :meth:`close`.

        Raises:
            RasterOpenError: Another reader still holds stdin.
        """
        if not _STDIN_LOCK.acquire(blocking=False):
            raise RasterOpenError("raster stream is already open on stdin")
        try:
            source = stream if stream is not None else sys.stdin.buffer
        except BaseException:
            _STDIN_LOCK.release()
            raise
        return cls(source, owns_stream=False, lock=_STDIN_LOCK, name="<stdin>")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._owns_stream:
                self._stream.close()
        finally:
            if self._lock is not None:
                self._lock.release()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "RasterReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Public reads
    # -------------------------------------------------------------------------

    def read_page_header(self) -> Optional[PageHeader]:
        """
        Read the next page header.

        Returns:
            The header, or None at a clean end of stream.

        Raises:
            RasterReadError: Truncated or invalid header, or I/O failure.
        """
        self._check_open()
        if self._exhausted:
            return None
        self._skip_rest_of_page()
        if self._exhausted:
            return None

        data = self._read_exact(HEADER_SIZE)
        if not data:
            self._exhausted = True
            return None
        if len(data) < HEADER_SIZE:
            raise RasterReadError(
                "truncated page header", context={"expected": HEADER_SIZE, "got": len(data)}
            )

        header = PageHeader.unpack(data, self._byte_order)
        header.validate()

        self._header = header
        self._rows_left = header.cups_height
        self._line = bytearray(header.cups_bytes_per_line)
        self._line_repeats = 0
        logger.debug(
            "Page header: %dx%d, %d bytes/line, %d bpp, resolution %s",
            header.cups_width,
            header.cups_height,
            header.cups_bytes_per_line,
            header.cups_bits_per_pixel,
            header.hw_resolution,
        )
        return header

    def read_row(self, buffer: bytearray) -> int:
        """
        Fill ``buffer`` with the next row of the current page.

        Args:
            buffer: Caller-owned buffer, normally ``cups_bytes_per_line``
                    long; reused across rows.

        Returns:
            Number of bytes written, 0 when the page has no rows left.
        """
        self._check_open()
        if self._header is None or self._rows_left <= 0:
            return 0

        if not self._next_line():
            logger.warning("Raster stream ended with %d rows left on the page", self._rows_left)
            self._rows_left = 0
            self._exhausted = True
            return 0

        self._rows_left -= 1
        count = min(len(buffer), len(self._line))
        buffer[:count] = self._line[:count]
        return count

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RasterReadError("raster stream is closed", context={"source": self.name})

    def _read_exact(self, size: int) -> bytes:
        chunks = []
        remaining = size
        try:
            while remaining > 0:
                chunk = self._stream.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        except OSError as e:
            raise RasterReadError(f"read failed: {e}", context={"source": self.name}) from e
        return b"".join(chunks)

    def _read_sync(self) -> None:
        sync = self._read_exact(4)
        if not sync:
            logger.debug("Raster stream %s is empty", self.name)
            self._exhausted = True
            return
        if sync not in _SYNC_WORDS:
            raise RasterOpenError("couldn't open raster stream: bad sync word", context={"sync": sync.hex()})
        self.version, self._byte_order = _SYNC_WORDS[sync]
        logger.debug("Raster stream %s: version %d, byte order %r", self.name, self.version, self._byte_order)

    def _skip_rest_of_page(self) -> None:
        if self._header is not None and self._rows_left > 0:
            logger.debug("Skipping %d unread rows", self._rows_left)
        while self._header is not None and self._rows_left > 0:
            if not self._next_line():
                self._exhausted = True
                break
            self._rows_left -= 1
        self._header = None
        self._rows_left = 0

    def _next_line(self) -> bool:
        """Load the next decoded row into ``self._line``; False at end of stream."""
        if self.version != 2:
            data = self._read_exact(len(self._line))
            if len(data) < len(self._line):
                return False
            self._line[:] = data
            return True

        if self._line_repeats > 0:
            self._line_repeats -= 1
            return True

        repeat = self._read_exact(1)
        if not repeat:
            return False
        self._line_repeats = repeat[0]
        return self._decode_compressed_line()

    def _decode_compressed_line(self) -> bool:
        assert self._header is not None
        bpp = self._header.bytes_per_pixel
        line = self._line
        total = len(line)
        pos = 0

        while pos < total:
            count_byte = self._read_exact(1)
            if not count_byte:
                return False
            count = count_byte[0]

            if count == 128:
                fill = 0xFF if self._header.cups_color_space in _WHITE_IS_FF else 0x00
                line[pos:] = bytes([fill]) * (total - pos)
                pos = total
            elif count > 128:
                size = min((257 - count) * bpp, total - pos)
                data = self._read_exact(size)
                if len(data) < size:
                    return False
                line[pos : pos + size] = data
                pos += size
            else:
                pixel = self._read_exact(bpp)
                if len(pixel) < bpp:
                    return False
                size = min((count + 1) * bpp, total - pos)
                line[pos : pos + size] = (pixel * (count + 1))[:size]
                pos += size

        return True
