"""
Shared fixtures: CUPS raster streams and PPD files built in memory.
"""

import struct
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

SYNC_V3_LE = b"3SaR"
SYNC_V2_LE = b"2SaR"
SYNC_V3_BE = b"RaS3"

CSPACE_SW = 18
CSPACE_K = 3


def pack_header(
    width: int,
    height: int,
    resolution: Tuple[int, int] = (203, 203),
    bits_per_pixel: int = 8,
    bytes_per_line: Optional[int] = None,
    color_space: int = CSPACE_SW,
    byte_order: str = "<",
    page_size_name: str = "w288h432",
) -> bytes:
    """Build a cups_page_header2_t."""
    if bytes_per_line is None:
        bytes_per_line = (width * bits_per_pixel + 7) // 8

    page_words = [0] * 29
    page_words[5], page_words[6] = resolution
    page_words[21] = 1  # NumCopies
    page_words[24], page_words[25] = 288, 432  # PageSize in points

    cups_words = [
        width,
        height,
        0,  # cupsMediaType
        bits_per_pixel,  # cupsBitsPerColor
        bits_per_pixel,
        bytes_per_line,
        0,  # cupsColorOrder
        color_space,
        0,  # cupsCompression
        0,
        0,
        0,
    ]

    o = byte_order
    data = b"".join(
        [
            b"PwgRaster".ljust(64, b"\0"),
            b"".ljust(64, b"\0"),
            b"".ljust(64, b"\0"),
            b"".ljust(64, b"\0"),
            struct.pack(f"{o}29I", *page_words),
            struct.pack(f"{o}12I", *cups_words),
            struct.pack(f"{o}I", 1),  # cupsNumColors
            struct.pack(f"{o}f", 1.0),
            struct.pack(f"{o}2f", 288.0, 432.0),
            struct.pack(f"{o}4f", 0.0, 0.0, 288.0, 432.0),
            struct.pack(f"{o}16I", *([0] * 16)),
            struct.pack(f"{o}16f", *([0.0] * 16)),
            b"\0" * 1024,
            b"".ljust(64, b"\0"),
            b"".ljust(64, b"\0"),
            page_size_name.encode("ascii").ljust(64, b"\0"),
        ]
    )
    assert len(data) == 1796
    return data


def build_raster(
    pages: Sequence[Tuple[int, Sequence[bytes]]],
    sync: bytes = SYNC_V3_LE,
    resolution: Tuple[int, int] = (203, 203),
) -> bytes:
    """
    Uncompressed raster stream; each page is ``(width, rows)`` with 8-bit
    gray rows of ``width`` bytes.
    """
    byte_order = "<" if sync[0:1] in (b"t", b"2", b"3") else ">"
    parts = [sync]
    for width, rows in pages:
        parts.append(pack_header(width, len(rows), resolution=resolution, byte_order=byte_order))
        parts.extend(rows)
    return b"".join(parts)


PPD_TEMPLATE = """*PPD-Adobe: "4.3"
*% Test PPD for a BEEPRT label printer
*FormatVersion: "4.3"
*Manufacturer: "BEEPRT"
*ModelName: "BEEPRT Label Printer"
*NickName: "BEEPRT Label Printer, TSPL"
*cupsModelNumber: {model}
*cupsFilter: "application/vnd.cups-raster 0 rastertotspl"

*OpenGroup: General/General
*OpenUI *Darkness/Darkness: PickOne
*OrderDependency: 10 AnySetup *Darkness
*DefaultDarkness: {darkness}
*Darkness Default/Printer Default: ""
*Darkness 5/5: ""
*Darkness 12/12: ""
*Darkness abc/Broken: ""
*CloseUI: *Darkness

*OpenUI *zePrintRate/Print Rate: PickOne
*DefaultzePrintRate: Default
*zePrintRate Default/Printer Default: ""
*zePrintRate 2/2 ips: ""
*zePrintRate 6/6 ips: ""
*CloseUI: *zePrintRate

*OpenUI *zeMediaTracking/Media Tracking: PickOne
*DefaultzeMediaTracking: Gap
*zeMediaTracking Gap/Gap: ""
*zeMediaTracking BLine/Black Mark: ""
*zeMediaTracking Continuous/Continuous: ""
*zeMediaTracking Web/Web Sensing: ""
*CloseUI: *zeMediaTracking

*OpenUI *GapOrMarkHeight/Gap or Mark Height: PickOne
*DefaultGapOrMarkHeight: Default
*GapOrMarkHeight Default/Printer Default: ""
*GapOrMarkHeight 2/2 mm: ""
*GapOrMarkHeight 5/5 mm: ""
*CloseUI: *GapOrMarkHeight

*OpenUI *GapOrMarkOffset/Gap or Mark Offset: PickOne
*DefaultGapOrMarkOffset: Default
*GapOrMarkOffset Default/Printer Default: ""
*GapOrMarkOffset 1/1 mm: ""
*CloseUI: *GapOrMarkOffset

*OpenUI *FeedOffset/Feed Offset: PickOne
*DefaultFeedOffset: Default
*FeedOffset Default/Printer Default: ""
*FeedOffset 2/2 mm: ""
*CloseUI: *FeedOffset

*OpenUI *AdjustHoriaontal/Horizontal Adjustment: PickOne
*DefaultAdjustHoriaontal: Default
*AdjustHoriaontal Default/Printer Default: ""
*AdjustHoriaontal 2/2 mm: ""
*AdjustHoriaontal -1/-1 mm: ""
*CloseUI: *AdjustHoriaontal

*OpenUI *AdjustVertical/Vertical Adjustment: PickOne
*DefaultAdjustVertical: Default
*AdjustVertical Default/Printer Default: ""
*AdjustVertical 3/3 mm: ""
*CloseUI: *AdjustVertical

*OpenUI *Rotate/Rotate: PickOne
*DefaultRotate: Default
*Rotate Default/Printer Default: ""
*Rotate 0/0: ""
*Rotate 1/180: ""
*CloseUI: *Rotate

*OpenUI *Autodotted/Auto Dotted: Boolean
*DefaultAutodotted: False
*Autodotted True/On: ""
*Autodotted False/Off: ""
*CloseUI: *Autodotted
*CloseGroup: General
"""


def make_ppd_text(model: int = 37155, darkness: str = "Default") -> str:
    return PPD_TEMPLATE.format(model=model, darkness=darkness)


@pytest.fixture
def ppd_text() -> str:
    return make_ppd_text()


@pytest.fixture
def ppd_path(tmp_path: Path) -> Path:
    path = tmp_path / "beeprt.ppd"
    path.write_text(make_ppd_text(), encoding="utf-8")
    return path


@pytest.fixture
def write_ppd(tmp_path: Path) -> Callable[..., Path]:
    def _write(model: int = 37155, darkness: str = "Default", name: str = "printer.ppd") -> Path:
        path = tmp_path / name
        path.write_text(make_ppd_text(model=model, darkness=darkness), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def job_env(ppd_path: Path) -> Dict[str, str]:
    return {"PPD": str(ppd_path)}


@pytest.fixture
def raster_file(tmp_path: Path) -> Callable[[bytes], Path]:
    def _write(data: bytes, name: str = "job.ras") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write


def job_argv(options: str = "", filename: Optional[str] = None) -> List[str]:
    argv = ["rastertotspl", "42", "alice", "label", "1", options]
    if filename is not None:
        argv.append(filename)
    return argv
