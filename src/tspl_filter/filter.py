"""
Job driver: CUPS raster in, TSPL out.

Invoked by CUPS as::

    rastertotspl job-id user title copies options [file]

Steps:
    1. check the argument count (before any I/O)
    2. open the raster stream (``file`` or stdin)
    3. parse the job options and resolve them against ``$PPD``
    4. look up the TSPL emitter for the PPD's model number
    5. pages -> rows loop, polling the cancellation flag and reporting
       progress every 16 rows

A job that completes no page fails with ``ZeroPagesError``.

Cancellation: the loop stops at the first poll that sees the flag. A page
abandoned mid-way gets no ``PRINT``; pages completed before it stand, and
the job exits 0 if there was at least one.
"""

from __future__ import annotations

import os
import signal
import sys
import traceback
from typing import Any, BinaryIO, Dict, Mapping, Optional, Sequence

from tspl_filter import ATTR, _setup_logging, get_logger, load_config
from tspl_filter.cancel import CancellationFlag
from tspl_filter.cups.options import parse_options
from tspl_filter.cups.ppd import EffectiveConfiguration, PpdFile, resolve
from tspl_filter.cups.raster import RasterReader
from tspl_filter.exceptions import FilterConfigError, FilterError, UsageError, ZeroPagesError
from tspl_filter.tspl.models import BeeprtEmitter, lookup_model

__all__ = ["run_job", "print_pages", "main"]

logger = get_logger(__name__)

PROGRESS_MASK = 15


def run_job(
    argv: Sequence[str],
    environ: Optional[Mapping[str, str]] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
    cancel: Optional[CancellationFlag] = None,
    config: Optional[Dict[str, Any]] = None,
) -> int:
    """
    Run one print job.

    Args:
        argv: ``[program, job-id, user, title, copies, options, [file]]``.
        environ: Environment holding the PPD path (default ``os.environ``).
        stdin: Raster source when no file argument is given
               (default ``sys.stdin.buffer``).
        stdout: Protocol output (default ``sys.stdout.buffer``).
        cancel: Cancellation flag polled by the page loop.
        config: Filter settings from :func:`tspl_filter.load_config`.

    Returns:
        Number of completed pages (at least 1).

    Raises:
        FilterError: Any fatal job condition.
    """
    if len(argv) not in (6, 7):
        raise UsageError(os.path.basename(argv[0]) if argv else "tspl-filter")

    env = os.environ if environ is None else environ
    settings = config if config is not None else load_config(environ=dict(env))
    out = stdout if stdout is not None else sys.stdout.buffer
    flag = cancel if cancel is not None else CancellationFlag()

    job_id, user, title = argv[1], argv[2], argv[3]
    logger.debug("Job %s from %s: %r", job_id, user, title)

    reader = RasterReader.open_file(argv[6]) if len(argv) == 7 else RasterReader.stdin(stdin)
    with reader:
        overrides = parse_options(argv[5])

        ppd_var = settings.get("ppd_env_var") or "PPD"
        ppd_path = env.get(ppd_var)
        if not ppd_path:
            raise FilterConfigError(f"{ppd_var} environment variable is not set")
        ppd = PpdFile.open_file(ppd_path)
        job_config = resolve(ppd, overrides)

        emitter = lookup_model(job_config.model_number, out)
        emitter.setup()

        pages = print_pages(reader, emitter, job_config, flag)

    if pages == 0:
        raise ZeroPagesError()
    return pages


def print_pages(
    reader: RasterReader,
    emitter: BeeprtEmitter,
    config: EffectiveConfiguration,
    cancel: CancellationFlag,
) -> int:
    """
    Run every page of ``reader`` through ``emitter``.

    Returns:
        Number of pages that were fully emitted (PRINT sent).
    """
    completed = 0
    page = 0

    while True:
        header = reader.read_page_header()
        if header is None:
            break
        if cancel.is_set():
            break

        page += 1
        emitter.start_page(header, config)

        # One row buffer per page, reused for every row.
        buffer = bytearray(header.cups_bytes_per_line)
        view = memoryview(buffer)
        abandoned = False

        for y in range(header.cups_height):
            if cancel.is_set():
                abandoned = True
                break
            if (y & PROGRESS_MASK) == 0:
                pct = 100 * y // header.cups_height
                logger.info("printing page %d, %d%% complete.", page, pct)
                logger.log(ATTR, "job-media-progress=%d", pct)

            count = reader.read_row(buffer)
            if count == 0:
                break
            emitter.output_line(view[:count])

        if abandoned:
            logger.info("cancelled on page %d", page)
            break

        emitter.end_page(header)
        completed += 1
        logger.info("finished page %d", page)

        if cancel.is_set():
            break

    return completed


def _describe_location(exc: BaseException) -> str:
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return ""
    last = frames[-1]
    return f"at {last.filename}:{last.lineno}: "


def main(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
) -> int:
    """
    Filter entry point; returns the process exit status.

    Fatal job conditions are reported as ``ERROR: <message>``; anything
    unexpected is reported with its source location and the full
    traceback at DEBUG.
    """
    args = list(sys.argv if argv is None else argv)
    env = os.environ if environ is None else environ

    config = load_config(environ=dict(env))
    _setup_logging(
        level=config.get("log_level"),
        log_file=config.get("log_file"),
        max_bytes=int(config.get("log_max_bytes", 1024 * 1024)),
        backup_count=int(config.get("log_backup_count", 3)),
    )

    cancel = CancellationFlag()
    previous_handler = None
    try:
        previous_handler = cancel.install(signal.SIGTERM)
    except ValueError:
        # signal.signal only works in the main thread.
        logger.debug("Not in the main thread, SIGTERM will not cancel the job")

    try:
        pages = run_job(args, env, stdin=stdin, stdout=stdout, cancel=cancel, config=config)
    except FilterError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("I/O error: %s", e)
        return 1
    except Exception as e:
        logger.critical("%s%s", _describe_location(e), e)
        logger.debug("Unhandled exception", exc_info=True)
        return 1
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGTERM, previous_handler)

    logger.debug("Job complete: %d page(s)", pages)
    return 0
