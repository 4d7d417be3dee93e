from __future__ import annotations

import logging
import mimetypes
import re
import threading
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from .codec import Codec
from .errors import DecodeError, EncodeError
from .models import (
    OUTCOME_ENCODE_FAILED,
    OUTCOME_FITS,
    OUTCOME_TOO_LARGE,
    CompressionAttempt,
    CompressionBudget,
    CompressionResult,
    SourceImage,
)
from .naming import default_stamps, output_name
from .resize import fit_within


logger = logging.getLogger(__name__)

REASON_DECODE_FAILED = "decode_failed"
REASON_ENCODE_FAILED = "encode_failed"
REASON_OVER_BUDGET = "over_budget"
REASON_CANCELLED = "cancelled"
REASON_INTERNAL_ERROR = "internal_error"

_SAFE_EXT_RE = re.compile(r"^\.[a-z0-9]{1,8}$")


class _Cancelled(Exception):
    def __init__(self, attempts: tuple[CompressionAttempt, ...] = ()) -> None:
        super().__init__("cancelled")
        self.attempts = attempts


@dataclass(frozen=True)
class SearchOutcome:
    attempts: tuple[CompressionAttempt, ...]
    data: bytes | None
    quality: float | None
    fits: bool


def _step_down(quality: float, step: float) -> float:
    # Rounded so 0.7 - 7 * 0.1 lands on 0.0 rather than drifting around it.
    return max(0.0, round(quality - step, 4))


def _check_cancel(cancel: threading.Event | None, attempts: tuple[CompressionAttempt, ...] = ()) -> None:
    if cancel is not None and cancel.is_set():
        raise _Cancelled(attempts)


def search_quality(
    surface: Any,
    codec: Codec,
    budget: CompressionBudget,
    *,
    cancel: threading.Event | None = None,
) -> SearchOutcome:
    """Encode `surface` at linearly decreasing quality until it fits `max_bytes`.

    Rules per iteration (attempt starts at 0, quality at `initial_quality`):
    - codec produced nothing: retry one step lower while quality > min_quality
    - output fits: accept it
    - output too large: retry one step lower while attempt < max_attempts and
      quality > min_quality

    The loop never runs more than `max_attempts + 1` times. When it stops
    without a fit, the smallest encoding produced is returned with
    `fits=False`; if nothing was ever produced, `data` is None.
    """

    attempts: list[CompressionAttempt] = []
    best: tuple[bytes, float] | None = None
    quality = round(budget.initial_quality, 4)

    for attempt in range(budget.max_attempts + 1):
        _check_cancel(cancel, tuple(attempts))

        try:
            encoded = codec.encode(surface, budget.target_format, quality)
        except EncodeError as e:
            logger.debug("Attempt %d at quality %.2f: codec error %s", attempt + 1, quality, e)
            encoded = None

        if not encoded:
            attempts.append(CompressionAttempt(attempt, quality, None, OUTCOME_ENCODE_FAILED))
            if quality > budget.min_quality:
                quality = _step_down(quality, budget.quality_step)
                continue
            break

        size = len(encoded)
        logger.debug("Attempt %d at quality %.2f: %.0fKB", attempt + 1, quality, size / 1024)

        if size <= budget.max_bytes:
            attempts.append(CompressionAttempt(attempt, quality, size, OUTCOME_FITS))
            return SearchOutcome(attempts=tuple(attempts), data=encoded, quality=quality, fits=True)

        attempts.append(CompressionAttempt(attempt, quality, size, OUTCOME_TOO_LARGE))
        if best is None or size <= len(best[0]):
            best = (encoded, quality)

        if attempt < budget.max_attempts and quality > budget.min_quality:
            quality = _step_down(quality, budget.quality_step)
            continue
        break

    if best is None:
        return SearchOutcome(attempts=tuple(attempts), data=None, quality=None, fits=False)
    return SearchOutcome(attempts=tuple(attempts), data=best[0], quality=best[1], fits=False)


def _source_ext(source: SourceImage) -> str:
    suffix = PurePosixPath(source.name).suffix.lower()
    if _SAFE_EXT_RE.match(suffix):
        return suffix
    return mimetypes.guess_extension(source.mime or "") or ""


def _fallback(
    source: SourceImage,
    *,
    name: str,
    reason: str,
    size: tuple[int, int] | None = None,
    attempts: tuple[CompressionAttempt, ...] = (),
) -> CompressionResult:
    logger.warning(
        "Using original bytes for %r (%s, %.0fKB)",
        source.name,
        reason,
        source.size_bytes / 1024,
    )
    return CompressionResult(
        data=source.data,
        mime=source.mime or "application/octet-stream",
        ext=_source_ext(source),
        name=name,
        width=size[0] if size else None,
        height=size[1] if size else None,
        quality=None,
        attempts=len(attempts),
        degraded=True,
        fallback=True,
        reason=reason,
        original_size_bytes=source.size_bytes,
        history=attempts,
    )


def compress_image(
    source: SourceImage,
    budget: CompressionBudget,
    codec: Codec,
    *,
    stamp: int | None = None,
    cancel: threading.Event | None = None,
) -> CompressionResult:
    """Decode, resize and quality-search one photo.

    Never raises: corrupt input, codec failures and cancellation all resolve
    to a fallback result carrying the original bytes with `degraded=True`.
    `stamp` distinguishes the output filename; a fresh one is taken when
    omitted.
    """

    if stamp is None:
        stamp = default_stamps.next()

    def _name(ext: str) -> str:
        return output_name(source.name, ext, stamp)

    surfaces: list[Any] = []
    src_size: tuple[int, int] | None = None
    attempts: tuple[CompressionAttempt, ...] = ()

    try:
        _check_cancel(cancel)

        try:
            surface = codec.decode(source.data)
        except DecodeError as e:
            logger.warning("Could not decode %r: %s", source.name, e)
            return _fallback(source, name=_name(_source_ext(source)), reason=REASON_DECODE_FAILED)
        surfaces.append(surface)

        src_size = tuple(codec.size(surface))
        target = fit_within(src_size[0], src_size[1], budget.max_width, budget.max_height)
        resized = codec.resize(surface, target)
        if resized is not surface:
            surfaces.append(resized)

        outcome = search_quality(resized, codec, budget, cancel=cancel)
        attempts = outcome.attempts

        if outcome.data is None:
            return _fallback(
                source,
                name=_name(_source_ext(source)),
                reason=REASON_ENCODE_FAILED,
                size=src_size,
                attempts=attempts,
            )

        if not outcome.fits:
            logger.warning(
                "%r still %.0fKB after %d attempts (limit %.0fKB); keeping smallest encoding",
                source.name,
                len(outcome.data) / 1024,
                len(attempts),
                budget.max_bytes / 1024,
            )
        else:
            logger.debug(
                "Compressed %r: %.0fKB -> %.0fKB in %d attempt(s)",
                source.name,
                source.size_bytes / 1024,
                len(outcome.data) / 1024,
                len(attempts),
            )

        return CompressionResult(
            data=outcome.data,
            mime=budget.mime,
            ext=budget.ext,
            name=_name(budget.ext),
            width=int(target[0]),
            height=int(target[1]),
            quality=outcome.quality,
            attempts=len(attempts),
            degraded=not outcome.fits,
            fallback=False,
            reason=None if outcome.fits else REASON_OVER_BUDGET,
            original_size_bytes=source.size_bytes,
            history=attempts,
        )

    except _Cancelled as e:
        return _fallback(
            source,
            name=_name(_source_ext(source)),
            reason=REASON_CANCELLED,
            size=src_size,
            attempts=e.attempts,
        )
    except Exception:
        logger.exception("Unexpected failure compressing %r", source.name)
        return _fallback(
            source,
            name=_name(_source_ext(source)),
            reason=REASON_INTERNAL_ERROR,
            size=src_size,
            attempts=attempts,
        )
    finally:
        for s in reversed(surfaces):
            try:
                codec.release(s)
            except Exception:
                logger.exception("Releasing a surface for %r failed", source.name)
