from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from .codec import Codec
from .compress import compress_image
from .errors import BatchCountExceeded
from .models import CompressionBudget, CompressionResult, SourceImage
from .naming import MonotonicStamp, default_stamps


logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 10


@dataclass(frozen=True)
class BatchItem:
    index: int
    source_name: str
    result: CompressionResult | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class BatchResult:
    items: tuple[BatchItem, ...]

    def __len__(self) -> int:
        return len(self.items)

    @property
    def results(self) -> list[CompressionResult | None]:
        return [item.result for item in self.items]

    @property
    def degraded_count(self) -> int:
        # Items that errored outright also failed their guarantees.
        return sum(1 for item in self.items if item.result is None or item.result.degraded)

    @property
    def fallback_count(self) -> int:
        return sum(1 for item in self.items if item.result is not None and item.result.fallback)

    @property
    def error_count(self) -> int:
        return sum(1 for item in self.items if item.result is None)


def check_batch_count(incoming: int, *, existing_count: int = 0, max_items: int = DEFAULT_MAX_ITEMS) -> None:
    requested = int(existing_count) + int(incoming)
    if requested > max_items:
        raise BatchCountExceeded(max_items=max_items, requested=requested)


def compress_batch(
    sources: Sequence[SourceImage],
    budget: CompressionBudget,
    codec: Codec,
    *,
    existing_count: int = 0,
    max_items: int = DEFAULT_MAX_ITEMS,
    max_workers: int | None = None,
    cancel: threading.Event | None = None,
    stamps: MonotonicStamp | None = None,
) -> BatchResult:
    """Compress each photo independently and return results in input order.

    Raises BatchCountExceeded, before touching any photo, when
    `existing_count + len(sources)` is over `max_items`. Nothing else escapes:
    a photo that fails is reported on its own item.
    """

    check_batch_count(len(sources), existing_count=existing_count, max_items=max_items)
    if not sources:
        return BatchResult(items=())

    # Names are fixed up front so they follow input order, not completion order.
    stamps = stamps or default_stamps
    planned = [(i, src, stamps.next()) for i, src in enumerate(sources)]

    workers = max(1, min(int(max_workers or 4), len(planned)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="photo") as pool:
        futures = [
            pool.submit(compress_image, src, budget, codec, stamp=stamp, cancel=cancel)
            for _, src, stamp in planned
        ]

        items: list[BatchItem] = []
        for (i, src, _), fut in zip(planned, futures):
            try:
                items.append(BatchItem(index=i, source_name=src.name, result=fut.result()))
            except Exception as e:
                logger.exception("Compressing item %d (%r) failed", i, src.name)
                items.append(BatchItem(index=i, source_name=src.name, result=None, error=str(e) or e.__class__.__name__))

    result = BatchResult(items=tuple(items))
    if result.degraded_count:
        logger.warning("%d of %d photo(s) did not meet the size/dimension limits", result.degraded_count, len(result))
    return result
