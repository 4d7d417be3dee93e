import io

import pytest
from PIL import Image

from shop_photos.core import (
    BatchCountExceeded,
    CompressionBudget,
    MonotonicStamp,
    PillowCodec,
    SourceImage,
    compress_batch,
)

from fakes import FakeCodec, fake_image


BUDGET = CompressionBudget()


def _jpeg(size, color):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


def test_corrupt_item_does_not_affect_siblings():
    sources = [
        SourceImage(_jpeg((2000, 1500), (255, 0, 0)), "image/jpeg", "front.jpg"),
        SourceImage(b"\xff\xd8\xff garbage", "image/jpeg", "broken.jpg"),
        SourceImage(_jpeg((1500, 2000), (0, 0, 255)), "image/jpeg", "back.jpg"),
    ]

    batch = compress_batch(sources, BUDGET, PillowCodec())

    assert len(batch) == 3
    assert [item.index for item in batch.items] == [0, 1, 2]
    assert [item.source_name for item in batch.items] == ["front.jpg", "broken.jpg", "back.jpg"]

    first, second, third = batch.results
    assert first.degraded is False and first.mime == "image/webp"
    assert (first.width, first.height) == (960, 720)
    assert second.degraded is True and second.fallback is True
    assert second.data == sources[1].data
    assert third.degraded is False
    assert (third.width, third.height) == (540, 720)

    assert batch.degraded_count == 1
    assert batch.fallback_count == 1
    assert batch.error_count == 0


def test_count_ceiling_rejects_before_any_work():
    codec = FakeCodec()
    sources = [SourceImage(fake_image(100, 100, str(i)), "image/jpeg", f"{i}.jpg") for i in range(11)]

    with pytest.raises(BatchCountExceeded) as exc:
        compress_batch(sources, BUDGET, codec, max_items=10)

    assert exc.value.max_items == 10
    assert exc.value.requested == 11
    assert codec.decoded == []


def test_existing_items_count_towards_ceiling():
    codec = FakeCodec()
    sources = [SourceImage(fake_image(100, 100), "image/jpeg", f"{i}.jpg") for i in range(3)]

    with pytest.raises(BatchCountExceeded):
        compress_batch(sources, BUDGET, codec, existing_count=8, max_items=10)
    assert codec.decoded == []

    batch = compress_batch(sources, BUDGET, codec, existing_count=7, max_items=10)
    assert len(batch) == 3


def test_order_is_kept_when_items_finish_out_of_order():
    # Earlier items are slower, so they complete last.
    codec = FakeCodec(delay_for_tag=lambda tag: 0.05 * (5 - int(tag)))
    sources = [SourceImage(fake_image(100, 100, str(i)), "image/jpeg", f"photo{i}.jpg") for i in range(5)]

    batch = compress_batch(sources, BUDGET, codec, max_workers=5)

    assert [item.source_name for item in batch.items] == [f"photo{i}.jpg" for i in range(5)]
    assert [r.name.split("_")[0] for r in batch.results] == [f"photo{i}" for i in range(5)]
    # Completion order really was reversed.
    assert [tag for tag, _, _ in codec.encoded][0] == "4"


def test_names_are_unique_and_follow_input_order():
    stamps = MonotonicStamp(clock=lambda: 1700000000.0)
    sources = [SourceImage(fake_image(100, 100), "image/jpeg", "same.jpg") for _ in range(4)]

    batch = compress_batch(sources, BUDGET, FakeCodec(), stamps=stamps)

    assert [r.name for r in batch.results] == [
        "same_1700000000000.webp",
        "same_1700000000001.webp",
        "same_1700000000002.webp",
        "same_1700000000003.webp",
    ]


def test_unexpected_item_failure_is_reported_on_that_item(monkeypatch):
    from shop_photos.core import batch as batch_mod

    real = batch_mod.compress_image

    def flaky(source, *args, **kwargs):
        if source.name == "bad.jpg":
            raise RuntimeError("worker died")
        return real(source, *args, **kwargs)

    monkeypatch.setattr(batch_mod, "compress_image", flaky)

    sources = [
        SourceImage(fake_image(100, 100), "image/jpeg", "a.jpg"),
        SourceImage(fake_image(100, 100), "image/jpeg", "bad.jpg"),
        SourceImage(fake_image(100, 100), "image/jpeg", "c.jpg"),
    ]
    batch = compress_batch(sources, BUDGET, FakeCodec())

    assert [item.ok for item in batch.items] == [True, False, True]
    assert batch.items[1].error == "worker died"
    assert batch.error_count == 1
    assert batch.degraded_count == 1


def test_empty_batch():
    batch = compress_batch([], BUDGET, FakeCodec())
    assert len(batch) == 0
    assert batch.degraded_count == 0
