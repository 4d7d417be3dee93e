import pytest

from shop_photos.core import CompressionBudget, MonotonicStamp, output_name, sanitize_stem


@pytest.mark.parametrize(
    "name,expected",
    [
        ("IMG_0001.JPG", "IMG_0001"),
        ("foto do equipamento.png", "foto_do_equipamento"),
        ("notebook-dell (2).jpeg", "notebook_dell__2_"),
        ("archive.tar.gz", "archive_tar"),
        ("câmera.webp", "c_mera"),
        ("no_extension", "no_extension"),
        ("", "photo"),
        (".png", "photo"),
    ],
)
def test_sanitize_stem(name, expected):
    assert sanitize_stem(name) == expected


def test_output_name_appends_stamp_and_extension():
    assert output_name("Placa mãe.HEIC", ".webp", 1700000000123) == "Placa_m_e_1700000000123.webp"


def test_monotonic_stamp_never_repeats():
    times = iter([1.0, 1.0, 0.5, 2.0])
    stamps = MonotonicStamp(clock=lambda: next(times))

    assert [stamps.next() for _ in range(4)] == [1000, 1001, 1002, 2000]


def test_budget_defaults():
    budget = CompressionBudget()
    assert budget.max_bytes == 800 * 1024
    assert (budget.max_width, budget.max_height) == (1280, 720)
    assert budget.initial_quality == 0.7
    assert budget.quality_step == 0.1
    assert budget.min_quality == 0.05
    assert budget.max_attempts == 20
    assert (budget.mime, budget.ext) == ("image/webp", ".webp")


def test_budget_from_config_reads_strings_and_skips_blanks():
    budget = CompressionBudget.from_config(
        {
            "PHOTO_MAX_BYTES": "512000",
            "PHOTO_MAX_WIDTH": "800",
            "PHOTO_MAX_HEIGHT": None,
            "PHOTO_INITIAL_QUALITY": "0.9",
            "PHOTO_MAX_ATTEMPTS": "",
            "PHOTO_TARGET_FORMAT": "webp",
        }
    )
    assert budget.max_bytes == 512000
    assert budget.max_width == 800
    assert budget.max_height == 720
    assert budget.initial_quality == 0.9
    assert budget.max_attempts == 20
    assert budget.target_format == "WEBP"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_bytes": 0},
        {"max_width": -1},
        {"initial_quality": 1.5},
        {"min_quality": 0.8},
        {"quality_step": -0.1},
        {"max_attempts": -1},
        {"target_format": "BMP"},
    ],
)
def test_budget_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        CompressionBudget(**kwargs)


def test_monotonic_stamp_is_unique_across_threads():
    import threading

    stamps = MonotonicStamp(clock=lambda: 1700000000.0)
    seen = []
    lock = threading.Lock()

    def worker():
        got = [stamps.next() for _ in range(200)]
        with lock:
            seen.extend(got)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == len(set(seen)) == 1600


def test_default_stamps_are_shared_between_calls(monkeypatch):
    from shop_photos.core import SourceImage, compress_image
    from shop_photos.core import compress as compress_mod

    from fakes import FakeCodec, fake_image

    monkeypatch.setattr(compress_mod, "default_stamps", MonotonicStamp(clock=lambda: 1700000000.0))
    source = SourceImage(fake_image(10, 10), "image/jpeg", "pump.jpg")

    first = compress_image(source, CompressionBudget(), FakeCodec())
    second = compress_image(source, CompressionBudget(), FakeCodec())

    assert (first.name, second.name) == ("pump_1700000000000.webp", "pump_1700000000001.webp")
