from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


TARGET_FORMATS = {
    # Pillow format name -> (mime, extension)
    "WEBP": ("image/webp", ".webp"),
}

OUTCOME_FITS = "fits"
OUTCOME_TOO_LARGE = "too_large"
OUTCOME_ENCODE_FAILED = "encode_failed"


@dataclass(frozen=True)
class SourceImage:
    data: bytes
    mime: str
    name: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CompressionBudget:
    """Limits a photo must satisfy before it is handed to storage.

    Quality values are fractions in [0, 1]; codecs map them to their own scale.
    """

    max_bytes: int = 800 * 1024
    max_width: int = 1280
    max_height: int = 720
    initial_quality: float = 0.7
    quality_step: float = 0.1
    min_quality: float = 0.05
    max_attempts: int = 20
    target_format: str = "WEBP"

    def __post_init__(self) -> None:
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if self.max_width <= 0 or self.max_height <= 0:
            raise ValueError("max_width and max_height must be positive")
        if not 0.0 <= self.min_quality <= self.initial_quality <= 1.0:
            raise ValueError("qualities must satisfy 0 <= min_quality <= initial_quality <= 1")
        if self.quality_step < 0:
            raise ValueError("quality_step must not be negative")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")
        if self.target_format.upper() not in TARGET_FORMATS:
            raise ValueError(f"Unsupported target format: {self.target_format!r}")
        object.__setattr__(self, "target_format", self.target_format.upper())

    @property
    def mime(self) -> str:
        return TARGET_FORMATS[self.target_format][0]

    @property
    def ext(self) -> str:
        return TARGET_FORMATS[self.target_format][1]

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CompressionBudget":
        """Build a budget from `PHOTO_*` keys; missing or empty keys keep the defaults."""

        fields: dict[str, Any] = {}
        for key, name, cast in (
            ("PHOTO_MAX_BYTES", "max_bytes", int),
            ("PHOTO_MAX_WIDTH", "max_width", int),
            ("PHOTO_MAX_HEIGHT", "max_height", int),
            ("PHOTO_INITIAL_QUALITY", "initial_quality", float),
            ("PHOTO_QUALITY_STEP", "quality_step", float),
            ("PHOTO_MIN_QUALITY", "min_quality", float),
            ("PHOTO_MAX_ATTEMPTS", "max_attempts", int),
            ("PHOTO_TARGET_FORMAT", "target_format", str),
        ):
            value = config.get(key)
            if value is None or value == "":
                continue
            fields[name] = cast(value)
        return cls(**fields)


@dataclass(frozen=True)
class CompressionAttempt:
    index: int
    quality: float
    size_bytes: int | None
    outcome: str


@dataclass(frozen=True)
class CompressionResult:
    """What the pipeline hands back for one photo.

    `degraded` means the size or dimension guarantees were not met. When
    `fallback` is also set, `data` is the caller's original bytes, unchanged
    (which may be far larger than the budget).

    `name` ends in the target format's extension (".webp") for encoded
    results. Fallback results keep the source's extension and `mime`, since
    their bytes are the original file.
    """

    data: bytes
    mime: str
    ext: str
    name: str
    width: int | None
    height: int | None
    quality: float | None
    attempts: int
    degraded: bool
    fallback: bool
    reason: str | None
    original_size_bytes: int
    history: tuple[CompressionAttempt, ...] = field(default=(), repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def compressed(self) -> bool:
        return not self.fallback and self.size_bytes < self.original_size_bytes

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mime": self.mime,
            "size_bytes": int(self.size_bytes),
            "original_size_bytes": int(self.original_size_bytes),
            "width": self.width,
            "height": self.height,
            "quality": self.quality,
            "attempts": int(self.attempts),
            "degraded": bool(self.degraded),
            "fallback": bool(self.fallback),
            "reason": self.reason,
            "compressed": bool(self.compressed),
        }
