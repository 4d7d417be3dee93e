from __future__ import annotations


class PhotoCompressionError(RuntimeError):
    pass


class DecodeError(PhotoCompressionError):
    """Input bytes could not be interpreted as an image."""


class EncodeError(PhotoCompressionError):
    """The codec produced no output at the requested quality."""


class BatchCountExceeded(PhotoCompressionError):
    def __init__(self, *, max_items: int, requested: int) -> None:
        super().__init__(f"At most {max_items} photos are allowed (got {requested}).")
        self.max_items = max_items
        self.requested = requested
