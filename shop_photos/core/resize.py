from __future__ import annotations


def _scale_to_width(width: int, height: int, new_w: int) -> tuple[int, int]:
    return new_w, max(1, int(round(height * (new_w / float(width)))))


def _scale_to_height(width: int, height: int, new_h: int) -> tuple[int, int]:
    return max(1, int(round(width * (new_h / float(height))))), new_h


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Scale (width, height) down to fit the box, keeping the aspect ratio.

    Landscape and square sources are scaled by width first, portrait sources by
    height first; if the other side still overflows, the source is rescaled by
    that side instead. Sources that already fit are returned unchanged (never
    upscaled).
    """

    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")

    w, h = width, height

    if w >= h:
        if w > max_width:
            w, h = _scale_to_width(width, height, max_width)
        if h > max_height:
            w, h = _scale_to_height(width, height, max_height)
    else:
        if h > max_height:
            w, h = _scale_to_height(width, height, max_height)
        if w > max_width:
            w, h = _scale_to_width(width, height, max_width)

    return w, h
