from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request, send_from_directory, url_for
from werkzeug.datastructures import FileStorage

from shop_photos.core import (
    BatchCountExceeded,
    CompressionResult,
    SourceImage,
    check_batch_count,
    compress_batch,
    compress_image,
)
from shop_photos.integrations.storage import StorageAPIError, public_url, save_local, upload_object


web = Blueprint("web", __name__)

# The single-photo picker is stricter than the multi-photo one, which takes any image/*.
ACCEPTED_MIMES = ("image/jpeg", "image/png", "image/webp", "image/gif", "image/avif")


def _error(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"ok": False, "error": {"human_message": message}}), status


def _source_from_upload(f: FileStorage) -> SourceImage:
    return SourceImage(
        data=f.read(),
        mime=(f.mimetype or "application/octet-stream").lower(),
        name=f.filename or "photo",
    )


def _store(result: CompressionResult) -> str:
    """Hand the encoded bytes to storage and return a public URL."""
    base_url = current_app.config.get("STORAGE_URL")
    api_key = current_app.config.get("STORAGE_KEY")
    bucket = current_app.config["STORAGE_BUCKET"]

    if base_url and api_key:
        path = upload_object(
            base_url=base_url,
            api_key=api_key,
            bucket=bucket,
            name=result.name,
            content_type=result.mime,
            data=result.data,
        )
        return public_url(base_url=base_url, bucket=bucket, path=path)

    save_local(current_app.config["UPLOAD_DIR"], result.name, result.data)
    return url_for("web.photo_file", name=result.name)


def _photo_payload(result: CompressionResult, url: str) -> dict[str, object]:
    payload: dict[str, object] = dict(result.to_dict())
    payload["url"] = url
    return payload


@web.post("/api/photos")
def api_upload_photo() -> Response:
    f = request.files.get("file")
    if f is None:
        return _error("missing file", 400)

    if (f.mimetype or "").lower() not in ACCEPTED_MIMES:
        return _error("Please choose a JPEG, PNG, WEBP, GIF or AVIF image.", 400)

    source = _source_from_upload(f)
    result = compress_image(
        source,
        current_app.extensions["photo_budget"],
        current_app.extensions["photo_codec"],
        stamp=current_app.extensions["photo_stamps"].next(),
    )

    try:
        url = _store(result)
    except StorageAPIError as e:
        current_app.logger.warning("%s", e)
        return _error(str(e), 502)

    if result.degraded:
        current_app.logger.warning("Stored %s without meeting limits (%s)", result.name, result.reason)

    return jsonify({"ok": True, "photo": _photo_payload(result, url)})


@web.post("/api/photos/batch")
def api_upload_photos() -> Response:
    files = [f for f in request.files.getlist("files") if f is not None]
    if not files:
        return _error("missing files", 400)

    try:
        existing_count = int(request.form.get("existing_count") or 0)
    except ValueError:
        return _error("existing_count must be an integer", 400)
    if existing_count < 0:
        return _error("existing_count must not be negative", 400)

    max_items = int(current_app.config["PHOTO_MAX_ITEMS"])

    # Count first: an over-limit selection is rejected before anything is read.
    try:
        check_batch_count(len(files), existing_count=existing_count, max_items=max_items)
    except BatchCountExceeded as e:
        return _error(f"You can add at most {e.max_items} photos.", 400)

    if any(not (f.mimetype or "").lower().startswith("image/") for f in files):
        return _error("Please select image files only.", 400)

    sources = [_source_from_upload(f) for f in files]
    batch = compress_batch(
        sources,
        current_app.extensions["photo_budget"],
        current_app.extensions["photo_codec"],
        existing_count=existing_count,
        max_items=max_items,
        max_workers=int(current_app.config["PHOTO_BATCH_WORKERS"]),
        stamps=current_app.extensions["photo_stamps"],
    )

    # Each item is stored on its own; a storage error is reported on that item.
    items: list[dict[str, object]] = []
    failed_count = 0
    for item in batch.items:
        base = {"index": item.index, "original_name": item.source_name}
        if item.result is None:
            failed_count += 1
            items.append({**base, "ok": False, "error": item.error})
            continue
        try:
            url = _store(item.result)
        except StorageAPIError as e:
            current_app.logger.warning("%s", e)
            failed_count += 1
            items.append({**base, "ok": False, "error": str(e)})
            continue
        entry = _photo_payload(item.result, url)
        entry.update({**base, "ok": True})
        items.append(entry)

    return jsonify(
        {
            "ok": failed_count == 0,
            "count": len(batch),
            "degraded_count": int(batch.degraded_count),
            "failed_count": int(failed_count),
            "items": items,
        }
    )


@web.get("/photos/<path:name>")
def photo_file(name: str):
    return send_from_directory(current_app.config["UPLOAD_DIR"], name)
