from __future__ import annotations

import json
import os
from typing import Any
from urllib.parse import quote

import requests


DEFAULT_CACHE_CONTROL = "3600"


class StorageAPIError(RuntimeError):
    pass


def _clean_error_message(resp: requests.Response) -> str:
    """Best-effort extraction of a useful error message (no secrets)."""
    try:
        payload = resp.json()
        if isinstance(payload, dict):
            for key in ("message", "error_description", "error"):
                msg = payload.get(key)
                if isinstance(msg, str) and msg.strip():
                    return msg.strip()
        return json.dumps(payload)
    except Exception:
        text = (resp.text or "").strip()
        return text if text else f"HTTP {resp.status_code}"


def _object_path(bucket: str, name: str) -> str:
    return f"{quote(bucket, safe='')}/{quote(name, safe='/')}"


def upload_object(
    *,
    base_url: str,
    api_key: str,
    bucket: str,
    name: str,
    content_type: str,
    data: bytes,
    cache_control: str = DEFAULT_CACHE_CONTROL,
) -> str:
    """Upload bytes to the object store without overwriting.

    Returns the stored object's path inside the bucket.
    """
    url = f"{base_url.rstrip('/')}/storage/v1/object/{_object_path(bucket, name)}"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "apikey": api_key,
        "Content-Type": content_type,
        "cache-control": f"max-age={cache_control}",
        "x-upsert": "false",
    }
    resp = requests.post(url, headers=headers, data=data, timeout=60)
    if resp.status_code not in (200, 201):
        raise StorageAPIError(f"Photo upload failed: {_clean_error_message(resp)}")

    payload: Any = resp.json()
    key = payload.get("Key") if isinstance(payload, dict) else None
    if not isinstance(key, str) or not key:
        raise StorageAPIError("Photo upload failed: unexpected response format")

    # The store answers with "<bucket>/<path>".
    prefix = f"{bucket}/"
    return key[len(prefix):] if key.startswith(prefix) else key


def public_url(*, base_url: str, bucket: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/storage/v1/object/public/{_object_path(bucket, path)}"


def save_local(upload_dir: str, name: str, data: bytes) -> str:
    """Write to `upload_dir/name`; an existing file is never replaced."""
    if os.path.basename(name) != name or name in ("", ".", ".."):
        raise StorageAPIError(f"Invalid photo name: {name!r}")

    os.makedirs(upload_dir, exist_ok=True)
    dst = os.path.join(upload_dir, name)
    try:
        with open(dst, "xb") as f:
            f.write(data)
    except FileExistsError as e:
        raise StorageAPIError(f"Photo upload failed: {name} already exists") from e
    return dst
