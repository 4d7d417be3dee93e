from __future__ import annotations

import logging
import os
from pathlib import Path
from flask import Flask

from .core import CompressionBudget, MonotonicStamp, PillowCodec
from .web.routes import web


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    logger = logging.getLogger(__name__)
    logger.setLevel(level)
    if not logging.getLogger().handlers and not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


def create_app() -> Flask:
    # Make local development reliable: load `.env` if present.
    # Flask CLI can also load this via python-dotenv, but that does not apply to
    # other entrypoints (e.g., gunicorn, tests).
    try:
        from dotenv import load_dotenv  # type: ignore

        env_path = Path(__file__).resolve().parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=False)
    except ImportError:
        pass

    app = Flask(__name__)

    app.config.update(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev"),
        UPLOAD_DIR=os.environ.get("UPLOAD_DIR", os.path.join(app.instance_path, "photos")),
        MAX_CONTENT_LENGTH=int(os.environ.get("MAX_CONTENT_LENGTH", str(1024 * 1024 * 128))),  # 128MB
        PHOTO_MAX_BYTES=os.environ.get("PHOTO_MAX_BYTES"),
        PHOTO_MAX_WIDTH=os.environ.get("PHOTO_MAX_WIDTH"),
        PHOTO_MAX_HEIGHT=os.environ.get("PHOTO_MAX_HEIGHT"),
        PHOTO_INITIAL_QUALITY=os.environ.get("PHOTO_INITIAL_QUALITY"),
        PHOTO_QUALITY_STEP=os.environ.get("PHOTO_QUALITY_STEP"),
        PHOTO_MIN_QUALITY=os.environ.get("PHOTO_MIN_QUALITY"),
        PHOTO_MAX_ATTEMPTS=os.environ.get("PHOTO_MAX_ATTEMPTS"),
        PHOTO_MAX_ITEMS=int(os.environ.get("PHOTO_MAX_ITEMS", "10")),
        PHOTO_BATCH_WORKERS=int(os.environ.get("PHOTO_BATCH_WORKERS", "4")),
        STORAGE_URL=os.environ.get("STORAGE_URL", ""),
        STORAGE_KEY=os.environ.get("STORAGE_KEY", ""),
        STORAGE_BUCKET=os.environ.get("STORAGE_BUCKET", "equipment_photos"),
    )

    _configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)

    # Built once; request handlers (and batch worker threads) only read it.
    app.extensions["photo_budget"] = CompressionBudget.from_config(app.config)
    app.extensions["photo_codec"] = PillowCodec()
    # Shared by all request threads so names stay unique across requests.
    app.extensions["photo_stamps"] = MonotonicStamp()

    app.register_blueprint(web)

    return app
