from __future__ import annotations

import logging
from typing import Any, Dict, List

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from . import config
from .config import ConfigError
from .db import RecordStore
from .errors import RecordsError, StoreUnavailable
from .routes import courses_bp, students_bp
from .routes.common import STORE_EXTENSION

logger = logging.getLogger(__name__)


def _json_error(message: str, status: int, errors: List[Dict[str, str]] | None = None):
    payload: Dict[str, Any] = {"message": message}
    if errors:
        payload["errors"] = errors
    return jsonify(payload), status


def _handle_records_error(exc: RecordsError):
    if isinstance(exc, StoreUnavailable):
        # The underlying driver error was already logged by the store.
        logger.warning("Request failed: %s", exc.message)
    return jsonify(exc.to_payload()), exc.status_code


def _handle_config_error(exc: ConfigError):
    logger.exception("Missing configuration for MongoDB")
    return _json_error(str(exc), 500)


def _handle_http_error(exc: HTTPException):
    return _json_error(exc.description or exc.name, exc.code or 500)


def _handle_unexpected_error(exc: Exception):
    logger.exception("Unhandled error while processing request")
    return _json_error("Internal server error", 500)


def create_app(store: RecordStore | None = None) -> Flask:
    """Build the Flask application around an explicit record store.

    When ``store`` is omitted one is created from the MongoDB settings in the
    environment.
    """

    app = Flask(__name__)
    app.json.sort_keys = False

    if store is None:
        store = RecordStore.from_config()
    app.extensions[STORE_EXTENSION] = store

    app.register_blueprint(students_bp)
    app.register_blueprint(courses_bp)

    app.register_error_handler(RecordsError, _handle_records_error)
    app.register_error_handler(ConfigError, _handle_config_error)
    app.register_error_handler(HTTPException, _handle_http_error)
    app.register_error_handler(Exception, _handle_unexpected_error)

    @app.get("/api/health")
    def health():
        return jsonify({"ok": True})

    return app


def main() -> None:
    logging.basicConfig(
        level=config.get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_app().run(port=config.get_port())


if __name__ == "__main__":
    main()
