"""Flask service wrapper for push-delivered storage events."""

from __future__ import annotations

import argparse
from typing import Any

from flask import Flask, jsonify, request

from ci_search.logging_utils import configure_logging

from .config import resolve_profile
from .errors import IndexerError, reason_code
from .handler import JobIndexer, ObjectChangeEvent, StoreFactory


def create_app(profile_path: str | None = None, *, store_factory: StoreFactory | None = None) -> Flask:
    profile = resolve_profile(profile_path)
    configure_logging(profile.log_level)
    indexer = JobIndexer(profile, store_factory=store_factory)

    app = Flask(__name__)

    @app.post("/v1/events")
    def index_event() -> Any:
        payload = request.get_json(force=True, silent=True)
        try:
            event = ObjectChangeEvent.from_payload(payload)
            outcome = indexer.handle(event)
            return jsonify(outcome.as_dict())
        except IndexerError as exc:
            app.logger.error("Indexing failed: %s", exc)
            # non-2xx makes the delivery layer redeliver
            return jsonify({"error": reason_code(exc), "detail": exc.detail}), 500
        except Exception as exc:
            app.logger.exception("Indexing failed for %s", payload)
            return jsonify({"error": reason_code(exc)}), 500

    @app.get("/v1/ops/health")
    def ops_health() -> Any:
        return jsonify({"state": "GREEN", "profile_id": profile.profile_id})

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="CI search job indexer service")
    parser.add_argument("--profile", default=None, help="Path to indexer profile YAML")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args()

    app = create_app(args.profile)
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
