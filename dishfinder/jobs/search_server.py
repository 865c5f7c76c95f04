"""HTTP entrypoint for dish searches (Cloud Run friendly)."""

from __future__ import annotations

import asyncio
import logging
import os
from functools import lru_cache
from typing import Any, Dict

from flask import Flask, jsonify, request

from dishfinder.core.config import get_settings
from dishfinder.core.errors import ConfigError, ValidationError
from dishfinder.core.models import SearchResponse
from dishfinder.core.orchestrator import SearchOrchestrator, build_orchestrator, validate_params

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, x-client-info, apikey",
}

# ---------- App ----------
app = Flask(__name__)


@lru_cache(maxsize=1)
def get_orchestrator() -> SearchOrchestrator:
    return build_orchestrator(get_settings())


@app.after_request
def add_cors_headers(response):
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, calls no provider."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "discovery_provider": settings.discovery_provider,
                "revision": os.getenv("K_REVISION", "unknown"),
                "region": os.getenv("X_GOOGLE_RUNTIMEREGION", "unknown"),
            }
        ),
        200,
    )


@app.route("/search", methods=["GET", "POST", "OPTIONS"])
def search() -> Any:
    """
    Run a dish search.
    Parameters (query string, or JSON body on POST): query (required),
    latitude, longitude, radius (miles).
    """
    if request.method == "OPTIONS":
        return "", 204, CORS_HEADERS

    params: Dict[str, Any] = request.args.to_dict()
    if request.method == "POST":
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            params.update(body)

    settings = get_settings()
    try:
        search_request = validate_params(
            params,
            default_latitude=settings.default_latitude,
            default_longitude=settings.default_longitude,
            default_radius_miles=settings.default_radius_miles,
        )
    except ValidationError as exc:
        logger.warning("Rejected search request: %s", exc)
        return jsonify(SearchResponse.failure("Invalid search parameters", str(exc)).to_dict()), 400

    try:
        orchestrator = get_orchestrator()
    except ConfigError as exc:
        logger.error("Search service is not configured: %s", exc)
        return jsonify(SearchResponse.failure("Service misconfigured", str(exc)).to_dict()), 500

    outcome = asyncio.run(orchestrator.search(search_request))
    logger.info("Search finished with status=%d stage=%s", outcome.status_code, outcome.stage.value)
    return jsonify(outcome.response.to_dict()), outcome.status_code


def main() -> None:
    """Cloud Run injects PORT; fall back to the configured port locally."""
    port = int(os.getenv("PORT") or get_settings().server_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
