import json
import logging
from dataclasses import replace

import functions_framework
from flask import Request, Response

import config
from data_source import DataSourceError, resolver_from_config
from engine import AnalyticalEngine

ALLOWED_ORIGINS = config.ALLOWED_ORIGINS

logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

# Validate configuration at startup (logs warnings for suspicious values)
config.validate_config(logger=logging)

ENGINE = AnalyticalEngine()


def _origin_allowed(origin: str | None) -> bool:
    return origin in ALLOWED_ORIGINS if origin else False


def _json(body: dict, status: int, origin: str = "") -> Response:
    resp = Response(json.dumps(body, default=str), status, mimetype="application/json")
    if origin:
        resp.headers["Access-Control-Allow-Origin"] = origin
    return resp


@functions_framework.http
def analyze(request: Request) -> Response:
    """HTTP entry point: answer one analytical question over inline rows or a stored dataset.

    Body: ``{"question": str, "rows": [...] | "datasetId": str, "context": {...}}``
    Reply: ``{"handled": bool, "response": {...} | null}``
    """
    origin = request.headers.get("Origin") or ""
    if request.method == "OPTIONS":
        if not _origin_allowed(origin):
            return ("Origin not allowed", 403)
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Max-Age": "3600",
        }
        return ("", 204, headers)

    try:
        if not _origin_allowed(origin):
            return _json({"error": "origin not allowed"}, 403)
        if request.method != "POST":
            return _json({"error": "method not allowed"}, 405, origin)

        payload = request.get_json(silent=True) or {}
        question = payload.get("question")
        rows = payload.get("rows")
        dataset_id = payload.get("datasetId")
        context = payload.get("context")

        if not isinstance(question, str) or not question.strip():
            return _json({"error": "missing question"}, 400, origin)
        if rows is None and not dataset_id:
            return _json({"error": "missing rows or datasetId"}, 400, origin)
        if rows is not None and not isinstance(rows, list):
            return _json({"error": "rows must be a list of objects"}, 400, origin)
        if context is not None and not isinstance(context, dict):
            return _json({"error": "context must be an object"}, 400, origin)

        file_id = None
        if rows is None:
            try:
                rows, file_id = resolver_from_config().fetch(dataset_id)
            except DataSourceError as e:
                logging.info(json.dumps({"event": "source_failed", "dataSourceId": dataset_id, "detail": str(e)[:200]}))
                return _json({"error": "dataset not found", "detail": str(e)}, 404, origin)

        response = ENGINE.analyze(question, rows, context)
        if response is not None and file_id:
            response = replace(response, file_id=file_id)
        return _json(
            {"handled": response is not None, "response": response.to_dict() if response else None},
            200,
            origin,
        )

    except Exception as e:
        logging.exception("analyze failed")
        return _json({"error": "internal error", "detail": str(e)}, 500, origin)
