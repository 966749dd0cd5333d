"""Translation run API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from vnlocalize.engines.exceptions import TranslationError
from vnlocalize.engines.providers import EngineKind
from vnlocalize.logger import get_logger
from vnlocalize.translation.orchestrator import Scope
from vnlocalize.web.helpers import error_response, get_workspace
from vnlocalize.web.tasks import (
    cancel_job,
    create_translation_job,
    get_job,
    get_latest_job,
    serialize_job,
)

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)


@translation_bp.post("/files/<file_id>/translate")
def start_translation_job(file_id: str):
    """Start an asynchronous translation run for a file."""
    workspace = get_workspace()
    workspace.get_file(file_id)

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    selected_ids = data.get("selected_ids") or []
    if not isinstance(selected_ids, list) or not all(isinstance(i, str) for i in selected_ids):
        return jsonify({"error": "selected_ids must be a list of ids", "code": "invalid_request"}), 400

    engine = data.get("engine") or None
    try:
        scope = Scope.parse(data.get("scope"))
        if engine is not None:
            engine = EngineKind.parse(engine).value
    except TranslationError as e:
        logger.warning("Rejected translation request for %s: %s", file_id, e)
        return error_response(e)

    query = data.get("query")
    job = create_translation_job(
        workspace,
        file_id,
        scope=scope.value,
        query=query if isinstance(query, str) else None,
        selected_ids=selected_ids,
        untranslated_only=bool(data.get("untranslated_only", False)),
        engine=engine,
    )
    return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202


@translation_bp.get("/jobs/<job_id>")
def get_job_status(job_id: str):
    """Return the state and progress of a job."""
    job = get_job(job_id)
    if job is None:
        return jsonify({"error": f"Job not found: {job_id}", "code": "not_found"}), 404
    return jsonify({"job": serialize_job(job)})


@translation_bp.post("/jobs/<job_id>/cancel")
def cancel_job_route(job_id: str):
    """Request cancellation of a job."""
    if get_job(job_id) is None:
        return jsonify({"error": f"Job not found: {job_id}", "code": "not_found"}), 404
    cancelled = cancel_job(job_id)
    return jsonify({"cancelled": cancelled})


@translation_bp.get("/files/<file_id>/job")
def get_file_job(file_id: str):
    """Return the most recent job for a file, if any is retained."""
    get_workspace().get_file(file_id)
    job = get_latest_job(file_id)
    return jsonify({"job": serialize_job(job) if job else None})


@translation_bp.post("/files/<file_id>/cancel")
def cancel_file_run(file_id: str):
    """Cancel whatever run is active on a file."""
    workspace = get_workspace()
    workspace.get_file(file_id)

    job = get_latest_job(file_id)
    cancelled = cancel_job(job.job_id) if job else False
    cancelled = workspace.cancel_run(file_id) or cancelled
    return jsonify({"cancelled": cancelled})
