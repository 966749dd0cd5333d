"""Translation memory API routes."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

from vnlocalize.logger import get_logger
from vnlocalize.web.helpers import get_workspace

memory_bp = Blueprint("memory", __name__)
logger = get_logger(__name__)


def _int_arg(name: str) -> Optional[int]:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return max(0, int(value))
    except ValueError:
        return None


@memory_bp.get("/memory")
def list_memory():
    """
    List TM entries, most recently updated first.

    Query parameters: target_lang, q (substring of source or translation),
    limit, offset.
    """
    workspace = get_workspace()
    entries = workspace.list_memory(
        target_lang=request.args.get("target_lang") or None,
        search=request.args.get("q") or None,
        limit=_int_arg("limit"),
        offset=_int_arg("offset") or 0,
    )
    return jsonify({"entries": entries, "total": workspace.memory.count()})


@memory_bp.delete("/memory")
def clear_memory():
    """Remove every TM entry."""
    removed = get_workspace().clear_memory()
    return jsonify({"removed": removed})


@memory_bp.delete("/memory/<path:key>")
def delete_memory_entry(key: str):
    """Remove one TM entry by its key."""
    get_workspace().delete_memory(key)
    return jsonify({"deleted": True, "key": key})


@memory_bp.get("/memory/export")
def export_memory():
    """Return the whole TM as a JSON export document."""
    return jsonify(get_workspace().export_memory())


@memory_bp.post("/memory/import")
def import_memory():
    """
    Merge a TM export into the store.

    Accepts the export document as the JSON body, or as an uploaded "file".
    """
    upload = request.files.get("file")
    if upload is not None:
        try:
            payload: Any = json.loads(upload.read().decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Rejected TM import upload: %s", e)
            return jsonify({"error": f"Invalid JSON file: {e}", "code": "invalid_tm_import"}), 400
    else:
        payload = request.get_json(silent=True)
        if payload is None:
            return jsonify({"error": "A JSON body is required", "code": "invalid_tm_import"}), 400

    result = get_workspace().import_memory(payload)
    logger.info("TM import: %s imported, %s skipped", result["imported"], result["skipped"])
    return jsonify(result)


@memory_bp.post("/files/<file_id>/apply-memory")
def apply_memory(file_id: str):
    """Fill a file's items from the TM. Body: {"mode": "missing" | "all"}."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    changed = get_workspace().apply_tm(file_id, str(data.get("mode") or "missing"))
    return jsonify({"updated": changed})
