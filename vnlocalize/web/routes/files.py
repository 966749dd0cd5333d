"""File, dialog and export API routes."""

from __future__ import annotations

import io
from typing import Any, Dict, List

from flask import Blueprint, jsonify, request, send_file

from vnlocalize.engines.exceptions import TranslationError
from vnlocalize.logger import get_logger
from vnlocalize.project.exporter import ZIP_NAME
from vnlocalize.web.helpers import error_response, get_workspace

files_bp = Blueprint("files", __name__)
logger = get_logger(__name__)


@files_bp.get("/files")
def list_files():
    """Return every imported file with its translation counters."""
    files = get_workspace().list_files()
    logger.debug("Files listed: %s", len(files))
    return jsonify({"files": files})


@files_bp.post("/files")
def import_files():
    """
    Import one or more source files.

    Accepts multipart uploads (field "files" or "file", optional "paths" and
    "mode") or a JSON body {name, content, path?, mode?}.
    """
    workspace = get_workspace()

    uploads = request.files.getlist("files") or request.files.getlist("file")
    if uploads:
        mode = request.form.get("mode") or None
        paths = request.form.getlist("paths")
        imported: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        for position, upload in enumerate(uploads):
            name = upload.filename or ""
            path = paths[position] if position < len(paths) else None
            try:
                record = workspace.import_file(name, upload.read(), mode=mode, path=path)
                imported.append(record.to_dict())
            except TranslationError as e:
                logger.warning("Import of %s failed: %s", name, e)
                errors.append({"name": name, **e.to_dict()})
        status = 201 if imported else 400
        return jsonify({"files": imported, "errors": errors}), status

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    name = data.get("name")
    content = data.get("content")
    if not isinstance(name, str) or not name.strip() or not isinstance(content, str):
        return jsonify({"error": "name and content are required", "code": "invalid_request"}), 400

    try:
        record = workspace.import_file(name.strip(), content, mode=data.get("mode"), path=data.get("path"))
    except TranslationError as e:
        logger.warning("Import of %s failed: %s", name, e)
        return error_response(e)
    return jsonify({"files": [record.to_dict()], "errors": []}), 201


@files_bp.delete("/files")
def reset_files():
    """Remove every file; the translation memory and settings are kept."""
    removed = get_workspace().reset()
    return jsonify({"removed": removed})


@files_bp.get("/files/<file_id>")
def get_file(file_id: str):
    """Return one file's metadata (with its source text when ?source=1)."""
    workspace = get_workspace()
    record = workspace.get_file(file_id)
    include_source = request.args.get("source", "").lower() in ("1", "true", "yes")
    payload = record.to_dict(include_source=include_source)
    payload["running"] = workspace.is_running(file_id)
    return jsonify({"file": payload})


@files_bp.delete("/files/<file_id>")
def delete_file(file_id: str):
    """Delete a file and its dialogue items."""
    get_workspace().remove_file(file_id)
    return jsonify({"deleted": True, "id": file_id})


@files_bp.get("/files/<file_id>/dialogs")
def list_dialogs(file_id: str):
    """Return a file's dialogue items in document order."""
    items = get_workspace().get_dialogs(file_id)
    return jsonify({"dialogs": [item.to_dict() for item in items]})


@files_bp.put("/files/<file_id>/dialogs")
def bulk_update_dialogs(file_id: str):
    """
    Apply several manual edits at once.

    Body: {"updates": [{"id": "...", "text": "..." | null}, ...]}
    Ids that do not belong to the file are ignored.
    """
    workspace = get_workspace()
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    updates = data.get("updates")
    if not isinstance(updates, list):
        return jsonify({"error": "updates must be a list", "code": "invalid_request"}), 400

    owned = {item.id for item in workspace.get_dialogs(file_id)}
    updates = [u for u in updates if isinstance(u, dict) and u.get("id") in owned]
    items = workspace.bulk_update_translations(updates)
    logger.info("Bulk updated %s items in %s", len(items), file_id)
    return jsonify({"updated": len(items), "dialogs": [item.to_dict() for item in items]})


@files_bp.put("/dialogs/<dialog_id>")
def update_dialog(dialog_id: str):
    """Set (or clear, with null) one item's translation."""
    data: Dict[str, Any] = request.get_json(silent=True)
    if not isinstance(data, dict) or "text" not in data:
        return jsonify({"error": "text is required", "code": "invalid_request"}), 400
    text = data.get("text")
    if text is not None and not isinstance(text, str):
        return jsonify({"error": "text must be a string or null", "code": "invalid_request"}), 400

    item = get_workspace().update_translation(dialog_id, text)
    return jsonify({"dialog": item.to_dict()})


@files_bp.post("/dialogs/<dialog_id>/copy-original")
def copy_original(dialog_id: str):
    """Use the item's source text as its translation."""
    item = get_workspace().copy_original(dialog_id)
    return jsonify({"dialog": item.to_dict()})


@files_bp.get("/files/<file_id>/export")
def export_file(file_id: str):
    """Download the merged file as <stem>_translated<ext>."""
    name, merged = get_workspace().export_file(file_id)
    mimetype = "application/json" if name.lower().endswith(".json") else "text/plain"
    return send_file(
        io.BytesIO(merged.encode("utf-8")),
        mimetype=f"{mimetype}; charset=utf-8",
        as_attachment=True,
        download_name=name,
    )


@files_bp.get("/export.zip")
def export_zip():
    """Download every merged file in one zip archive."""
    data = get_workspace().export_zip()
    return send_file(
        io.BytesIO(data),
        mimetype="application/zip",
        as_attachment=True,
        download_name=ZIP_NAME,
    )
