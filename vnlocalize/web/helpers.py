"""Request helpers shared by the route blueprints."""

from __future__ import annotations

from flask import current_app, jsonify

from vnlocalize.engines.exceptions import NotFoundError, TranslationError


def get_workspace():
    """The Workspace bound to the running application."""
    return current_app.config["WORKSPACE"]


def error_response(error: TranslationError):
    """JSON body and status for a TranslationError."""
    status = 404 if isinstance(error, NotFoundError) else 400
    return jsonify(error.to_dict()), status
