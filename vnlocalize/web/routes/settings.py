"""Settings management API routes."""

from __future__ import annotations

import copy
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from vnlocalize import config
from vnlocalize.engines.exceptions import TranslationError
from vnlocalize.language_codes import get_all_languages
from vnlocalize.logger import LOG_MODES, get_logger
from vnlocalize.web.helpers import error_response, get_workspace

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)

MASK = "********"


def _mask_keys(current: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the config with API keys replaced by a mask and a 'configured' flag."""
    masked = copy.deepcopy(current)
    for engine in config.ENGINES:
        section = masked.get(engine)
        if isinstance(section, dict) and "api_key" in section:
            configured = config.is_configured_key(section.get("api_key"))
            section["api_key"] = MASK if configured else ""
            section["configured"] = configured
    return masked


def _strip_masked_keys(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Drop api_key values that are just the mask echoed back by the client."""
    for engine in config.ENGINES:
        section = patch.get(engine)
        if isinstance(section, dict):
            section.pop("configured", None)
            if section.get("api_key") == MASK:
                section.pop("api_key")
    return patch


def _settings_payload(current: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "settings": current["translation"],
        "config": _mask_keys(current),
        "meta": {
            "engines": list(config.ENGINES),
            "extract_modes": list(config.EXTRACT_MODES),
            "log_modes": list(LOG_MODES),
            "languages": get_all_languages(),
            "batch_size": [config.BATCH_SIZE_MIN, config.BATCH_SIZE_MAX],
            "concurrency": [config.CONCURRENCY_MIN, config.CONCURRENCY_MAX],
        },
    }


@settings_bp.get("")
def get_settings():
    """Return the current configuration with API keys masked."""
    try:
        current = get_workspace().get_config()
        logger.debug("Settings retrieved")
        return jsonify(_settings_payload(current))
    except Exception as e:
        logger.exception(f"Failed to retrieve settings: {e}")
        return jsonify({"error": "Failed to retrieve settings", "code": "internal_error"}), 500


@settings_bp.put("")
def update_settings():
    """
    Update the configuration.

    Body: a partial config, e.g. {"translation": {"batch_size": 10},
    "deepl": {"api_key": "..."}}; a bare {"config": {...}} wrapper is also accepted.
    Translation settings are clamped into their valid ranges.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({"error": "Configuration data is required", "code": "invalid_request"}), 400
    patch = data.get("config") if isinstance(data.get("config"), dict) else data

    log_mode = patch.get("log_mode")
    if log_mode is not None and log_mode not in LOG_MODES:
        return jsonify({
            "error": f"Invalid log mode: {log_mode}",
            "code": "invalid_request",
            "details": {"supported": list(LOG_MODES)},
        }), 400

    workspace = get_workspace()
    try:
        patch = _strip_masked_keys(copy.deepcopy(patch))
        if isinstance(patch.get("translation"), dict):
            translation = workspace.get_settings().to_dict()
            translation.update(patch["translation"])
            patch["translation"] = config.normalize_settings(translation)
        current = workspace.update_config(patch)
    except TranslationError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Failed to update settings: {e}")
        return jsonify({"error": "Failed to update settings", "code": "internal_error"}), 500

    logger.info("Settings updated")
    return jsonify(_settings_payload(current))
