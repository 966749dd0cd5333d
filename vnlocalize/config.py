import copy
import json
from dataclasses import asdict, dataclass
from typing import Any, Dict

from vnlocalize.core.database import Database
from vnlocalize.core.schema import initialize_database
from vnlocalize.logger import configure_logging, get_logger

logger = get_logger(__name__)

# Engine identifiers, matching EngineKind values in engines/providers.py
ENGINES = ("deepseek", "deepl", "lingva")

EXTRACT_MODES = ("safe", "balanced", "aggressive")

# Batch and concurrency bounds for a translation run
BATCH_SIZE_MIN, BATCH_SIZE_MAX = 1, 60
CONCURRENCY_MIN, CONCURRENCY_MAX = 1, 6

PLACEHOLDER_API_KEY = "YOUR_API_KEY_HERE"

DEFAULT_SYSTEM_MESSAGE = (
    "Your Role: Veteran Visual Novel Translator and Localization Specialist "
    "with deep experience translating Ren'Py scripts."
)

# Default prompts
DEFAULT_PROMPTS = {
    "array_translation_prompt": {
        "version": "1.0",
        "description": "Dialogue batch prompt for the LLM engine",
        "prompt": """Translate Ren'Py dialogue strings to {target_language_name} (language code: {target_language_code}).

Analyze each line's tone, implied meaning and character voice before translating.
Keep each character's way of speaking consistent across lines.

CRITICAL REQUIREMENTS:
- DO NOT translate or modify placeholders like ⟦T0⟧, ⟦T1⟧ (keep them exactly, in a sensible position)
- Preserve any remaining Ren'Py tags and variables unchanged (e.g. {{fast}}, [player_name])
- DO NOT merge, split or reorder lines
- Translate naturally by context, avoid word-by-word literal translation
- Return exactly {text_count} translated strings

Context:
- These are raw dialogue strings extracted from a Ren'Py .rpy script.
- The translation is used in-game directly, so structural integrity is crucial.

Input JSON array:
{texts_json}

Return format: ["translated1", "translated2", ...]
Do not include explanations, markdown code blocks, or any text outside the JSON array. Return ONLY the JSON array."""
    }
}

DEFAULT_SETTINGS = {
    "mode": "safe",
    "source_lang": "auto",
    "target_lang": "vi",
    "engine": "deepseek",
    "batch_size": 20,
    "concurrency": 1,
    "lingva_base_url": "https://lingva.lunar.icu",
    "tm_enabled": True,
    "tm_auto_add": True,
}

# Default configuration template
DEFAULT_CONFIG = {
    "translation": DEFAULT_SETTINGS,
    "deepseek": {
        "api_key": PLACEHOLDER_API_KEY,
        "model": "deepseek-chat",
        "timeout": 120,
        "api_url": "https://api.deepseek.com/chat/completions"
    },
    "deepl": {
        "api_key": PLACEHOLDER_API_KEY,
        "endpoint": "",  # empty: chosen from the key (':fx' keys use the free API)
        "timeout": 60
    },
    "lingva": {
        "timeout": 30
    },
    "retry": {
        "max_attempts": 3,
        "base_delay": 0.7,
        "max_delay": 8.0
    },
    "log_mode": "off"
}


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no", "off"):
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_settings(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in defaults and clamp every translation setting into its valid range."""
    raw = raw if isinstance(raw, dict) else {}
    d = DEFAULT_SETTINGS

    mode = raw.get("mode")
    engine = raw.get("engine")
    source_lang = str(raw.get("source_lang") or "").strip()
    target_lang = str(raw.get("target_lang") or "").strip()
    base_url = str(raw.get("lingva_base_url") or "").strip().rstrip("/")

    return {
        "mode": mode if mode in EXTRACT_MODES else d["mode"],
        "source_lang": source_lang or d["source_lang"],
        "target_lang": target_lang or d["target_lang"],
        "engine": engine if engine in ENGINES else d["engine"],
        "batch_size": _clamp(_as_int(raw.get("batch_size"), d["batch_size"]),
                             BATCH_SIZE_MIN, BATCH_SIZE_MAX),
        "concurrency": _clamp(_as_int(raw.get("concurrency"), d["concurrency"]),
                              CONCURRENCY_MIN, CONCURRENCY_MAX),
        "lingva_base_url": base_url or d["lingva_base_url"],
        "tm_enabled": _as_bool(raw.get("tm_enabled"), d["tm_enabled"]),
        "tm_auto_add": _as_bool(raw.get("tm_auto_add"), d["tm_auto_add"]),
    }


@dataclass
class ProjectSettings:
    """Translation settings shared by every file in the workspace."""
    mode: str = DEFAULT_SETTINGS["mode"]
    source_lang: str = DEFAULT_SETTINGS["source_lang"]
    target_lang: str = DEFAULT_SETTINGS["target_lang"]
    engine: str = DEFAULT_SETTINGS["engine"]
    batch_size: int = DEFAULT_SETTINGS["batch_size"]
    concurrency: int = DEFAULT_SETTINGS["concurrency"]
    lingva_base_url: str = DEFAULT_SETTINGS["lingva_base_url"]
    tm_enabled: bool = DEFAULT_SETTINGS["tm_enabled"]
    tm_auto_add: bool = DEFAULT_SETTINGS["tm_auto_add"]

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ProjectSettings":
        return cls(**normalize_settings(raw))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def merge_with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay a stored config on the defaults so newly added keys are present."""
    merged = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in (config or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    merged["translation"] = normalize_settings(merged.get("translation"))
    return merged


def is_configured_key(api_key: Any) -> bool:
    """True when api_key is a real value rather than blank or the template placeholder."""
    key = str(api_key or "").strip()
    return bool(key) and key != PLACEHOLDER_API_KEY


def get_credentials(config: Dict[str, Any], engine: str) -> Dict[str, str]:
    """
    Credentials for an engine, or an empty dict when none are configured.

    Lingva needs no credentials.
    """
    if engine == "lingva":
        return {}
    api_key = (config.get(engine) or {}).get("api_key")
    return {"api_key": str(api_key).strip()} if is_configured_key(api_key) else {}


def initialize_app(database: Database):
    """
    Initialize the application.
    Creates the database tables and the default configuration if missing.
    """
    logger.info("Initializing application...")

    initialize_database(database)
    logger.info("Database initialized")

    try:
        existing_config = database.get_app_config('config')
        if not existing_config:
            logger.info("No config in database, initializing default config")
            save_config(database, DEFAULT_CONFIG)
        else:
            logger.debug("Config already exists in database")
    except Exception as e:
        logger.error(f"Failed to check/initialize config in database: {e}")
        logger.warning("Application will use in-memory default configuration")

    configure_logging(load_config(database).get("log_mode", "off"))
    logger.info("Application initialization complete")


def load_config(database: Database) -> Dict[str, Any]:
    """Load the configuration from database."""
    try:
        config_json = database.get_app_config('config')
        if config_json:
            config = merge_with_defaults(json.loads(config_json))
            logger.debug("Configuration loaded from database")
            return config
        logger.info("No config in database, using defaults")
        return merge_with_defaults({})
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        config = merge_with_defaults({})
        # Replace the corrupted data so the next load succeeds
        save_config(database, config)
        return config


def save_config(database: Database, config: Dict[str, Any]):
    """Save the configuration to database."""
    try:
        config_json = json.dumps(config, ensure_ascii=False)
        database.set_app_config('config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise


def get_prompt(prompt_name: str = "array_translation_prompt") -> Dict[str, Any]:
    """Get a specific prompt by name."""
    return DEFAULT_PROMPTS.get(prompt_name, DEFAULT_PROMPTS["array_translation_prompt"])
