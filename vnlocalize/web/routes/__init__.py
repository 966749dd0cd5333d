"""Route blueprints for the web application."""

from .files import files_bp
from .translation import translation_bp
from .memory import memory_bp
from .settings import settings_bp

__all__ = [
    "files_bp",
    "translation_bp",
    "memory_bp",
    "settings_bp",
]
