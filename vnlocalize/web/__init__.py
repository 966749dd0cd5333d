"""Web application package for vnlocalize."""

from typing import Optional

from flask import Flask


def create_app(workspace=None, db_path: Optional[str] = None) -> Flask:
    """Application factory for the web interface."""
    from vnlocalize.workspace import Workspace

    if workspace is None:
        workspace = Workspace(db_path) if db_path else Workspace()

    from .app import build_app  # Import here to avoid circular imports

    return build_app(workspace)


__all__ = ["create_app"]
