"""Project root entry point for launching the web interface."""

from __future__ import annotations

import os


def main():
    from vnlocalize.web import create_app

    app = create_app(db_path=os.environ.get("VNLOCALIZE_DB") or None)
    app.run(host="0.0.0.0", port=int(os.environ.get("VNLOCALIZE_PORT", "5500")), debug=True)


if __name__ == "__main__":
    main()
