"""
Project module - File import and export

This module provides:
- importer: Source file import and dialogue extraction
- exporter: Merged file, zip archive and on-disk export
"""

from vnlocalize.project.importer import (
    build_file,
    import_file,
)

from vnlocalize.project.exporter import (
    translated_name,
    export_file,
    export_zip,
    build_zip,
    write_text_atomic,
)
