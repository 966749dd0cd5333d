"""vnlocalize - dialogue translation workbench for Ren'Py scripts and JSON files."""

__version__ = "1.0.0"
