# genstudio/__main__.py
"""Allow `python -m genstudio`."""

from genstudio.cli import app

app()
