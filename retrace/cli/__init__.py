# retrace/cli/__init__.py
"""
Command-line interface for retrace.
"""
from retrace.cli.main import app
from retrace.cli.rollback import app as rollback_app

app.add_typer(rollback_app, name="rollback")

__all__ = ["app"]
