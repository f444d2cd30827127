"""
CLI layer for mongo-spine.

Provides a Typer application that wraps the date rewriter, the document
flattener and the phase controller for use from a terminal. Output is one
JSON line per record on stdout; diagnostics and summaries go to stderr.

Entry point::

    mongo-spine --help
"""

from mongo_spine.cli.app import app

__all__ = ["app"]
