"""WSGI entrypoint."""

from metacatalog import create_app

app = create_app()
