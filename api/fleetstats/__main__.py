"""Entrypoint for `python -m fleetstats`."""

import uvicorn

from fleetstats.config import settings

uvicorn.run("fleetstats.main:app", host=settings.host, port=settings.port, log_config=None)
