"""ASGI entrypoint for the lifestyle tracker API."""

from lifestyle_tracker.api.app import create_app
from lifestyle_tracker.containers import build_container

app = create_app(build_container())
