"""ASGI entrypoint for the VisionThread API."""

from vision_thread.api.app import create_app
from vision_thread.containers import build_container

app = create_app(build_container())
