"""ASGI entry point: ``uvicorn digilib.app_factory:app``."""
from digilib.app import create_app

app = create_app()

__all__ = ["app", "create_app"]
