"""FastAPI dependencies resolving per-app state.

The settings and gateway are attached to ``app.state`` by ``create_app``
so request handlers never reach for module-level globals.
"""

from fastapi import Request

from .config import Settings
from .gateway import UpstreamGateway


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request) -> UpstreamGateway:
    return request.app.state.gateway
