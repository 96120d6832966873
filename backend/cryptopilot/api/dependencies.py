"""FastAPI dependencies resolving services from the application container."""

from __future__ import annotations

from fastapi import Request

from cryptopilot.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


__all__ = ["get_container"]
