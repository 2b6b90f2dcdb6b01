"""FastAPI dependencies."""

from fastapi import Request

from smilequest.core.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
