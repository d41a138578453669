from fastapi import Request

from app.tasks.dependencies import Dependencies


def get_container(request: Request) -> Dependencies:
    """Dependency para obter as dependências compartilhadas"""
    return request.app.state.container
