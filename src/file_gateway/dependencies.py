from fastapi import Request

from file_gateway.service import FileService
from file_gateway.settings import Settings


def get_file_service(request: Request) -> FileService:
    """File service dependency, created once in the app lifespan."""
    return request.app.state.file_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
