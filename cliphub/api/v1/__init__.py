"""Versioned API routing for ClipHub."""

from fastapi import APIRouter

from . import routes_admin, routes_clips, routes_system, routes_worker


def get_api_router() -> APIRouter:
    router = APIRouter(prefix="/v1")
    router.include_router(routes_system.router)
    router.include_router(routes_admin.router)
    router.include_router(routes_clips.router)
    router.include_router(routes_worker.router)
    return router


__all__ = ["get_api_router"]
