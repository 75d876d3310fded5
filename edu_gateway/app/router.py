"""Router registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from edu_gateway.features.health.router import router as health_router

if TYPE_CHECKING:
    from fastapi import FastAPI


def setup_routers(app: FastAPI) -> None:
    app.include_router(health_router)
