from __future__ import annotations

from fastapi import Request

from windserver.config import Settings
from windserver.services.pipeline import UpdatePipeline


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> UpdatePipeline:
    return request.app.state.pipeline
