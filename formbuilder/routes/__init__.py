"""APIRouter registration for the Form Builder service."""

from __future__ import annotations

from fastapi import APIRouter

from formbuilder.routes.exchange import router as exchange_router
from formbuilder.routes.forms import router as forms_router
from formbuilder.routes.responses import router as responses_router

api_router = APIRouter()
api_router.include_router(forms_router)
api_router.include_router(responses_router)
api_router.include_router(exchange_router)

__all__ = ["api_router"]
