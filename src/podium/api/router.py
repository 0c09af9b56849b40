from __future__ import annotations

from fastapi import APIRouter

from podium.api.routes import belts, coins, internal, tournaments

api_router = APIRouter()

api_router.include_router(tournaments.router)
api_router.include_router(belts.router)
api_router.include_router(coins.router)
api_router.include_router(internal.router)
