"""API routers."""

from arena.api.games import router as games_router

__all__ = [
    "games_router",
]
