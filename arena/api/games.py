"""
Game API Router.

Read-only game views: state, snapshots, leaderboard, projection, placements.
Ledger failures surface as ``ArenaError`` and are rendered by the
application's exception handler.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from pydantic import BaseModel, Field

from arena.resolution.service import GameView, GameViewService


# =============================================================================
# Response Models
# =============================================================================


class GainModel(BaseModel):
    """Gain 응답."""

    kind: str
    basis_points: Optional[int] = None
    percent: Optional[str] = None
    display: str


class LeaderboardEntryModel(BaseModel):
    """Leaderboard entry."""

    rank: int
    player: str
    gain: GainModel
    square_index: int
    eliminated: bool = False
    elimination_round: int = 0


class LeaderboardResponse(BaseModel):
    """Leaderboard 응답."""

    game_id: int
    status: str
    alive_players: int
    total_players: int
    entries: List[LeaderboardEntryModel]


class ProjectionResponse(BaseModel):
    """Projection 응답. ``projection`` is null unless the round has lapsed."""

    game_id: int
    status: str
    clock: Optional[Dict[str, Any]] = None
    projection: Optional[Dict[str, Any]] = None


class SnapshotsResponse(BaseModel):
    game_id: int
    max_round: int
    finalized_rounds: List[int]
    rounds: List[Dict[str, Any]]
    players: List[Dict[str, Any]]
    elimination_details: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


# =============================================================================
# API Router
# =============================================================================

router = APIRouter(prefix="/games", tags=["Games"])


def get_view_service(request: Request) -> GameViewService:
    """View service created in the application lifespan."""
    service = getattr(request.app.state, "view_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="View service not initialized",
        )
    return service


async def _view(service: GameViewService, game_id: int, cached: bool) -> GameView:
    if cached:
        view = service.latest(game_id)
        if view is not None:
            return view
    return await service.build_view(game_id)


GameId = Annotated[int, Path(ge=0, description="Ledger game id")]


@router.get("/{game_id}")
async def get_game(
    game_id: GameId,
    cached: bool = Query(default=False, description="Serve the last polled view if any"),
    service: GameViewService = Depends(get_view_service),
):
    """게임 전체 뷰."""
    view = await _view(service, game_id, cached)
    return view.to_dict()


@router.get("/{game_id}/snapshots", response_model=SnapshotsResponse)
async def get_snapshots(
    game_id: GameId,
    service: GameViewService = Depends(get_view_service),
):
    """라운드 스냅샷 조회."""
    view = await service.build_view(game_id)
    data = view.snapshots.to_dict()
    return SnapshotsResponse(
        game_id=game_id,
        max_round=data["max_round"],
        finalized_rounds=data["finalized_rounds"],
        rounds=data["rounds"],
        players=data["players"],
        elimination_details=[d.to_dict() for d in view.elimination_details],
        errors=list(view.errors),
    )


@router.get("/{game_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    game_id: GameId,
    cached: bool = Query(default=False),
    service: GameViewService = Depends(get_view_service),
):
    """
    실시간 순위 조회.

    Alive players by live gain, eliminated players below them.
    """
    view = await _view(service, game_id, cached)
    return LeaderboardResponse(
        game_id=game_id,
        status=view.status.value,
        alive_players=sum(1 for e in view.leaderboard if not e.eliminated),
        total_players=len(view.leaderboard),
        entries=[LeaderboardEntryModel.model_validate(e.to_dict()) for e in view.leaderboard],
    )


@router.get("/{game_id}/projection", response_model=ProjectionResponse)
async def get_projection(
    game_id: GameId,
    service: GameViewService = Depends(get_view_service),
):
    """
    예상 탈락자 (non-authoritative).

    Only populated once the current round's timer has run out and the
    ledger has not finalized it yet.
    """
    view = await service.build_view(game_id)
    return ProjectionResponse(
        game_id=game_id,
        status=view.status.value,
        clock=view.clock.to_dict() if view.clock else None,
        projection=view.projection.to_dict() if view.projection else None,
    )


@router.get("/{game_id}/placements")
async def get_placements(
    game_id: GameId,
    tx_ref: Optional[str] = Query(default=None, max_length=130, description="Finalize transaction"),
    service: GameViewService = Depends(get_view_service),
):
    """최종 순위 및 상금."""
    resolution = await service.resolve(game_id, tx_ref=tx_ref)
    return resolution.to_dict()
