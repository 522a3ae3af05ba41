"""
Round resolution and placement reconstruction.

This package provides:
- Fixed-point gain calculation matching the ledger's arithmetic
- Concurrent round snapshot collection
- Deterministic ranking and live leaderboards
- Non-authoritative elimination projection for lapsed rounds
- Placement reconstruction (ledger payout records first, computed fallback)
"""

from .clock import RoundClock
from .gain import Gain, GainKind, compute_gain, live_gain
from .payouts import PayoutRecordFinder
from .placement import (
    GameResolution,
    LoserEntry,
    Placement,
    PlacementResolver,
    PrizeBreakdown,
    ResolutionSource,
    prize_breakdown,
)
from .projection import EliminationProjection, EliminationProjector, LiveCandidate
from .ranking import RankCandidate, RankedEntry, RankingEngine
from .service import GamePoller, GameStatus, GameView, GameViewService
from .snapshot import (
    EliminationDetail,
    PlayerSnapshots,
    SnapshotCollector,
    SnapshotSet,
    elimination_details,
)

__all__ = [
    "RoundClock",
    "Gain",
    "GainKind",
    "compute_gain",
    "live_gain",
    "PayoutRecordFinder",
    "GameResolution",
    "LoserEntry",
    "Placement",
    "PlacementResolver",
    "PrizeBreakdown",
    "ResolutionSource",
    "prize_breakdown",
    "EliminationProjection",
    "EliminationProjector",
    "LiveCandidate",
    "RankCandidate",
    "RankedEntry",
    "RankingEngine",
    "GamePoller",
    "GameStatus",
    "GameView",
    "GameViewService",
    "EliminationDetail",
    "PlayerSnapshots",
    "SnapshotCollector",
    "SnapshotSet",
    "elimination_details",
]
