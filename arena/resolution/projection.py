"""
Elimination Projector.

Shows what the ledger's finalize step is expected to do once a round's timer
has lapsed but before the ledger has finalized it. Non-authoritative: the
ledger decides, this only previews.

Known approximation: the live gain uses the player's raw account balance,
so balance movement unrelated to play (transfers in or out) shifts it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from arena.ledger.models import RoundInfo
from arena.logging_config import get_logger
from arena.utils.errors import InconsistentStateError

from .gain import Gain, live_gain
from .ranking import RankCandidate, RankedEntry, RankingEngine

logger = get_logger(__name__)

ANOMALY_CUTOFF_ZERO = "cutoff_rank_zero"
ANOMALY_CUTOFF_TOO_HIGH = "cutoff_rank_not_below_alive_count"


@dataclass(frozen=True)
class LiveCandidate:
    """An alive player with the balances needed for a live gain."""

    player: str
    square_index: int
    round_start_balance: int
    game_start_balance: int
    current_balance: int

    @property
    def baseline(self) -> int:
        # fall back to the game-start snapshot when the round-start one is missing
        if self.round_start_balance > 0:
            return self.round_start_balance
        return self.game_start_balance

    def gain(self) -> Gain:
        return live_gain(self.baseline, self.current_balance)


@dataclass(frozen=True)
class EliminationProjection:
    """Projected outcome of finalizing ``round_number`` right now."""

    game_id: int
    round_number: int
    cutoff_rank: int
    effective_cutoff: int
    ranked: Tuple[RankedEntry, ...] = ()
    eliminated: Tuple[str, ...] = ()
    all_tied: bool = False
    game_should_end: bool = False
    anomaly: Optional[str] = None
    inconsistent: bool = False

    @property
    def survivors(self) -> Tuple[str, ...]:
        out = set(self.eliminated)
        return tuple(e.player for e in self.ranked if e.player not in out)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "round": self.round_number,
            "cutoff_rank": self.cutoff_rank,
            "effective_cutoff": self.effective_cutoff,
            "ranked": [e.to_dict() for e in self.ranked],
            "eliminated": list(self.eliminated),
            "all_tied": self.all_tied,
            "game_should_end": self.game_should_end,
            "anomaly": self.anomaly,
            "inconsistent": self.inconsistent,
            "authoritative": False,
        }


class EliminationProjector:
    """Projects eliminations for a lapsed, unfinalized round."""

    def project(
        self,
        game_id: int,
        round_info: RoundInfo,
        candidates: Sequence[LiveCandidate],
    ) -> EliminationProjection:
        """
        Rank alive players and cut below ``cutoff_rank``.

        Args:
            game_id: Game being projected
            round_info: Ledger round record (cutoff, alive count)
            candidates: Alive players with their balances

        Returns:
            EliminationProjection (eliminated may be empty)
        """
        ranked = RankingEngine.rank(
            RankCandidate(player=c.player, gain=c.gain(), square_index=c.square_index)
            for c in candidates
        )
        cutoff = round_info.cutoff_rank
        reported_alive = round_info.alive_count_at_start
        found_alive = len(ranked)

        def result(**kwargs: Any) -> EliminationProjection:
            params: Dict[str, Any] = {
                "game_id": game_id,
                "round_number": round_info.round_number,
                "cutoff_rank": cutoff,
                "effective_cutoff": cutoff,
                "ranked": ranked,
            }
            params.update(kwargs)
            return EliminationProjection(**params)

        # ledger counts drive structural decisions
        if reported_alive <= 1:
            logger.info(
                "projection_game_should_end",
                game_id=game_id,
                round=round_info.round_number,
                reported_alive=reported_alive,
            )
            return result(game_should_end=True)

        if found_alive != reported_alive:
            error = InconsistentStateError(
                game_id, round_info.round_number, reported_alive, found_alive
            )
            logger.warning("projection_inconsistent_state", **error.details)
            return result(inconsistent=True)

        all_tied = RankingEngine.all_tied(ranked)
        if all_tied:
            return result(all_tied=True)

        effective = cutoff
        anomaly: Optional[str] = None
        if cutoff == 0:
            anomaly = ANOMALY_CUTOFF_ZERO
            effective = 1
        elif cutoff >= found_alive:
            anomaly = ANOMALY_CUTOFF_TOO_HIGH
            effective = found_alive
        if anomaly:
            logger.error(
                "cutoff_rank_anomaly",
                game_id=game_id,
                round=round_info.round_number,
                anomaly=anomaly,
                cutoff_rank=cutoff,
                alive=found_alive,
                effective_cutoff=effective,
            )

        eliminated = tuple(e.player for e in ranked[effective:])

        logger.info(
            "round_projected",
            game_id=game_id,
            round=round_info.round_number,
            alive=found_alive,
            cutoff_rank=cutoff,
            eliminated=len(eliminated),
        )

        return result(
            effective_cutoff=effective,
            eliminated=eliminated,
            anomaly=anomaly,
        )
