"""
Deterministic Ranking Engine.

Players are ordered by gain (descending), then by square index (ascending,
earlier registration wins ties), then by address. The same inputs always
produce the same order regardless of iteration order, which is what lets a
projected elimination be compared against the ledger's own decision.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from arena.ledger.models import PlayerRecord

from .gain import Gain


@dataclass(frozen=True)
class RankCandidate:
    """Input to ranking: who, how well, and the registration tie-break."""

    player: str
    gain: Gain
    square_index: int


@dataclass(frozen=True)
class RankedEntry:
    """Single ranking entry."""

    rank: int
    player: str
    gain: Gain
    square_index: int
    eliminated: bool = False
    elimination_round: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "player": self.player,
            "gain": self.gain.to_dict(),
            "square_index": self.square_index,
            "eliminated": self.eliminated,
            "elimination_round": self.elimination_round,
        }


class RankingEngine:
    """
    Pure sort / tie-break of players by gain.

    ─────────────────────────────────────────────────────────────────

    key = (-gain.sort_key(), square_index, player)

    UNBOUNDED  >  +x%  >  ...  >  -100% == TOTAL_LOSS  >  UNAVAILABLE

    ─────────────────────────────────────────────────────────────────
    """

    @staticmethod
    def _key(candidate: RankCandidate) -> Tuple[int, int, int, str]:
        tier, bp = candidate.gain.sort_key()
        return (-tier, -bp, candidate.square_index, candidate.player)

    @classmethod
    def order(cls, candidates: Iterable[RankCandidate]) -> List[RankCandidate]:
        return sorted(candidates, key=cls._key)

    @classmethod
    def rank(cls, candidates: Iterable[RankCandidate]) -> Tuple[RankedEntry, ...]:
        """
        Rank candidates.

        Returns:
            Entries in rank order, rank 1 first
        """
        return tuple(
            RankedEntry(
                rank=position,
                player=c.player,
                gain=c.gain,
                square_index=c.square_index,
            )
            for position, c in enumerate(cls.order(candidates), 1)
        )

    @staticmethod
    def all_tied(entries: Sequence[Any]) -> bool:
        """True when every entry has an identical gain (needs 2+ entries)."""
        if len(entries) < 2:
            return False
        first = entries[0].gain.sort_key()
        return all(e.gain.sort_key() == first for e in entries[1:])

    @classmethod
    def leaderboard(
        cls,
        alive: Iterable[RankCandidate],
        eliminated: Iterable[Tuple[PlayerRecord, Gain]],
    ) -> Tuple[RankedEntry, ...]:
        """
        Live leaderboard.

        Alive players ranked by live gain, then eliminated players below
        them: later elimination first, then registration order.
        """
        entries: List[RankedEntry] = list(cls.rank(alive))

        out = sorted(
            eliminated,
            key=lambda pair: (-pair[0].elimination_round, pair[0].square_index, pair[0].address),
        )
        for offset, (record, gain) in enumerate(out, len(entries) + 1):
            entries.append(
                RankedEntry(
                    rank=offset,
                    player=record.address,
                    gain=gain,
                    square_index=record.square_index,
                    eliminated=True,
                    elimination_round=record.elimination_round,
                )
            )

        return tuple(entries)
