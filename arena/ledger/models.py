"""
Ledger Data Models.

Immutable read-only projections of ledger state. Nothing here is ever
written back; every poll rebuilds these from fresh reads.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


def _int(value: Any) -> int:
    """Ledger integers arrive as JSON numbers or decimal strings (uint256)."""
    if value is None or value == "":
        return 0
    return int(value)


@dataclass(frozen=True)
class GameInfo:
    """
    Game record - immutable once finalized or cancelled.

    Balances and fees are integer base units (wei).
    """

    game_id: int
    total_rounds: int = 0
    current_round: int = 0
    start_time: int = 0
    round_duration: int = 0
    finalized: bool = False
    cancelled: bool = False
    entry_fee: int = 0
    player_count: int = 0
    prize_pool: int = 0

    @property
    def started(self) -> bool:
        return self.start_time > 0

    @property
    def finished(self) -> bool:
        return self.finalized or self.cancelled

    @property
    def max_scan_round(self) -> int:
        """Highest round worth reading snapshots for."""
        if self.finalized:
            return self.total_rounds
        return max(self.current_round, 1)

    @property
    def final_round(self) -> int:
        """Round in which a finalized game ended."""
        if self.current_round <= 0:
            return self.total_rounds
        if self.total_rounds > 0:
            return min(self.current_round, self.total_rounds)
        return self.current_round

    @classmethod
    def from_dict(cls, game_id: int, d: Dict[str, Any]) -> "GameInfo":
        return cls(
            game_id=game_id,
            total_rounds=_int(d.get("totalRounds")),
            current_round=_int(d.get("currentRound")),
            start_time=_int(d.get("startTime")),
            round_duration=_int(d.get("roundDuration")),
            finalized=bool(d.get("finalized", False)),
            cancelled=bool(d.get("cancelled", False)),
            entry_fee=_int(d.get("entryFee")),
            player_count=_int(d.get("playerCount")),
            prize_pool=_int(d.get("prizePool")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "total_rounds": self.total_rounds,
            "current_round": self.current_round,
            "start_time": self.start_time,
            "round_duration": self.round_duration,
            "started": self.started,
            "finalized": self.finalized,
            "cancelled": self.cancelled,
            "entry_fee": str(self.entry_fee),
            "player_count": self.player_count,
            "prize_pool": str(self.prize_pool),
        }


@dataclass(frozen=True)
class RoundInfo:
    """
    Round record.

    Created implicitly by the ledger as the game progresses.
    ``finalized`` never reverts to False.
    """

    round_number: int
    start_time: int = 0
    end_time: int = 0
    alive_count_at_start: int = 0
    cutoff_rank: int = 0
    finalized: bool = False

    @classmethod
    def from_dict(cls, round_number: int, d: Dict[str, Any]) -> "RoundInfo":
        return cls(
            round_number=round_number,
            start_time=_int(d.get("startTime")),
            end_time=_int(d.get("endTime")),
            alive_count_at_start=_int(d.get("aliveCountAtStart")),
            cutoff_rank=_int(d.get("cutoffRank")),
            finalized=bool(d.get("finalized", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_number": self.round_number,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "alive_count_at_start": self.alive_count_at_start,
            "cutoff_rank": self.cutoff_rank,
            "finalized": self.finalized,
        }


@dataclass(frozen=True)
class PlayerRecord:
    """Player status as the ledger reports it."""

    address: str
    square_index: int = 0  # registration order, lower = earlier
    alive: bool = True
    elimination_round: int = 0  # 0 = never eliminated

    @property
    def eliminated(self) -> bool:
        return not self.alive

    @classmethod
    def from_dict(cls, address: str, d: Dict[str, Any]) -> "PlayerRecord":
        return cls(
            address=address,
            square_index=_int(d.get("squareIndex")),
            alive=bool(d.get("alive", False)),
            elimination_round=_int(d.get("eliminationRound")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "square_index": self.square_index,
            "alive": self.alive,
            "elimination_round": self.elimination_round,
        }


@dataclass(frozen=True)
class PayoutRecord:
    """Prize payout emitted by the ledger when a game is finalized."""

    place: int
    winner: str
    amount: int
    tx_ref: Optional[str] = None
    block_number: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PayoutRecord":
        return cls(
            place=_int(d.get("place")),
            winner=str(d.get("winner", "")),
            amount=_int(d.get("amount")),
            tx_ref=d.get("txRef"),
            block_number=_int(d.get("blockNumber")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place": self.place,
            "winner": self.winner,
            "amount": str(self.amount),
            "tx_ref": self.tx_ref,
            "block_number": self.block_number,
        }
