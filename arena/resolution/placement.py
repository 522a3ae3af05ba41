"""
Placement Resolver.

게임 종료 후 1/2/3위 및 상금 재구성.

Tiers:
- Tier 1: the ledger's own payout records. Ground truth whenever present.
- Tier 2: computed from player records when no payout record can be found.

Features:
- 고정 상금 비율 60/30/10 (빈 자리는 재분배하지 않음)
- End-to-end gain per player (round-1 start -> last active round end)
- Byte-identical output for unchanged ledger state (no timestamps, no ids)

Usage:
    resolver = PlacementResolver()
    resolution = resolver.resolve(game, records, snapshots, payouts)
    payload = resolution.to_json()
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from arena.ledger.models import GameInfo, PayoutRecord, PlayerRecord
from arena.logging_config import get_logger
from arena.utils.errors import GameNotResolvableError
from arena.utils.json_utils import json_dumps_bytes

from .gain import Gain, compute_gain
from .ranking import RankCandidate, RankingEngine
from .snapshot import PlayerSnapshots, SnapshotSet

logger = get_logger(__name__)

# 상금 분배 (percent of the prize pool)
PLACE_SHARES: Dict[int, int] = {1: 60, 2: 30, 3: 10}

# 참가비 분배 (percent of total entry fees)
PRIZE_POOL_PERCENT = 70
OPERATIONS_PERCENT = 20
PLATFORM_PERCENT = 10


class ResolutionSource(str, Enum):
    LEDGER = "ledger"
    COMPUTED = "computed"


@dataclass(frozen=True)
class Placement:
    """A paid place."""

    place: int
    player: str
    prize_share: int
    gain: Gain

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place": self.place,
            "player": self.player,
            "prize_share": str(self.prize_share),
            "gain": self.gain.to_dict(),
        }


@dataclass(frozen=True)
class LoserEntry:
    """A player who finished outside the paid places."""

    player: str
    elimination_round: int
    gain: Gain
    square_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "elimination_round": self.elimination_round,
            "gain": self.gain.to_dict(),
        }


@dataclass(frozen=True)
class GameResolution:
    """Final placements of a finalized game."""

    game_id: int
    source: ResolutionSource
    prize_pool: int
    placements: Tuple[Placement, ...] = ()
    losers: Tuple[LoserEntry, ...] = ()
    payout_tx_ref: Optional[str] = None

    def placement(self, place: int) -> Optional[Placement]:
        for p in self.placements:
            if p.place == place:
                return p
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "source": self.source.value,
            "prize_pool": str(self.prize_pool),
            "placements": [p.to_dict() for p in self.placements],
            "losers": [entry.to_dict() for entry in self.losers],
            "payout_tx_ref": self.payout_tx_ref,
        }

    def to_json(self) -> bytes:
        return json_dumps_bytes(self.to_dict())


@dataclass(frozen=True)
class PrizeBreakdown:
    """Where the entry fees go, and what each place is worth."""

    total_entry_fees: int
    prize_pool: int
    operations_fund: int
    platform_fee: int
    first: int
    second: int
    third: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_entry_fees": str(self.total_entry_fees),
            "prize_pool": str(self.prize_pool),
            "operations_fund": str(self.operations_fund),
            "platform_fee": str(self.platform_fee),
            "first": str(self.first),
            "second": str(self.second),
            "third": str(self.third),
        }


# =============================================================================
# Prize math
# =============================================================================


def effective_prize_pool(game: GameInfo) -> int:
    """Ledger-reported pool, or 70% of entry fees when the ledger reports none."""
    if game.prize_pool > 0:
        return game.prize_pool
    return game.entry_fee * game.player_count * PRIZE_POOL_PERCENT // 100


def place_shares(prize_pool: int) -> Dict[int, int]:
    return {place: prize_pool * pct // 100 for place, pct in PLACE_SHARES.items()}


def prize_breakdown(game: GameInfo) -> PrizeBreakdown:
    total = game.entry_fee * game.player_count
    pool = effective_prize_pool(game)
    shares = place_shares(pool)
    return PrizeBreakdown(
        total_entry_fees=total,
        prize_pool=pool,
        operations_fund=total * OPERATIONS_PERCENT // 100,
        platform_fee=total * PLATFORM_PERCENT // 100,
        first=shares[1],
        second=shares[2],
        third=shares[3],
    )


def end_to_end_gain(snapshots: PlayerSnapshots, record: PlayerRecord) -> Gain:
    """
    Round-1 start vs end of the player's last active round.

    Eliminated players end in their elimination round (falling back to the
    latest non-zero end before it); survivors end at their latest non-zero
    end snapshot.
    """
    start = snapshots.round_one_start
    if start <= 0:
        return Gain.unavailable()

    if record.eliminated and record.elimination_round > 0:
        if record.elimination_round in snapshots.ends:
            return compute_gain(start, snapshots.ends[record.elimination_round])
        _, end = snapshots.last_nonzero_end(up_to=record.elimination_round)
    else:
        _, end = snapshots.last_nonzero_end()

    if end <= 0:
        return Gain.unavailable()
    return compute_gain(start, end)


# =============================================================================
# Resolver
# =============================================================================


class PlacementResolver:
    """
    최종 순위 재구성.

    Pure: the same game, records, snapshots and payouts always give the same
    GameResolution.
    """

    def resolve(
        self,
        game: GameInfo,
        records: Iterable[PlayerRecord],
        snapshots: SnapshotSet,
        payouts: Sequence[PayoutRecord] = (),
    ) -> GameResolution:
        """
        Resolve placements.

        Args:
            game: Finalized game record
            records: Every player's ledger record
            snapshots: Collected round snapshots
            payouts: Payout records (Tier 1), empty when none were found

        Returns:
            GameResolution

        Raises:
            GameNotResolvableError: game cancelled or not finalized
        """
        if game.cancelled:
            raise GameNotResolvableError(game.game_id, "cancelled")
        if not game.finalized:
            raise GameNotResolvableError(game.game_id, "not_finalized")

        records = sorted(records, key=lambda r: (r.square_index, r.address))
        gains = {
            r.address: end_to_end_gain(snapshots.for_player(r.address), r)
            for r in records
        }
        pool = effective_prize_pool(game)

        if payouts:
            placements = self._from_payouts(payouts, gains)
            source = ResolutionSource.LEDGER
            tx_ref = next((p.tx_ref for p in payouts if p.tx_ref), None)
        else:
            placements = self._computed(game, records, gains, place_shares(pool))
            source = ResolutionSource.COMPUTED
            tx_ref = None

        placed = {p.player for p in placements}
        losers = self._losers(
            [r for r in records if r.address not in placed], gains
        )

        logger.info(
            "game_resolved",
            game_id=game.game_id,
            source=source.value,
            places=[p.place for p in placements],
            losers=len(losers),
        )

        return GameResolution(
            game_id=game.game_id,
            source=source,
            prize_pool=pool,
            placements=placements,
            losers=losers,
            payout_tx_ref=tx_ref,
        )

    @staticmethod
    def _from_payouts(
        payouts: Sequence[PayoutRecord], gains: Dict[str, Gain]
    ) -> Tuple[Placement, ...]:
        # 기록 그대로 (place, winner, amount)
        return tuple(
            Placement(
                place=p.place,
                player=p.winner,
                prize_share=p.amount,
                gain=gains.get(p.winner, Gain.unavailable()),
            )
            for p in sorted(payouts, key=lambda p: p.place)
        )

    @staticmethod
    def _computed(
        game: GameInfo,
        records: Sequence[PlayerRecord],
        gains: Dict[str, Gain],
        shares: Dict[int, int],
    ) -> Tuple[Placement, ...]:
        final_round = game.final_round

        def best(pool: List[PlayerRecord]) -> Optional[PlayerRecord]:
            if not pool:
                return None
            by_address = {r.address: r for r in pool}
            top = RankingEngine.order(
                RankCandidate(player=r.address, gain=gains[r.address], square_index=r.square_index)
                for r in pool
            )[0]
            return by_address[top.player]

        picks = {
            1: best([r for r in records if r.alive]),
            2: best([r for r in records if r.eliminated and r.elimination_round == final_round]),
            3: best(
                [
                    r
                    for r in records
                    if r.eliminated
                    and final_round > 1
                    and r.elimination_round == final_round - 1
                ]
            ),
        }

        return tuple(
            Placement(
                place=place,
                player=record.address,
                prize_share=shares[place],
                gain=gains[record.address],
            )
            for place, record in sorted(picks.items())
            if record is not None
        )

    @staticmethod
    def _losers(
        records: Sequence[PlayerRecord], gains: Dict[str, Gain]
    ) -> Tuple[LoserEntry, ...]:
        def key(r: PlayerRecord) -> Tuple[int, int, int, int, int, str]:
            tier, bp = gains[r.address].sort_key()
            never_eliminated = r.alive or r.elimination_round == 0
            return (
                0 if never_eliminated else 1,
                -r.elimination_round,
                -tier,
                -bp,
                r.square_index,
                r.address,
            )

        return tuple(
            LoserEntry(
                player=r.address,
                elimination_round=0 if r.alive else r.elimination_round,
                gain=gains[r.address],
                square_index=r.square_index,
            )
            for r in sorted(records, key=key)
        )
