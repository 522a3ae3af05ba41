"""
Round Snapshot Collector.

Gathers per-round start/end balance snapshots for every player of a game.

Rules:
1. Round metadata first: the set of finalized rounds decides how a 0 end
   balance is read (0 before finalization is "no data yet").
2. End balances are read for every round 1..max_round independently.
3. Start balances form a contiguous prefix from round 1: the scan stops at
   the first 0 or unreadable round.
4. A failed read is logged, counted in ``failed_reads`` and treated as
   absent; collection never aborts.

All reads fan out concurrently (bounded). Results are merged by a single
coroutine after the reads complete, so no cell ever has two writers.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from arena.ledger.models import GameInfo, PlayerRecord, RoundInfo
from arena.ledger.reader import LedgerReader
from arena.logging_config import get_logger
from arena.utils.async_utils import gather_bounded

from .gain import Gain, compute_gain

logger = get_logger(__name__)


@dataclass(frozen=True)
class PlayerSnapshots:
    """Start/end balances for one player, keyed by round number."""

    player: str
    starts: Dict[int, int] = field(default_factory=dict)
    ends: Dict[int, int] = field(default_factory=dict)

    @property
    def round_one_start(self) -> int:
        return self.starts.get(1, 0)

    @property
    def last_start_round(self) -> int:
        return max(self.starts) if self.starts else 0

    def last_nonzero_end(self, up_to: Optional[int] = None) -> Tuple[int, int]:
        """(round, balance) of the latest non-zero end snapshot, or (0, 0)."""
        for round_number in sorted(self.ends, reverse=True):
            if up_to is not None and round_number > up_to:
                continue
            balance = self.ends[round_number]
            if balance > 0:
                return round_number, balance
        return 0, 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "starts": {str(r): str(b) for r, b in sorted(self.starts.items())},
            "ends": {str(r): str(b) for r, b in sorted(self.ends.items())},
        }


@dataclass(frozen=True)
class SnapshotSet:
    """Everything one collection pass produced for a game."""

    game_id: int
    max_round: int
    finalized_rounds: FrozenSet[int] = frozenset()
    rounds: Dict[int, RoundInfo] = field(default_factory=dict)
    players: Dict[str, PlayerSnapshots] = field(default_factory=dict)
    failed_reads: int = 0

    @property
    def complete(self) -> bool:
        """No read failed while collecting."""
        return self.failed_reads == 0

    def for_player(self, player: str) -> PlayerSnapshots:
        return self.players.get(player) or PlayerSnapshots(player=player)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game_id": self.game_id,
            "max_round": self.max_round,
            "finalized_rounds": sorted(self.finalized_rounds),
            "rounds": [self.rounds[r].to_dict() for r in sorted(self.rounds)],
            "players": [self.players[p].to_dict() for p in sorted(self.players)],
            "failed_reads": self.failed_reads,
        }


@dataclass(frozen=True)
class EliminationDetail:
    """The comparison behind a player's elimination: their last round, start vs end."""

    player: str
    round_number: int
    start_balance: int
    end_balance: int
    gain: Gain

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player": self.player,
            "round": self.round_number,
            "start_balance": str(self.start_balance),
            "end_balance": str(self.end_balance),
            "gain": self.gain.to_dict(),
        }


class SnapshotCollector:
    """Collects round snapshots from the ledger."""

    def __init__(self, ledger: LedgerReader, max_concurrency: int = 16):
        self.ledger = ledger
        self._max_concurrency = max_concurrency

    async def collect(self, game: GameInfo, players: Sequence[str]) -> SnapshotSet:
        """
        Collect snapshots for ``players``.

        Args:
            game: Game record (decides how many rounds to scan)
            players: Player addresses

        Returns:
            Immutable SnapshotSet
        """
        max_round = game.max_scan_round
        if max_round < 1 or not players:
            return SnapshotSet(game_id=game.game_id, max_round=max(max_round, 0))

        semaphore = asyncio.Semaphore(self._max_concurrency)

        rounds = await self._read_rounds(semaphore, game.game_id, max_round)
        finalized = frozenset(n for n, r in rounds.items() if r.finalized)

        (ends, end_failures), (starts, start_failures) = await asyncio.gather(
            self._read_ends(semaphore, game.game_id, max_round, players),
            self._read_starts(semaphore, game.game_id, max_round, players),
        )
        failed_reads = (max_round - len(rounds)) + end_failures + start_failures

        collected: Dict[str, PlayerSnapshots] = {}
        for player in players:
            player_ends = {
                r: balance
                for r, balance in ends.get(player, {}).items()
                if balance > 0 or r in finalized
            }
            player_starts = starts.get(player, {})
            if player_starts or player_ends:
                collected[player] = PlayerSnapshots(
                    player=player,
                    starts=player_starts,
                    ends=player_ends,
                )

        logger.debug(
            "snapshots_collected",
            game_id=game.game_id,
            max_round=max_round,
            finalized_rounds=sorted(finalized),
            players=len(collected),
            failed_reads=failed_reads,
        )

        return SnapshotSet(
            game_id=game.game_id,
            max_round=max_round,
            finalized_rounds=finalized,
            rounds=rounds,
            players=collected,
            failed_reads=failed_reads,
        )

    async def _read_rounds(
        self, semaphore: asyncio.Semaphore, game_id: int, max_round: int
    ) -> Dict[int, RoundInfo]:
        numbers = list(range(1, max_round + 1))
        results = await gather_bounded(
            semaphore,
            [lambda n=n: self.ledger.get_round(game_id, n) for n in numbers],
        )

        rounds: Dict[int, RoundInfo] = {}
        for number, result in zip(numbers, results):
            if self._failed(result, game_id=game_id, round=number, kind="round"):
                continue
            rounds[number] = result
        return rounds

    async def _read_ends(
        self,
        semaphore: asyncio.Semaphore,
        game_id: int,
        max_round: int,
        players: Sequence[str],
    ) -> Tuple[Dict[str, Dict[int, int]], int]:
        cells = [(p, r) for p in players for r in range(1, max_round + 1)]
        results = await gather_bounded(
            semaphore,
            [
                lambda p=p, r=r: self.ledger.get_round_end_balance(game_id, r, p)
                for p, r in cells
            ],
        )

        ends: Dict[str, Dict[int, int]] = {}
        failures = 0
        for (player, round_number), result in zip(cells, results):
            if self._failed(result, game_id=game_id, round=round_number, player=player, kind="end"):
                failures += 1
                continue
            ends.setdefault(player, {})[round_number] = result
        return ends, failures

    async def _read_starts(
        self,
        semaphore: asyncio.Semaphore,
        game_id: int,
        max_round: int,
        players: Sequence[str],
    ) -> Tuple[Dict[str, Dict[int, int]], int]:
        results = await asyncio.gather(
            *(self._scan_starts(semaphore, game_id, max_round, p) for p in players)
        )
        starts = {player: scanned for player, (scanned, _) in zip(players, results)}
        return starts, sum(1 for _, failed in results if failed)

    async def _scan_starts(
        self,
        semaphore: asyncio.Semaphore,
        game_id: int,
        max_round: int,
        player: str,
    ) -> Tuple[Dict[int, int], bool]:
        """Round 1, 2, ... until the first missing start snapshot."""
        starts: Dict[int, int] = {}
        for round_number in range(1, max_round + 1):
            try:
                async with semaphore:
                    balance = await self.ledger.get_round_start_balance(
                        game_id, round_number, player
                    )
            except Exception as e:
                self._failed(e, game_id=game_id, round=round_number, player=player, kind="start")
                return starts, True
            if balance <= 0:
                break
            starts[round_number] = balance
        return starts, False

    @staticmethod
    def _failed(result: Any, **cell: Any) -> bool:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning(
                "snapshot_read_failed",
                error=type(result).__name__,
                reason=str(result),
                **cell,
            )
            return True
        return False


def elimination_details(
    snapshots: SnapshotSet,
    records: Iterable[PlayerRecord],
) -> Tuple[EliminationDetail, ...]:
    """
    Per-eliminee comparison for the round that eliminated them.

    Uses the player's last start snapshot and the end snapshot of that same
    round. Players whose end snapshot is missing or 0 are skipped.
    """
    details: List[EliminationDetail] = []
    for record in sorted(records, key=lambda r: (r.square_index, r.address)):
        if record.alive:
            continue
        snaps = snapshots.players.get(record.address)
        if snaps is None or not snaps.starts:
            continue
        last_round = snaps.last_start_round
        start = snaps.starts[last_round]
        end = snaps.ends.get(last_round, 0)
        if end <= 0:
            continue
        details.append(
            EliminationDetail(
                player=record.address,
                round_number=last_round,
                start_balance=start,
                end_balance=end,
                gain=compute_gain(start, end),
            )
        )
    return tuple(details)
