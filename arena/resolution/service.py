"""
Game View Service.

Assembles everything the presentation layer shows for one game from a
single round of ledger reads:

    game + players + records
        -> snapshots            (SnapshotCollector)
        -> leaderboard          (RankingEngine)
        -> projection           (EliminationProjector, lapsed rounds only)
        -> elimination details
        -> resolution           (PayoutRecordFinder + PlacementResolver)
        -> prize breakdown

A view is built completely before it is published. ``refresh`` supersedes
any in-flight cycle for the same game; a superseded cycle never publishes.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from arena.config import Settings, get_settings
from arena.ledger.models import GameInfo, PlayerRecord, RoundInfo
from arena.ledger.reader import LedgerReader
from arena.logging_config import get_logger, log_context
from arena.utils.async_utils import cancel_task_safe, create_safe_task, gather_bounded
from arena.utils.errors import GameNotFoundError, LedgerError, LedgerNotFoundError

from .clock import RoundClock
from .gain import Gain, live_gain
from .payouts import PayoutRecordFinder
from .placement import (
    GameResolution,
    PlacementResolver,
    PrizeBreakdown,
    ResolutionSource,
    end_to_end_gain,
    prize_breakdown,
)
from .projection import EliminationProjection, EliminationProjector, LiveCandidate
from .ranking import RankCandidate, RankedEntry, RankingEngine
from .snapshot import (
    EliminationDetail,
    SnapshotCollector,
    SnapshotSet,
    elimination_details,
)

logger = get_logger(__name__)


class GameStatus(str, Enum):
    PENDING = "pending"  # registered, not started
    ACTIVE = "active"
    ROUND_LAPSED = "round_lapsed"  # timer ran out, ledger has not finalized the round
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GameView:
    """One complete, internally consistent picture of a game."""

    game: GameInfo
    status: GameStatus
    records: Tuple[PlayerRecord, ...]
    snapshots: SnapshotSet
    leaderboard: Tuple[RankedEntry, ...]
    prize_breakdown: PrizeBreakdown
    clock: Optional[RoundClock] = None
    projection: Optional[EliminationProjection] = None
    elimination_details: Tuple[EliminationDetail, ...] = ()
    resolution: Optional[GameResolution] = None
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "game": self.game.to_dict(),
            "status": self.status.value,
            "clock": self.clock.to_dict() if self.clock else None,
            "players": [r.to_dict() for r in self.records],
            "leaderboard": [e.to_dict() for e in self.leaderboard],
            "projection": self.projection.to_dict() if self.projection else None,
            "elimination_details": [d.to_dict() for d in self.elimination_details],
            "resolution": self.resolution.to_dict() if self.resolution else None,
            "prize_breakdown": self.prize_breakdown.to_dict(),
            "errors": list(self.errors),
        }


def _status(game: GameInfo, clock: Optional[RoundClock]) -> GameStatus:
    if game.cancelled:
        return GameStatus.CANCELLED
    if game.finalized:
        return GameStatus.FINALIZED
    if not game.started:
        return GameStatus.PENDING
    if clock is not None and clock.should_have_ended:
        return GameStatus.ROUND_LAPSED
    return GameStatus.ACTIVE


class GameViewService:
    """
    Builds and publishes game views.

    Holds no durable state: the latest published view per game, the
    in-flight cycle per game, and resolutions of games whose payout records
    were found (immutable ledger history).
    """

    def __init__(
        self,
        ledger: LedgerReader,
        settings: Optional[Settings] = None,
        collector: Optional[SnapshotCollector] = None,
        finder: Optional[PayoutRecordFinder] = None,
        projector: Optional[EliminationProjector] = None,
        resolver: Optional[PlacementResolver] = None,
    ):
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.collector = collector or SnapshotCollector(
            ledger, max_concurrency=self.settings.ledger_max_concurrency
        )
        self.finder = finder or PayoutRecordFinder.from_settings(ledger, self.settings)
        self.projector = projector or EliminationProjector()
        self.resolver = resolver or PlacementResolver()

        self._latest: Dict[int, GameView] = {}
        self._generation: Dict[int, int] = {}
        self._inflight: Dict[int, asyncio.Task] = {}
        self._resolutions: Dict[Tuple[int, Optional[str]], GameResolution] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────────────

    async def _read_game(self, game_id: int) -> GameInfo:
        try:
            return await self.ledger.get_game(game_id)
        except LedgerNotFoundError as e:
            raise GameNotFoundError(game_id) from e

    async def _read_records(
        self, game_id: int, players: Sequence[str], errors: List[str]
    ) -> Tuple[PlayerRecord, ...]:
        semaphore = asyncio.Semaphore(self.settings.ledger_max_concurrency)
        results = await gather_bounded(
            semaphore,
            [lambda p=p: self.ledger.get_player_record(game_id, p) for p in players],
        )

        records: List[PlayerRecord] = []
        for player, result in zip(players, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "player_record_unavailable",
                    game_id=game_id,
                    player=player,
                    error=type(result).__name__,
                )
                errors.append(f"player_record_unavailable:{player}")
                continue
            records.append(result)
        return tuple(records)

    async def _read_current_balances(
        self, players: Sequence[str], errors: List[str]
    ) -> Dict[str, int]:
        semaphore = asyncio.Semaphore(self.settings.ledger_max_concurrency)
        results = await gather_bounded(
            semaphore,
            [lambda p=p: self.ledger.get_current_balance(p) for p in players],
        )

        balances: Dict[str, int] = {}
        for player, result in zip(players, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning(
                    "current_balance_unavailable",
                    player=player,
                    error=type(result).__name__,
                )
                errors.append(f"current_balance_unavailable:{player}")
                continue
            balances[player] = result
        return balances

    async def _current_round(
        self, game: GameInfo, snapshots: SnapshotSet, errors: List[str]
    ) -> Optional[RoundInfo]:
        if game.current_round < 1:
            return None
        cached = snapshots.rounds.get(game.current_round)
        if cached is not None:
            return cached
        try:
            return await self.ledger.get_round(game.game_id, game.current_round)
        except LedgerError as e:
            logger.warning(
                "round_unavailable",
                game_id=game.game_id,
                round=game.current_round,
                error=e.code,
            )
            errors.append(f"round_unavailable:{game.current_round}")
            return None

    # ─────────────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────────────

    async def resolve(
        self,
        game_id: int,
        tx_ref: Optional[str] = None,
        game: Optional[GameInfo] = None,
        records: Optional[Sequence[PlayerRecord]] = None,
        snapshots: Optional[SnapshotSet] = None,
        errors: Sequence[str] = (),
    ) -> GameResolution:
        """
        Final placements of a finalized game.

        Ledger-sourced resolutions are memoized once every read behind them
        succeeded; ``errors`` carries the caller's read failures when
        ``records`` and ``snapshots`` are passed in.

        Raises:
            GameNotFoundError: unknown game
            GameNotResolvableError: cancelled or not yet finalized
            LedgerError: game or player list unreadable
        """
        memo_key = (game_id, tx_ref)
        memo = self._resolutions.get(memo_key)
        if memo is not None:
            return memo

        if game is None:
            game = await self._read_game(game_id)

        if game.finalized and not game.cancelled:
            if records is None or snapshots is None:
                players = await self.ledger.get_players(game_id)
                read_errors: List[str] = []
                records = await self._read_records(game_id, players, read_errors)
                errors = read_errors
                snapshots = await self.collector.collect(game, players)
            payouts = await self.finder.find(game_id, tx_ref=tx_ref)
        else:
            records, snapshots, payouts = (), SnapshotSet(game_id=game_id, max_round=0), ()

        resolution = self.resolver.resolve(game, records, snapshots, payouts)
        if resolution.source is ResolutionSource.LEDGER:
            if not errors and snapshots.complete:
                self._resolutions[memo_key] = resolution
            else:
                logger.info(
                    "resolution_not_memoized",
                    game_id=game_id,
                    errors=len(errors),
                    failed_reads=snapshots.failed_reads,
                )
        return resolution

    # ─────────────────────────────────────────────────────────────────────────
    # View
    # ─────────────────────────────────────────────────────────────────────────

    async def build_view(
        self,
        game_id: int,
        now: Optional[int] = None,
        tx_ref: Optional[str] = None,
    ) -> GameView:
        """
        Build a complete view of ``game_id``.

        Individual cell failures degrade the view (recorded in ``errors``);
        an unreadable game or player list fails the whole build.

        Raises:
            GameNotFoundError: unknown game
            LedgerError: game or player list unreadable
        """
        errors: List[str] = []
        game = await self._read_game(game_id)
        players = await self.ledger.get_players(game_id)
        records = await self._read_records(game_id, players, errors)

        if (game.started or game.finalized) and not game.cancelled:
            snapshots = await self.collector.collect(game, players)
            if not snapshots.complete:
                errors.append(f"snapshot_reads_failed:{snapshots.failed_reads}")
        else:
            snapshots = SnapshotSet(game_id=game_id, max_round=0)

        round_info = await self._current_round(game, snapshots, errors)
        clock = RoundClock.from_round(game, round_info, now) if game.started else None

        alive = [r for r in records if r.alive]
        eliminated = [r for r in records if r.eliminated]
        eliminated_gains = [
            (r, end_to_end_gain(snapshots.for_player(r.address), r)) for r in eliminated
        ]

        projection: Optional[EliminationProjection] = None
        if game.finished or not game.started:
            alive_candidates = [
                RankCandidate(
                    player=r.address,
                    gain=end_to_end_gain(snapshots.for_player(r.address), r),
                    square_index=r.square_index,
                )
                for r in alive
            ]
        else:
            live = await self._live_candidates(game, alive, snapshots, errors)
            by_player = {c.player: c for c in live}
            alive_candidates = [
                RankCandidate(
                    player=r.address,
                    gain=by_player[r.address].gain() if r.address in by_player else Gain.unavailable(),
                    square_index=r.square_index,
                )
                for r in alive
            ]
            if clock is not None and clock.should_have_ended and round_info is not None:
                # unreadable balances show up as a count mismatch
                projection = self.projector.project(game_id, round_info, live)

        resolution: Optional[GameResolution] = None
        if game.finalized and not game.cancelled:
            resolution = await self.resolve(
                game_id,
                tx_ref=tx_ref,
                game=game,
                records=records,
                snapshots=snapshots,
                errors=errors,
            )

        view = GameView(
            game=game,
            status=_status(game, clock),
            records=records,
            snapshots=snapshots,
            leaderboard=RankingEngine.leaderboard(alive_candidates, eliminated_gains),
            prize_breakdown=prize_breakdown(game),
            clock=clock,
            projection=projection,
            elimination_details=elimination_details(snapshots, records),
            resolution=resolution,
            errors=tuple(errors),
        )

        logger.debug(
            "view_built",
            game_id=game_id,
            status=view.status.value,
            players=len(records),
            errors=len(errors),
        )
        return view

    async def _live_candidates(
        self,
        game: GameInfo,
        alive: Sequence[PlayerRecord],
        snapshots: SnapshotSet,
        errors: List[str],
    ) -> List[LiveCandidate]:
        balances = await self._read_current_balances([r.address for r in alive], errors)
        candidates: List[LiveCandidate] = []
        for record in alive:
            if record.address not in balances:
                continue
            snaps = snapshots.for_player(record.address)
            candidates.append(
                LiveCandidate(
                    player=record.address,
                    square_index=record.square_index,
                    round_start_balance=snaps.starts.get(game.current_round, 0),
                    game_start_balance=snaps.round_one_start,
                    current_balance=balances[record.address],
                )
            )
        return candidates

    # ─────────────────────────────────────────────────────────────────────────
    # Publishing
    # ─────────────────────────────────────────────────────────────────────────

    def latest(self, game_id: int) -> Optional[GameView]:
        """Last published view, None before the first successful cycle."""
        return self._latest.get(game_id)

    async def refresh(self, game_id: int) -> Optional[GameView]:
        """
        Run a new cycle for ``game_id``, superseding any in-flight one.

        Returns:
            The published view, or None if a newer cycle superseded this one
        """
        generation = self._generation.get(game_id, 0) + 1
        self._generation[game_id] = generation

        previous = self._inflight.get(game_id)
        # failures propagate to the caller through task.result()
        task = asyncio.create_task(
            self._cycle(game_id, generation),
            name=f"game-view-{game_id}-{generation}",
        )
        self._inflight[game_id] = task
        await cancel_task_safe(previous)

        try:
            await asyncio.wait({task})
        finally:
            if self._inflight.get(game_id) is task:
                del self._inflight[game_id]

        if task.cancelled():
            return None
        return task.result()

    async def _cycle(self, game_id: int, generation: int) -> Optional[GameView]:
        with log_context(game_id=game_id, cycle=generation):
            view = await self.build_view(game_id)

        if self._generation.get(game_id) != generation:
            logger.info("view_superseded", game_id=game_id, cycle=generation)
            return None

        self._latest[game_id] = view
        return view


class GamePoller:
    """
    Periodically refreshes watched games.

    A failed cycle is logged and retried on the next tick.
    """

    def __init__(self, service: GameViewService, interval: Optional[float] = None):
        self.service = service
        self.interval = interval or service.settings.poll_interval_seconds
        self._watched: Set[int] = set()
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def watched(self) -> Set[int]:
        return set(self._watched)

    def watch(self, game_id: int) -> None:
        self._watched.add(game_id)

    def unwatch(self, game_id: int) -> None:
        self._watched.discard(game_id)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = create_safe_task(self._loop(), name="game-poller")
        logger.info("poller_started", interval=self.interval)

    async def stop(self) -> None:
        self._running = False
        await cancel_task_safe(self._task)
        self._task = None
        logger.info("poller_stopped")

    async def tick(self) -> None:
        """Refresh every watched game once."""
        game_ids = sorted(self._watched)
        results = await asyncio.gather(
            *(self.service.refresh(game_id) for game_id in game_ids),
            return_exceptions=True,
        )
        for game_id, result in zip(game_ids, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "view_refresh_failed",
                    game_id=game_id,
                    error=type(result).__name__,
                    reason=str(result),
                )

    async def _loop(self) -> None:
        while self._running:
            await self.tick()
            await asyncio.sleep(self.interval)
