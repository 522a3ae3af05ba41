"""Shared fixtures: an in-memory ledger and ready-made games."""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

import pytest

from arena.config import Settings
from arena.ledger.models import GameInfo, PayoutRecord, PlayerRecord, RoundInfo
from arena.ledger.reader import LedgerReader
from arena.utils.errors import (
    BlockRangeLimitError,
    LedgerNotFoundError,
    LedgerReadError,
)

ETHER = 10**18


class FakeLedger(LedgerReader):
    """
    In-memory ledger.

    ``failures`` holds read keys that raise ``LedgerReadError``:
        ("game", g), ("players", g), ("record", g, p), ("round", g, r),
        ("start", g, r, p), ("end", g, r, p), ("balance", p),
        ("payouts",), ("latest_block",)
    """

    def __init__(self) -> None:
        self.games: Dict[int, GameInfo] = {}
        self.records: Dict[int, List[PlayerRecord]] = {}
        self.rounds: Dict[Tuple[int, int], RoundInfo] = {}
        self.starts: Dict[Tuple[int, int, str], int] = {}
        self.ends: Dict[Tuple[int, int, str], int] = {}
        self.balances: Dict[str, int] = {}
        self.payouts: Dict[int, List[PayoutRecord]] = {}
        self.latest_block = 1_000_000
        self.max_block_span: Optional[int] = None
        self.failures: Set[tuple] = set()
        self.calls: List[tuple] = []
        self.on_get_game: Optional[Callable[[int], Awaitable[None]]] = None

    # ─────────────────────────────────────────────────────────────────────
    # Setup helpers
    # ─────────────────────────────────────────────────────────────────────

    def add_game(self, game: GameInfo, records: List[PlayerRecord]) -> None:
        self.games[game.game_id] = game
        self.records[game.game_id] = list(records)

    def set_round(self, game_id: int, round_info: RoundInfo) -> None:
        self.rounds[(game_id, round_info.round_number)] = round_info

    def set_snapshots(
        self,
        game_id: int,
        player: str,
        starts: Optional[Dict[int, int]] = None,
        ends: Optional[Dict[int, int]] = None,
    ) -> None:
        for r, balance in (starts or {}).items():
            self.starts[(game_id, r, player)] = balance
        for r, balance in (ends or {}).items():
            self.ends[(game_id, r, player)] = balance

    def _check(self, *key) -> None:
        self.calls.append(key)
        if key in self.failures:
            raise LedgerReadError(key[0], "injected failure")

    # ─────────────────────────────────────────────────────────────────────
    # LedgerReader
    # ─────────────────────────────────────────────────────────────────────

    async def get_game(self, game_id: int) -> GameInfo:
        if self.on_get_game is not None:
            await self.on_get_game(game_id)
        self._check("game", game_id)
        if game_id not in self.games:
            raise LedgerNotFoundError("get_game")
        return self.games[game_id]

    async def get_round(self, game_id: int, round_number: int) -> RoundInfo:
        self._check("round", game_id, round_number)
        return self.rounds.get((game_id, round_number), RoundInfo(round_number=round_number))

    async def get_players(self, game_id: int) -> List[str]:
        self._check("players", game_id)
        return [r.address for r in self.records.get(game_id, [])]

    async def get_player_record(self, game_id: int, player: str) -> PlayerRecord:
        self._check("record", game_id, player)
        for record in self.records.get(game_id, []):
            if record.address == player:
                return record
        raise LedgerNotFoundError("get_player_record")

    async def get_round_start_balance(self, game_id: int, round_number: int, player: str) -> int:
        self._check("start", game_id, round_number, player)
        await asyncio.sleep(0)
        return self.starts.get((game_id, round_number, player), 0)

    async def get_round_end_balance(self, game_id: int, round_number: int, player: str) -> int:
        self._check("end", game_id, round_number, player)
        await asyncio.sleep(0)
        return self.ends.get((game_id, round_number, player), 0)

    async def get_current_balance(self, player: str) -> int:
        self._check("balance", player)
        return self.balances.get(player, 0)

    async def get_payout_records(
        self,
        game_id: int,
        tx_ref: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[PayoutRecord]:
        self._check("payouts", game_id, tx_ref, from_block, to_block)
        if ("payouts",) in self.failures:
            raise LedgerReadError("get_payout_records", "injected failure")

        records = self.payouts.get(game_id, [])
        if tx_ref is not None:
            return [r for r in records if r.tx_ref == tx_ref]

        low = from_block or 0
        high = self.latest_block if to_block is None else to_block
        if self.max_block_span is not None and high - low + 1 > self.max_block_span:
            raise BlockRangeLimitError(low, high)
        return [r for r in records if low <= r.block_number <= high]

    async def get_latest_block(self) -> int:
        self._check("latest_block")
        return self.latest_block


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def settings() -> Settings:
    """Test settings (no .env)."""
    return Settings(
        _env_file=None,
        app_env="test",
        log_level="WARNING",
        ledger_max_concurrency=4,
        poll_interval_seconds=0.01,
        payout_search_window=1_000,
        payout_search_min_window=100,
        payout_search_max_blocks=10_000,
    )


@pytest.fixture
def finished_game(ledger: FakeLedger) -> GameInfo:
    """
    3 rounds, 4 players, finalized, no payout records.

    alice survives, bob out in round 3, carol in round 2, dave in round 1.
    """
    game = GameInfo(
        game_id=1,
        total_rounds=3,
        current_round=3,
        start_time=1_700_000_000,
        round_duration=600,
        finalized=True,
        entry_fee=ETHER,
        player_count=4,
    )
    ledger.add_game(
        game,
        [
            PlayerRecord("0xalice", square_index=0, alive=True),
            PlayerRecord("0xbob", square_index=1, alive=False, elimination_round=3),
            PlayerRecord("0xcarol", square_index=2, alive=False, elimination_round=2),
            PlayerRecord("0xdave", square_index=3, alive=False, elimination_round=1),
        ],
    )
    ledger.set_round(1, RoundInfo(1, alive_count_at_start=4, cutoff_rank=3, finalized=True))
    ledger.set_round(1, RoundInfo(2, alive_count_at_start=3, cutoff_rank=2, finalized=True))
    ledger.set_round(1, RoundInfo(3, alive_count_at_start=2, cutoff_rank=1, finalized=True))

    ledger.set_snapshots(1, "0xalice", {1: 1000, 2: 1200, 3: 1500}, {1: 1200, 2: 1500, 3: 1800})
    ledger.set_snapshots(1, "0xbob", {1: 1000, 2: 1100, 3: 1300}, {1: 1100, 2: 1300, 3: 900})
    ledger.set_snapshots(1, "0xcarol", {1: 1000, 2: 1050}, {1: 1050, 2: 800})
    ledger.set_snapshots(1, "0xdave", {1: 1000}, {1: 500})
    return game


@pytest.fixture
def live_game(ledger: FakeLedger) -> GameInfo:
    """
    Round 2 of 3 has lapsed without finalization; 5 players alive.

    Live gains against round-2 start: p1 +50%, p2 +20%, p3 0%, p4 -10%, p5 -40%.
    """
    game = GameInfo(
        game_id=2,
        total_rounds=3,
        current_round=2,
        start_time=1_700_000_000,
        round_duration=600,
        entry_fee=ETHER,
        player_count=6,
    )
    records = [PlayerRecord(f"0xp{i}", square_index=i, alive=True) for i in range(1, 6)]
    records.append(PlayerRecord("0xp6", square_index=6, alive=False, elimination_round=1))
    ledger.add_game(game, records)

    ledger.set_round(2, RoundInfo(1, alive_count_at_start=6, cutoff_rank=5, finalized=True))
    ledger.set_round(
        2,
        RoundInfo(
            2,
            start_time=1_700_000_600,
            end_time=1_700_001_200,
            alive_count_at_start=5,
            cutoff_rank=3,
        ),
    )

    for i, current in zip(range(1, 6), (1500, 1200, 1000, 900, 600)):
        ledger.set_snapshots(2, f"0xp{i}", {1: 1000, 2: 1000}, {1: 1000})
        ledger.balances[f"0xp{i}"] = current
    ledger.set_snapshots(2, "0xp6", {1: 1000}, {1: 400})
    return game
