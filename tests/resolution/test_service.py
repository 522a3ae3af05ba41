"""
Game View Service Tests.

뷰 조립, 발행, 폴링 테스트.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from arena.ledger.models import GameInfo, PayoutRecord, PlayerRecord
from arena.resolution.placement import ResolutionSource
from arena.resolution.service import GamePoller, GameStatus, GameViewService
from arena.utils.errors import GameNotFoundError, GameNotResolvableError, LedgerReadError

LAPSED_NOW = 1_700_001_500
RUNNING_NOW = 1_700_000_700


@pytest.fixture
def service(ledger, settings) -> GameViewService:
    return GameViewService(ledger, settings)


# =============================================================================
# build_view
# =============================================================================


class TestBuildView:
    @pytest.mark.asyncio
    async def test_finished_game(self, service, finished_game):
        view = await service.build_view(finished_game.game_id)

        assert view.status is GameStatus.FINALIZED
        assert view.resolution is not None
        assert view.resolution.placement(1).player == "0xalice"
        assert view.projection is None
        assert [e.player for e in view.leaderboard] == ["0xalice", "0xbob", "0xcarol", "0xdave"]
        assert [d.player for d in view.elimination_details] == ["0xbob", "0xcarol", "0xdave"]
        assert view.prize_breakdown.prize_pool == view.resolution.prize_pool
        assert view.errors == ()

    @pytest.mark.asyncio
    async def test_lapsed_round_is_projected(self, service, live_game):
        view = await service.build_view(live_game.game_id, now=LAPSED_NOW)

        assert view.status is GameStatus.ROUND_LAPSED
        assert view.clock.should_have_ended
        assert view.projection.eliminated == ("0xp4", "0xp5")
        assert view.resolution is None
        # eliminated player sits below everyone alive
        assert view.leaderboard[-1].player == "0xp6"
        assert view.leaderboard[0].gain.display() == "+50.00%"

    @pytest.mark.asyncio
    async def test_running_round_is_not_projected(self, service, live_game):
        view = await service.build_view(live_game.game_id, now=RUNNING_NOW)

        assert view.status is GameStatus.ACTIVE
        assert view.projection is None

    @pytest.mark.asyncio
    async def test_unreadable_balance_degrades_projection(self, service, ledger, live_game):
        ledger.failures.add(("balance", "0xp3"))

        view = await service.build_view(live_game.game_id, now=LAPSED_NOW)

        assert view.projection.inconsistent
        assert view.projection.eliminated == ()
        assert "current_balance_unavailable:0xp3" in view.errors
        entry = next(e for e in view.leaderboard if e.player == "0xp3")
        assert not entry.gain.available

    @pytest.mark.asyncio
    async def test_unknown_game(self, service):
        with pytest.raises(GameNotFoundError):
            await service.build_view(404)

    @pytest.mark.asyncio
    async def test_unreadable_game_propagates(self, service, ledger, finished_game):
        ledger.failures.add(("game", finished_game.game_id))
        with pytest.raises(LedgerReadError):
            await service.build_view(finished_game.game_id)

    @pytest.mark.asyncio
    async def test_pending_game_reads_no_snapshots(self, service, ledger):
        ledger.add_game(GameInfo(game_id=8, total_rounds=3), [PlayerRecord("0xa")])

        view = await service.build_view(8)

        assert view.status is GameStatus.PENDING
        assert view.clock is None
        assert not [c for c in ledger.calls if c[0] in ("start", "end")]

    @pytest.mark.asyncio
    async def test_to_dict(self, service, finished_game):
        data = (await service.build_view(finished_game.game_id)).to_dict()

        assert data["status"] == "finalized"
        assert data["resolution"]["source"] == "computed"
        assert len(data["players"]) == 4


# =============================================================================
# resolve
# =============================================================================


class TestResolve:
    @pytest.mark.asyncio
    async def test_ledger_resolutions_are_memoized(self, service, ledger, finished_game):
        ledger.payouts[1] = [
            PayoutRecord(place=1, winner="0xalice", amount=5, tx_ref="0xfin", block_number=ledger.latest_block)
        ]

        first = await service.resolve(1)
        calls = len(ledger.calls)
        second = await service.resolve(1)

        assert first is second
        assert first.source is ResolutionSource.LEDGER
        assert len(ledger.calls) == calls

    @pytest.mark.asyncio
    async def test_degraded_reads_are_not_memoized(self, service, ledger, settings, finished_game):
        ledger.payouts[1] = [
            PayoutRecord(place=1, winner="0xalice", amount=5, tx_ref="0xfin", block_number=ledger.latest_block)
        ]
        ledger.failures |= {("start", 1, 1, "0xalice"), ("record", 1, "0xdave")}

        degraded = await service.resolve(1)
        assert degraded.source is ResolutionSource.LEDGER
        assert len(degraded.losers) == 2

        ledger.failures.clear()
        recovered = await service.resolve(1)
        fresh = await GameViewService(ledger, settings).resolve(1)

        assert len(recovered.losers) == 3
        assert recovered.to_json() == fresh.to_json()
        assert await service.resolve(1) is recovered

    @pytest.mark.asyncio
    async def test_degraded_view_reports_snapshot_failures(self, service, ledger, finished_game):
        ledger.failures.add(("end", 1, 2, "0xbob"))

        view = await service.build_view(1)

        assert "snapshot_reads_failed:1" in view.errors

    @pytest.mark.asyncio
    async def test_running_game_is_not_resolvable(self, service, live_game):
        with pytest.raises(GameNotResolvableError):
            await service.resolve(live_game.game_id)


# =============================================================================
# refresh / supersession
# =============================================================================


class TestRefresh:
    @pytest.mark.asyncio
    async def test_publishes_latest(self, service, finished_game):
        assert service.latest(1) is None

        view = await service.refresh(1)

        assert view is not None
        assert service.latest(1) is view

    @pytest.mark.asyncio
    async def test_superseded_cycle_never_publishes(self, service, ledger, finished_game):
        gate = asyncio.Event()
        entered = asyncio.Event()
        first_call = True

        async def hold_first(game_id: int) -> None:
            nonlocal first_call
            if first_call:
                first_call = False
                entered.set()
                await gate.wait()

        ledger.on_get_game = hold_first

        stale = asyncio.create_task(service.refresh(1))
        await entered.wait()
        fresh = await service.refresh(1)
        gate.set()

        assert await stale is None
        assert fresh is not None
        assert service.latest(1) is fresh

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_previous_view(self, service, ledger, finished_game):
        published = await service.refresh(1)
        ledger.failures.add(("players", 1))

        with pytest.raises(LedgerReadError):
            await service.refresh(1)

        assert service.latest(1) is published


# =============================================================================
# GamePoller
# =============================================================================


class TestGamePoller:
    @pytest.mark.asyncio
    async def test_tick_refreshes_watched_games(self):
        service = AsyncMock()
        service.settings.poll_interval_seconds = 1.0
        poller = GamePoller(service)
        poller.watch(2)
        poller.watch(1)
        poller.unwatch(2)
        poller.watch(3)

        await poller.tick()

        refreshed = sorted(call.args[0] for call in service.refresh.await_args_list)
        assert refreshed == [1, 3]

    @pytest.mark.asyncio
    async def test_tick_survives_failures(self):
        service = AsyncMock()
        service.refresh.side_effect = [LedgerReadError("get_game"), None]
        poller = GamePoller(service, interval=1.0)
        poller.watch(1)
        poller.watch(2)

        await poller.tick()

        assert service.refresh.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_cycle_is_logged_once(self, service, ledger, finished_game):
        ledger.failures.add(("players", 1))
        poller = GamePoller(service, interval=1.0)
        poller.watch(1)

        with patch("arena.utils.async_utils.logger") as task_logger, patch(
            "arena.resolution.service.logger"
        ) as view_logger:
            await poller.tick()

        task_logger.error.assert_not_called()
        failures = [c for c in view_logger.warning.call_args_list if c.args[0] == "view_refresh_failed"]
        assert len(failures) == 1
        assert failures[0].kwargs["error"] == "LedgerReadError"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, service, finished_game):
        poller = GamePoller(service, interval=0.01)
        poller.watch(1)

        await poller.start()
        for _ in range(100):
            if service.latest(1) is not None:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

        assert service.latest(1) is not None
