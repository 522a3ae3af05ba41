"""
Ledger Gateway Tests.

httpx.MockTransport 기반 게이트웨이 테스트.
"""

from typing import Callable, List

import httpx
import pytest

from arena.ledger.gateway import LedgerGateway
from arena.resolution.payouts import PayoutRecordFinder, SearchLimits
from arena.utils.errors import (
    BlockRangeLimitError,
    DataUnavailableError,
    LedgerNotFoundError,
    LedgerReadError,
)


def gateway(settings, handler: Callable[[httpx.Request], httpx.Response]) -> LedgerGateway:
    settings = settings.model_copy(update={"ledger_max_retries": 2})
    return LedgerGateway.from_settings(settings, transport=httpx.MockTransport(handler))


class TestReads:
    @pytest.mark.asyncio
    async def test_game_record(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/games/7"
            return httpx.Response(
                200,
                json={
                    "totalRounds": 3,
                    "currentRound": "2",
                    "startTime": 1700000000,
                    "roundDuration": 600,
                    "finalized": False,
                    "entryFee": "1000000000000000000",
                    "playerCount": 8,
                    "prizePool": "0",
                },
            )

        async with gateway(settings, handler) as ledger:
            game = await ledger.get_game(7)

        assert game.game_id == 7
        assert game.current_round == 2
        assert game.entry_fee == 10**18
        assert game.started

    @pytest.mark.asyncio
    async def test_players_and_balances(self, settings):
        routes = {
            "/games/7/players": {"players": ["0xa", "0xb"]},
            "/games/7/rounds/2/start-balance/0xa": {"balance": "2500000000000000000"},
            "/games/7/rounds/2/end-balance/0xa": {"balance": 0},
            "/accounts/0xa/balance": {"balance": "42"},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=routes[request.url.path])

        async with gateway(settings, handler) as ledger:
            assert await ledger.get_players(7) == ["0xa", "0xb"]
            assert await ledger.get_round_start_balance(7, 2, "0xa") == 25 * 10**17
            assert await ledger.get_round_end_balance(7, 2, "0xa") == 0
            assert await ledger.get_current_balance("0xa") == 42

    @pytest.mark.asyncio
    async def test_player_record(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"squareIndex": 4, "alive": False, "eliminationRound": 2}
            )

        async with gateway(settings, handler) as ledger:
            record = await ledger.get_player_record(7, "0xa")

        assert record.address == "0xa"
        assert record.eliminated
        assert record.elimination_round == 2


class TestErrors:
    @pytest.mark.asyncio
    async def test_404_is_not_found(self, settings):
        async with gateway(settings, lambda r: httpx.Response(404)) as ledger:
            with pytest.raises(LedgerNotFoundError):
                await ledger.get_game(7)

    @pytest.mark.asyncio
    async def test_5xx_is_read_error_without_retry(self, settings):
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(503)

        async with gateway(settings, handler) as ledger:
            with pytest.raises(LedgerReadError) as exc_info:
                await ledger.get_round(7, 1)

        assert len(seen) == 1
        assert exc_info.value.details["reason"] == "HTTP 503"

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, settings):
        attempts: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"number": 123})

        async with gateway(settings, handler) as ledger:
            assert await ledger.get_latest_block() == 123

        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_malformed_body(self, settings):
        async with gateway(settings, lambda r: httpx.Response(200, content=b"not json")) as ledger:
            with pytest.raises(LedgerReadError):
                await ledger.get_current_balance("0xa")

    @pytest.mark.asyncio
    async def test_malformed_balance_is_unavailable_cell(self, settings):
        async with gateway(settings, lambda r: httpx.Response(200, json={"balance": "abc"})) as ledger:
            with pytest.raises(DataUnavailableError) as exc_info:
                await ledger.get_round_end_balance(7, 1, "0xa")

        assert exc_info.value.details["cell"] == "/games/7/rounds/1/end-balance/0xa"


class TestPayoutRecords:
    @pytest.mark.asyncio
    async def test_query_parameters(self, settings):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "records": [
                        {"place": 1, "winner": "0xa", "amount": "600", "txRef": "0xfin", "blockNumber": 90}
                    ]
                },
            )

        async with gateway(settings, handler) as ledger:
            records = await ledger.get_payout_records(7, from_block=10, to_block=99)

        assert seen[0].url.params["fromBlock"] == "10"
        assert seen[0].url.params["toBlock"] == "99"
        assert "txRef" not in seen[0].url.params
        assert records[0].amount == 600
        assert records[0].tx_ref == "0xfin"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(413),
            httpx.Response(400, text="query exceeds max block range"),
        ],
    )
    async def test_range_rejection(self, settings, response):
        async with gateway(settings, lambda r: response) as ledger:
            with pytest.raises(BlockRangeLimitError):
                await ledger.get_payout_records(7, from_block=0, to_block=1_000_000)

    @pytest.mark.asyncio
    async def test_unrelated_400_is_read_error(self, settings):
        async with gateway(settings, lambda r: httpx.Response(400, text="bad game id")) as ledger:
            with pytest.raises(LedgerReadError):
                await ledger.get_payout_records(7, from_block=0, to_block=10)

    @pytest.mark.asyncio
    async def test_malformed_record_is_read_error(self, settings):
        body = {"records": [{"place": "1st", "winner": "0xa", "amount": "600", "blockNumber": 90}]}

        async with gateway(settings, lambda r: httpx.Response(200, json=body)) as ledger:
            with pytest.raises(LedgerReadError) as exc_info:
                await ledger.get_payout_records(7, from_block=0, to_block=99)

        assert exc_info.value.details["reason"] == "malformed response"

    @pytest.mark.asyncio
    async def test_malformed_records_fall_back_to_no_records(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/blocks/latest":
                return httpx.Response(200, json={"number": 5_000})
            return httpx.Response(200, json={"records": [{"place": "1st", "winner": "0xa"}]})

        async with gateway(settings, handler) as ledger:
            finder = PayoutRecordFinder(ledger, SearchLimits(window=10_000, min_window=500, max_blocks=10_000))
            assert await finder.find(7, tx_ref="0xfin") == ()

    @pytest.mark.asyncio
    async def test_non_object_body_is_read_error(self, settings):
        async with gateway(settings, lambda r: httpx.Response(200, json=[1, 2])) as ledger:
            with pytest.raises(LedgerReadError):
                await ledger.get_players(7)

    @pytest.mark.asyncio
    async def test_unknown_transaction_is_empty(self, settings):
        async with gateway(settings, lambda r: httpx.Response(404)) as ledger:
            assert await ledger.get_payout_records(7, tx_ref="0xnope") == []
