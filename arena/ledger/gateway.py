"""
Ledger gateway client.

Implements ``LedgerReader`` over the ledger's JSON read gateway. Transport
retries (timeouts, dropped connections) happen inside ``AsyncHttpClient``;
whatever still fails is mapped onto the ``LedgerError`` hierarchy here.

Gateway routes:
    GET /games/{id}
    GET /games/{id}/rounds/{n}
    GET /games/{id}/players
    GET /games/{id}/players/{address}
    GET /games/{id}/rounds/{n}/start-balance/{address}
    GET /games/{id}/rounds/{n}/end-balance/{address}
    GET /accounts/{address}/balance
    GET /games/{id}/payouts?txRef=&fromBlock=&toBlock=
    GET /blocks/latest
"""

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from arena.config import Settings
from arena.utils.errors import (
    BlockRangeLimitError,
    DataUnavailableError,
    LedgerNotFoundError,
    LedgerReadError,
)
from arena.utils.http_client import AsyncHttpClient

from .models import GameInfo, PayoutRecord, PlayerRecord, RoundInfo, _int
from .reader import LedgerReader

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLOCK_RANGE_MARKERS = ("block range", "range too large", "exceeds max block")


class LedgerGateway(LedgerReader):
    """HTTP implementation of the read-only ledger interface.

    Usage:
        async with LedgerGateway.from_settings(settings) as ledger:
            game = await ledger.get_game(7)
    """

    def __init__(self, http: AsyncHttpClient):
        self._http = http

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "LedgerGateway":
        http = AsyncHttpClient(
            base_url=settings.ledger_gateway_url,
            timeout=settings.ledger_timeout_seconds,
            connect_timeout=settings.ledger_connect_timeout_seconds,
            max_retries=settings.ledger_max_retries,
            max_connections=settings.ledger_max_concurrency * 2,
            transport=transport,
        )
        return cls(http)

    async def __aenter__(self) -> "LedgerGateway":
        await self._http.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._http.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(
        self,
        operation: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            return await self._http.get_json(path, params=params)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise LedgerNotFoundError(operation) from e
            raise LedgerReadError(operation, f"HTTP {status}") from e
        except httpx.HTTPError as e:
            raise LedgerReadError(operation, type(e).__name__) from e
        except ValueError as e:
            raise LedgerReadError(operation, "malformed response") from e

    @staticmethod
    def _parse(operation: str, parse: Callable[[], T]) -> T:
        """Gateway JSON -> model; shape errors become ``LedgerReadError``."""
        try:
            return parse()
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise LedgerReadError(operation, "malformed response") from e

    async def _balance(self, operation: str, path: str) -> int:
        data = await self._get(operation, path)
        try:
            return _int(data.get("balance"))
        except (AttributeError, TypeError, ValueError) as e:
            raise DataUnavailableError(path) from e

    async def get_game(self, game_id: int) -> GameInfo:
        data = await self._get("get_game", f"/games/{game_id}")
        return self._parse("get_game", lambda: GameInfo.from_dict(game_id, data))

    async def get_round(self, game_id: int, round_number: int) -> RoundInfo:
        data = await self._get("get_round", f"/games/{game_id}/rounds/{round_number}")
        return self._parse("get_round", lambda: RoundInfo.from_dict(round_number, data))

    async def get_players(self, game_id: int) -> List[str]:
        data = await self._get("get_players", f"/games/{game_id}/players")
        return self._parse("get_players", lambda: [str(p) for p in data.get("players", [])])

    async def get_player_record(self, game_id: int, player: str) -> PlayerRecord:
        data = await self._get(
            "get_player_record", f"/games/{game_id}/players/{player}"
        )
        return self._parse("get_player_record", lambda: PlayerRecord.from_dict(player, data))

    async def get_round_start_balance(
        self, game_id: int, round_number: int, player: str
    ) -> int:
        return await self._balance(
            "get_round_start_balance",
            f"/games/{game_id}/rounds/{round_number}/start-balance/{player}",
        )

    async def get_round_end_balance(
        self, game_id: int, round_number: int, player: str
    ) -> int:
        return await self._balance(
            "get_round_end_balance",
            f"/games/{game_id}/rounds/{round_number}/end-balance/{player}",
        )

    async def get_current_balance(self, player: str) -> int:
        return await self._balance("get_current_balance", f"/accounts/{player}/balance")

    async def get_payout_records(
        self,
        game_id: int,
        tx_ref: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[PayoutRecord]:
        params: Dict[str, Any] = {}
        if tx_ref is not None:
            params["txRef"] = tx_ref
        if from_block is not None:
            params["fromBlock"] = from_block
        if to_block is not None:
            params["toBlock"] = to_block

        try:
            data = await self._http.get_json(f"/games/{game_id}/payouts", params=params)
        except httpx.HTTPStatusError as e:
            if from_block is not None and self._is_range_rejection(e.response):
                raise BlockRangeLimitError(from_block, to_block or from_block) from e
            if e.response.status_code == 404:
                return []
            raise LedgerReadError("get_payout_records", f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise LedgerReadError("get_payout_records", type(e).__name__) from e
        except ValueError as e:
            raise LedgerReadError("get_payout_records", "malformed response") from e

        return self._parse(
            "get_payout_records",
            lambda: [PayoutRecord.from_dict(r) for r in data.get("records", [])],
        )

    async def get_latest_block(self) -> int:
        data = await self._get("get_latest_block", "/blocks/latest")
        return self._parse("get_latest_block", lambda: _int(data.get("number")))

    @staticmethod
    def _is_range_rejection(response: httpx.Response) -> bool:
        if response.status_code == 413:
            return True
        if response.status_code not in (400, 422):
            return False
        body = response.text.lower()
        return any(marker in body for marker in BLOCK_RANGE_MARKERS)
