"""
Read-only ledger interface.

The engine only ever reads. Implementations raise ``LedgerError``
subclasses on failure; callers decide whether a failure is fatal (game
record) or just an absent cell (one balance).
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import GameInfo, PayoutRecord, PlayerRecord, RoundInfo


class LedgerReader(ABC):
    """Async read access to the authoritative game ledger."""

    @abstractmethod
    async def get_game(self, game_id: int) -> GameInfo:
        ...

    @abstractmethod
    async def get_round(self, game_id: int, round_number: int) -> RoundInfo:
        ...

    @abstractmethod
    async def get_players(self, game_id: int) -> List[str]:
        """Registered player addresses in registration order."""

    @abstractmethod
    async def get_player_record(self, game_id: int, player: str) -> PlayerRecord:
        ...

    @abstractmethod
    async def get_round_start_balance(
        self, game_id: int, round_number: int, player: str
    ) -> int:
        """Balance snapshot taken when the round started (0 = none)."""

    @abstractmethod
    async def get_round_end_balance(
        self, game_id: int, round_number: int, player: str
    ) -> int:
        """Balance snapshot taken when the round was finalized (0 = none)."""

    @abstractmethod
    async def get_current_balance(self, player: str) -> int:
        """Instantaneous account balance, outside any game bookkeeping."""

    @abstractmethod
    async def get_payout_records(
        self,
        game_id: int,
        tx_ref: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[PayoutRecord]:
        """
        Payout records for a game.

        With ``tx_ref``: only records emitted by that transaction.
        With a block range: event search over ``[from_block, to_block]``;
        may raise ``BlockRangeLimitError`` when the host caps the span.
        """

    @abstractmethod
    async def get_latest_block(self) -> int:
        ...
