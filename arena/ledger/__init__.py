"""Read-only access to the external game ledger."""

from .gateway import LedgerGateway
from .models import GameInfo, PayoutRecord, PlayerRecord, RoundInfo
from .reader import LedgerReader

__all__ = [
    "LedgerGateway",
    "LedgerReader",
    "GameInfo",
    "RoundInfo",
    "PlayerRecord",
    "PayoutRecord",
]
