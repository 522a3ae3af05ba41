"""Exception classes for ledger reads and game resolution.

Every error carries a stable code and a terse, user-safe message. Raw
transport diagnostics stay in ``details`` and the logs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Ledger errors
    LEDGER_UNAVAILABLE = "LEDGER_UNAVAILABLE"
    LEDGER_NOT_FOUND = "LEDGER_NOT_FOUND"
    BLOCK_RANGE_LIMIT = "BLOCK_RANGE_LIMIT"
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"

    # Resolution errors
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    GAME_NOT_RESOLVABLE = "GAME_NOT_RESOLVABLE"
    INCONSISTENT_STATE = "INCONSISTENT_STATE"


class ArenaError(Exception):
    """Base exception.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        recoverable: Whether retrying later may succeed
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Ledger Errors
# =============================================================================


class LedgerError(ArenaError):
    """Base for failures talking to the ledger gateway."""


class LedgerReadError(LedgerError):
    """Raised when a ledger read fails after retries."""

    def __init__(self, operation: str, reason: str = ""):
        super().__init__(
            code=ErrorCode.LEDGER_UNAVAILABLE,
            message="Ledger temporarily unavailable, please retry",
            details={"operation": operation, "reason": reason},
            recoverable=True,
        )


class LedgerNotFoundError(LedgerError):
    """Raised when the ledger has no record for the requested key."""

    def __init__(self, operation: str):
        super().__init__(
            code=ErrorCode.LEDGER_NOT_FOUND,
            message="Ledger record not found",
            details={"operation": operation},
            recoverable=False,
        )


class BlockRangeLimitError(LedgerError):
    """Raised when the host rejects an event query for spanning too many blocks."""

    def __init__(self, from_block: int, to_block: int):
        super().__init__(
            code=ErrorCode.BLOCK_RANGE_LIMIT,
            message=f"Block range too large: {from_block}-{to_block}",
            details={"fromBlock": from_block, "toBlock": to_block},
            recoverable=True,
        )


class DataUnavailableError(LedgerError):
    """A single cell (one round, one player) could not be read."""

    def __init__(self, cell: str):
        super().__init__(
            code=ErrorCode.DATA_UNAVAILABLE,
            message=f"Data unavailable: {cell}",
            details={"cell": cell},
            recoverable=True,
        )


# =============================================================================
# Resolution Errors
# =============================================================================


class GameNotFoundError(ArenaError):
    """Raised when the ledger does not know the game."""

    def __init__(self, game_id: int):
        super().__init__(
            code=ErrorCode.GAME_NOT_FOUND,
            message=f"Game not found: {game_id}",
            details={"gameId": game_id},
            recoverable=False,
        )


class GameNotResolvableError(ArenaError):
    """Raised when placements are requested for a game that has none."""

    def __init__(self, game_id: int, reason: str):
        super().__init__(
            code=ErrorCode.GAME_NOT_RESOLVABLE,
            message=f"Game {game_id} cannot be resolved: {reason}",
            details={"gameId": game_id, "reason": reason},
            recoverable=reason == "not_finalized",
        )


class InconsistentStateError(ArenaError):
    """Ledger-reported alive count disagrees with the engine's own scan.

    Reported (logged and flagged), never raised out of a projection.
    """

    def __init__(self, game_id: int, round_number: int, reported: int, found: int):
        super().__init__(
            code=ErrorCode.INCONSISTENT_STATE,
            message=(
                f"Round {round_number} reports {reported} alive players, "
                f"scan found {found}"
            ),
            details={
                "gameId": game_id,
                "round": round_number,
                "reported": reported,
                "found": found,
            },
            recoverable=True,
        )
