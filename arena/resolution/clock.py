"""Round timing: has the current round's timer lapsed without finalization?"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from arena.ledger.models import GameInfo, RoundInfo


@dataclass(frozen=True)
class RoundClock:
    round_number: int
    end_time: int
    time_remaining: int
    should_have_ended: bool

    @classmethod
    def from_round(
        cls,
        game: GameInfo,
        round_info: Optional[RoundInfo],
        now: Optional[int] = None,
    ) -> "RoundClock":
        """
        Build the clock for the game's current round.

        Args:
            game: Game record
            round_info: Current round record, None if it could not be read
            now: Unix seconds (defaults to wall clock)
        """
        if now is None:
            now = int(time.time())

        end_time = round_info.end_time if round_info is not None else 0
        if end_time <= 0 and game.start_time > 0:
            # the ledger fills endTime lazily; round 1 ends start + duration
            end_time = game.start_time + game.round_duration

        remaining = max(0, end_time - now) if end_time > 0 else 0
        round_finalized = round_info is not None and round_info.finalized

        should_have_ended = (
            end_time > 0
            and remaining <= 0
            and game.current_round > 0
            and not game.finished
            and not round_finalized
        )

        return cls(
            round_number=game.current_round,
            end_time=end_time,
            time_remaining=remaining,
            should_have_ended=should_have_ended,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round_number,
            "end_time": self.end_time,
            "time_remaining": self.time_remaining,
            "should_have_ended": self.should_have_ended,
        }
