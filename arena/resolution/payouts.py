"""
Payout Record Finder.

Locates the ledger's own payout records for a finalized game (Tier 1 of
placement resolution).

Lookup order:
1. Known finalize transaction (argument or ``finalize_tx_refs`` setting):
   read only the records that transaction emitted.
2. Bounded event search, newest blocks first, in windows. A host that caps
   the query span gets the same span again at half the window.

Failure here is never fatal: the resolver falls back to computed placements.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from arena.config import Settings
from arena.ledger.models import PayoutRecord
from arena.ledger.reader import LedgerReader
from arena.logging_config import get_logger
from arena.utils.errors import BlockRangeLimitError, LedgerError

logger = get_logger(__name__)

PAID_PLACES = (1, 2, 3)


@dataclass(frozen=True)
class SearchLimits:
    window: int = 10_000
    min_window: int = 500
    max_blocks: int = 200_000

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchLimits":
        return cls(
            window=settings.payout_search_window,
            min_window=settings.payout_search_min_window,
            max_blocks=settings.payout_search_max_blocks,
        )


def normalize_records(records: Iterable[PayoutRecord]) -> Tuple[PayoutRecord, ...]:
    """Paid places only, one record per place, ordered by place."""
    by_place: Dict[int, PayoutRecord] = {}
    for record in records:
        if record.place not in PAID_PLACES or not record.winner:
            continue
        # a re-delivered event keeps the earliest copy
        current = by_place.get(record.place)
        if current is None or record.block_number < current.block_number:
            by_place[record.place] = record
    return tuple(by_place[p] for p in sorted(by_place))


class PayoutRecordFinder:
    """Finds payout records; returns ``()`` when none can be found."""

    def __init__(
        self,
        ledger: LedgerReader,
        limits: Optional[SearchLimits] = None,
        known_tx_refs: Optional[Mapping[int, str]] = None,
    ):
        self.ledger = ledger
        self.limits = limits or SearchLimits()
        self._known_tx_refs = dict(known_tx_refs or {})

    @classmethod
    def from_settings(cls, ledger: LedgerReader, settings: Settings) -> "PayoutRecordFinder":
        return cls(
            ledger,
            limits=SearchLimits.from_settings(settings),
            known_tx_refs=settings.finalize_tx_refs,
        )

    async def find(
        self, game_id: int, tx_ref: Optional[str] = None
    ) -> Tuple[PayoutRecord, ...]:
        """
        Payout records for ``game_id``.

        Args:
            game_id: Finalized game
            tx_ref: Finalize transaction, if the caller knows it

        Returns:
            Records sorted by place, or () when unavailable
        """
        tx_ref = tx_ref or self._known_tx_refs.get(game_id)

        if tx_ref:
            try:
                records = normalize_records(
                    await self.ledger.get_payout_records(game_id, tx_ref=tx_ref)
                )
            except LedgerError as e:
                logger.warning(
                    "payout_records_unavailable",
                    game_id=game_id,
                    tx_ref=tx_ref,
                    error=e.code,
                )
                records = ()
            if records:
                # records read by transaction carry that transaction
                return tuple(r if r.tx_ref else replace(r, tx_ref=tx_ref) for r in records)

        try:
            return await self._search(game_id)
        except LedgerError as e:
            logger.warning(
                "payout_records_unavailable",
                game_id=game_id,
                error=e.code,
                details=e.details,
            )
            return ()

    async def _search(self, game_id: int) -> Tuple[PayoutRecord, ...]:
        latest = await self.ledger.get_latest_block()
        floor = max(0, latest - self.limits.max_blocks + 1)
        window = self.limits.window
        to_block = latest

        while to_block >= floor:
            from_block = max(floor, to_block - window + 1)
            try:
                found: List[PayoutRecord] = await self.ledger.get_payout_records(
                    game_id, from_block=from_block, to_block=to_block
                )
            except BlockRangeLimitError:
                if window <= self.limits.min_window:
                    raise
                window = max(self.limits.min_window, window // 2)
                logger.info(
                    "payout_search_window_halved",
                    game_id=game_id,
                    window=window,
                    to_block=to_block,
                )
                continue

            records = normalize_records(found)
            if records:
                logger.debug(
                    "payout_records_found",
                    game_id=game_id,
                    from_block=from_block,
                    to_block=to_block,
                    places=[r.place for r in records],
                )
                return records

            to_block = from_block - 1

        logger.info("payout_records_not_found", game_id=game_id, searched_from=floor, latest=latest)
        return ()
