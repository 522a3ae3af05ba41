"""
Fixed-point percentage gain.

Gains are integer basis points computed exactly like the ledger does:

    (end - start) * 10000 / start      (integer division, truncating toward zero)

so values cross-check bit-for-bit against ledger-side decisions. A zero
baseline never produces a number; it is UNAVAILABLE (or, in live
projection, UNBOUNDED / TOTAL_LOSS).
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

BASIS_POINTS = 10_000
TOTAL_LOSS_BP = -BASIS_POINTS


class GainKind(Enum):
    VALUE = "value"
    UNBOUNDED = "unbounded"  # zero baseline, positive balance now
    TOTAL_LOSS = "total_loss"  # zero baseline, zero balance now
    UNAVAILABLE = "unavailable"  # no usable baseline


@dataclass(frozen=True)
class Gain:
    """Tagged gain value. Build with the classmethods, not the constructor."""

    kind: GainKind
    basis_points: int = 0

    @classmethod
    def of(cls, basis_points: int) -> "Gain":
        return cls(GainKind.VALUE, basis_points)

    @classmethod
    def unavailable(cls) -> "Gain":
        return cls(GainKind.UNAVAILABLE)

    @classmethod
    def unbounded(cls) -> "Gain":
        return cls(GainKind.UNBOUNDED)

    @classmethod
    def total_loss(cls) -> "Gain":
        return cls(GainKind.TOTAL_LOSS, TOTAL_LOSS_BP)

    @property
    def available(self) -> bool:
        return self.kind is not GainKind.UNAVAILABLE

    @property
    def percent(self) -> Optional[Decimal]:
        """Percentage with two decimals, None where no finite value exists."""
        if self.kind in (GainKind.VALUE, GainKind.TOTAL_LOSS):
            return (Decimal(self.basis_points) / 100).quantize(Decimal("0.01"))
        return None

    def sort_key(self) -> Tuple[int, int]:
        """Descending-sort key: UNBOUNDED > VALUE/TOTAL_LOSS > UNAVAILABLE.

        TOTAL_LOSS ranks exactly like a measured -100.00%.
        """
        if self.kind is GainKind.UNBOUNDED:
            return (2, 0)
        if self.kind is GainKind.UNAVAILABLE:
            return (0, 0)
        return (1, self.basis_points)

    def display(self) -> str:
        if self.kind is GainKind.UNAVAILABLE:
            return "unavailable"
        if self.kind is GainKind.UNBOUNDED:
            return "unbounded"
        pct = self.percent
        return f"+{pct}%" if self.basis_points > 0 else f"{pct}%"

    def to_dict(self) -> Dict[str, Any]:
        pct = self.percent
        return {
            "kind": self.kind.value,
            "basis_points": self.basis_points if pct is not None else None,
            "percent": str(pct) if pct is not None else None,
            "display": self.display(),
        }


def _truncating_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def compute_gain(start: int, end: int) -> Gain:
    """Gain from ``start`` to ``end`` in basis points; UNAVAILABLE for a zero start."""
    if start == 0:
        return Gain.unavailable()
    return Gain.of(_truncating_div((end - start) * BASIS_POINTS, start))


def live_gain(baseline: int, current: int) -> Gain:
    """Gain used when projecting a live round.

    A zero baseline still has to sort: money appearing from nothing is
    UNBOUNDED, nothing at all is TOTAL_LOSS.
    """
    if baseline > 0:
        return compute_gain(baseline, current)
    if current > 0:
        return Gain.unbounded()
    return Gain.total_loss()
