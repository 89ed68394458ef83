"""Spending ceiling that asks for explicit confirmation."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

from .estimator import CostBreakdown


DEFAULT_SPENDING_LIMIT = Decimal("5.00")


@dataclass(frozen=True)
class Allow:
    estimate: Decimal

    allowed = True


@dataclass(frozen=True)
class RequireConfirmation:
    estimate: Decimal
    threshold: Decimal

    allowed = False

    @property
    def message(self) -> str:
        return (
            f"This operation will cost approximately ${self.estimate:.3f}, which exceeds the "
            f"${self.threshold:.2f} spending limit. Please confirm if you want to proceed."
        )


SpendingDecision = Union[Allow, RequireConfirmation]


class SpendingGuard:
    """Stateless: every batch is checked on its own, confirmed or not."""

    def __init__(self, threshold: Decimal | float | str = DEFAULT_SPENDING_LIMIT) -> None:
        try:
            value = Decimal(str(threshold))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid spending limit: {threshold!r}") from exc
        if value < 0:
            raise ValueError("Spending limit cannot be negative")
        self.threshold = value

    def check(self, estimate: CostBreakdown | Decimal, confirmed: bool = False) -> SpendingDecision:
        total = estimate.total_cost if isinstance(estimate, CostBreakdown) else Decimal(str(estimate))
        if total > self.threshold and not confirmed:
            return RequireConfirmation(estimate=total, threshold=self.threshold)
        return Allow(estimate=total)
