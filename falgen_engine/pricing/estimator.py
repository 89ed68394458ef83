"""Cost estimation utilities."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from ..generation.tasks import GenerationTask
from ..models.catalog import ModelCatalog


# Unknown or unpriced models are charged at this rate rather than as free.
FALLBACK_COST_PER_IMAGE = Decimal("0.05")


@dataclass
class ModelCost:
    image_count: int = 0
    cost: Decimal = Decimal("0")
    cost_per_image: Decimal = Decimal("0")
    model_name: str | None = None
    estimated: bool = False


@dataclass
class CostBreakdown:
    total_cost: Decimal = Decimal("0")
    per_model: dict[str, ModelCost] = field(default_factory=dict)
    currency: str = "USD"

    @property
    def image_count(self) -> int:
        return sum(line.image_count for line in self.per_model.values())

    def as_dict(self) -> dict[str, object]:
        return {
            "total_cost": float(self.total_cost),
            "currency": self.currency,
            "image_count": self.image_count,
            "breakdown": {
                model_id: {
                    "model_name": line.model_name,
                    "image_count": line.image_count,
                    "cost_per_image": float(line.cost_per_image),
                    "cost": float(line.cost),
                    "estimated": line.estimated,
                }
                for model_id, line in self.per_model.items()
            },
        }


class CostEstimator:
    def __init__(self, fallback_cost_per_image: Decimal = FALLBACK_COST_PER_IMAGE) -> None:
        if fallback_cost_per_image <= 0:
            raise ValueError("fallback cost per image must be positive")
        self.fallback_cost_per_image = fallback_cost_per_image

    def unit_cost(self, model_id: str, catalog: ModelCatalog) -> tuple[Decimal, bool, str | None]:
        """(cost per image, is_fallback, model name) for one model id."""

        model = catalog.find_by_id(model_id)
        if model is None or model.cost_per_image <= 0:
            # a zero price usually means "not filled in", not "free"
            return self.fallback_cost_per_image, True, model.name if model else None
        return model.cost_per_image, False, model.name

    def estimate(self, tasks: Iterable[GenerationTask], catalog: ModelCatalog) -> CostBreakdown:
        breakdown = CostBreakdown()
        for task in tasks:
            unit, fallback, name = self.unit_cost(task.model_id, catalog)
            cost = unit * task.image_count
            line = breakdown.per_model.get(task.model_id)
            if line is None:
                line = ModelCost(cost_per_image=unit, model_name=name, estimated=fallback)
                breakdown.per_model[task.model_id] = line
            line.image_count += task.image_count
            line.cost += cost
            breakdown.total_cost += cost
        return breakdown
