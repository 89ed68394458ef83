"""Model catalog for falgen.

The catalog is loaded once per process and treated as read-only afterwards, so
it is safe to share between concurrently running generation tasks.
"""

from __future__ import annotations

from collections import Counter
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from .descriptors import ModelDescriptor, ValidationResult, descriptor_from_raw, validate_descriptor
from .store import Loader, default_loader


class CatalogError(RuntimeError):
    """The model source as a whole could not be read."""


class ModelCatalog:
    def __init__(self, loader: Loader | None = None) -> None:
        self._loader = loader or default_loader()
        self._models: dict[str, ModelDescriptor] = {}
        self.warnings: list[str] = []
        self.loaded = False

    @classmethod
    def from_descriptors(cls, descriptors: Iterable[ModelDescriptor]) -> "ModelCatalog":
        catalog = cls(loader=lambda: [])
        for descriptor in sorted(descriptors, key=lambda item: item.name):
            catalog._models[descriptor.id] = descriptor
        catalog.loaded = True
        return catalog

    def load(self) -> tuple[ModelDescriptor, ...]:
        try:
            records = self._loader()
        except OSError as exc:
            raise CatalogError(f"Failed to load models: {exc}") from exc

        models: dict[str, ModelDescriptor] = {}
        warnings: list[str] = []
        for record in records:
            if record.data is None:
                warnings.append(f"Failed to load model config {record.source}: {record.error}")
                continue
            result = validate_descriptor(record.data)
            if not result.valid:
                warnings.append(f"Skipping model config {record.source}: {'; '.join(result.errors)}")
                continue
            for message in result.warnings:
                warnings.append(f"{record.source}: {message}")
            try:
                descriptor = descriptor_from_raw(record.data, source=record.source)
            except (TypeError, ValueError, ArithmeticError) as exc:
                warnings.append(f"Skipping model config {record.source}: {exc}")
                continue
            if descriptor.id in models:
                warnings.append(
                    f"Skipping model config {record.source}: duplicate id '{descriptor.id}' "
                    f"(already loaded from {models[descriptor.id].source})"
                )
                continue
            models[descriptor.id] = descriptor

        self._models = {model.id: model for model in sorted(models.values(), key=lambda item: item.name)}
        self.warnings = warnings
        self.loaded = True
        return tuple(self._models.values())

    def ensure_loaded(self) -> "ModelCatalog":
        if not self.loaded:
            self.load()
        return self

    @staticmethod
    def validate(raw: Mapping[str, Any]) -> ValidationResult:
        return validate_descriptor(raw)

    def find_by_id(self, model_id: str) -> ModelDescriptor | None:
        return self._models.get(model_id)

    def list(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    def ids(self) -> list[str]:
        return list(self._models.keys())

    def filter(
        self,
        *,
        type: str | None = None,
        provider: str | None = None,
        category: str | None = None,
        max_cost: Decimal | float | None = None,
        min_cost: Decimal | float | None = None,
        capabilities: Sequence[str] | str | None = None,
    ) -> list[ModelDescriptor]:
        if isinstance(capabilities, str):
            capabilities = [capabilities]
        out: list[ModelDescriptor] = []
        for model in self._models.values():
            if type and model.type != type:
                continue
            if provider and provider not in model.id:
                continue
            if category and model.category != category:
                continue
            if max_cost is not None and model.cost_per_image > Decimal(str(max_cost)):
                continue
            if min_cost is not None and model.cost_per_image < Decimal(str(min_cost)):
                continue
            if capabilities:
                lowered = [cap.lower() for cap in model.capabilities]
                if not all(any(req.lower() in cap for cap in lowered) for req in capabilities):
                    continue
            out.append(model)
        return out

    def by_category(self) -> dict[str, list[ModelDescriptor]]:
        grouped: dict[str, list[ModelDescriptor]] = {}
        for model in self._models.values():
            grouped.setdefault(model.category, []).append(model)
        return grouped

    def shared_parameters(self, model_ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        """Parameters every listed model accepts, with allowed values intersected."""

        models = [model for model in (self.find_by_id(mid) for mid in model_ids) if model is not None]
        if not models:
            return {}
        shared: dict[str, dict[str, Any]] = {}
        for spec in models[0].supported_parameters:
            others = [model.parameter(spec.name) for model in models[1:]]
            if any(other is None for other in others):
                continue
            allowed = list(spec.allowed_values)
            for other in others:
                if allowed and other is not None and other.allowed_values:
                    allowed = [value for value in allowed if value in other.allowed_values]
            if spec.allowed_values and not allowed:
                continue
            entry: dict[str, Any] = {"type": spec.kind.value}
            if allowed:
                entry["options"] = allowed
                entry["default"] = spec.default if spec.default in allowed else allowed[0]
            elif spec.default is not None:
                entry["default"] = spec.default
            shared[spec.name] = entry
        max_images = min(4, min(model.max_images_per_call for model in models))
        shared["num_images"] = {"type": "integer", "min": 1, "max": max_images, "default": 1}
        return shared

    def stats(self) -> dict[str, Any]:
        models = list(self._models.values())
        costs = [model.cost_per_image for model in models if model.cost_per_image > 0]
        capabilities: list[str] = []
        for model in models:
            for cap in model.capabilities:
                if cap not in capabilities:
                    capabilities.append(cap)
        return {
            "total": len(models),
            "by_type": dict(Counter(model.type for model in models)),
            "by_provider": dict(Counter(model.provider for model in models)),
            "cost_range": {
                "min": min(costs) if costs else Decimal("0"),
                "max": max(costs) if costs else Decimal("0"),
                # free models count toward the divisor but not the sum
                "average": (sum(costs, Decimal("0")) / len(models)) if models else Decimal("0"),
            },
            "capabilities": capabilities,
        }

    def recommend(
        self,
        *,
        budget: Decimal | float | None = None,
        type: str | None = None,
        quality: str = "high",
        speed: str = "medium",
        limit: int = 3,
    ) -> list[tuple[ModelDescriptor, float]]:
        scored: list[tuple[ModelDescriptor, float]] = []
        for model in self._models.values():
            scored.append((model, _recommendation_score(model, budget, type, quality, speed)))
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[: max(0, limit)]


def _recommendation_score(
    model: ModelDescriptor,
    budget: Decimal | float | None,
    type: str | None,
    quality: str,
    speed: str,
) -> float:
    score = 0.0
    if type and model.type == type:
        score += 10
    if budget is not None and model.cost_per_image > 0:
        limit = Decimal(str(budget))
        if model.cost_per_image <= limit:
            # cheaper options inside the budget rank higher
            score += 5 + float(limit - model.cost_per_image) * 10
        else:
            score -= 20
    model_id = model.id.lower()
    if quality == "high" and "ultra" in model_id:
        score += 8
    elif quality == "high" and "pro" in model_id:
        score += 6
    elif quality == "medium" and "dev" in model_id:
        score += 5
    if speed == "fast" and ("turbo" in model_id or "schnell" in model_id or "fast" in model.capabilities):
        score += 5
    return score
