"""Tool dispatcher used by protocol front ends.

Every tool takes a plain JSON-like `arguments` mapping and returns a plain
dict. Spending confirmation is reported as a structured payload rather than
raised, so callers can show it and resubmit with `confirm_spending=true`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Mapping

from .config import DEFAULT_OUTPUT_DIR
from .credentials import Credentials, resolve_credentials
from .engine import GenerationEngine
from .generation.tasks import GenerationResult, GenerationSuccess, GenerationTask
from .models.descriptors import ModelDescriptor
from .pricing.estimator import CostBreakdown
from .pricing.guard import RequireConfirmation
from .utils import serialize


DEFAULT_MODEL = "fal-ai/flux-pro/kontext/text-to-image"
MIN_PROMPT_LENGTH = 3
MAX_PROMPT_LENGTH = 2000
MAX_BATCH_SIZE = 5
SPENDING_CONFIRMATION_REQUIRED = "SPENDING_CONFIRMATION_REQUIRED"


class ToolError(RuntimeError):
    pass


def model_summary(model: ModelDescriptor) -> dict[str, Any]:
    return {
        "id": model.id,
        "name": model.name,
        "type": model.type,
        "category": model.category,
        "description": model.description,
        "cost_per_image": float(model.cost_per_image),
        "max_images": model.max_images_per_call,
        "capabilities": list(model.capabilities),
    }


def model_details(model: ModelDescriptor) -> dict[str, Any]:
    details = model_summary(model)
    details["provider"] = model.provider
    details["default_parameters"] = serialize(model.default_parameters)
    details["parameters"] = {
        spec.name: {
            key: value
            for key, value in {
                "type": spec.kind.value,
                "min": spec.minimum,
                "max": spec.maximum,
                "options": list(spec.allowed_values) or None,
                "default": spec.default,
                "description": spec.description or None,
            }.items()
            if value is not None
        }
        for spec in model.supported_parameters
    }
    details["source"] = model.source
    return details


def result_payload(result: GenerationResult) -> dict[str, Any]:
    task = result.task
    payload: dict[str, Any] = {
        "sequence_index": task.sequence_index,
        "model": task.model_id,
        "prompt": task.prompt,
        "success": result.ok,
        "duration_ms": result.duration_ms,
    }
    if isinstance(result, GenerationSuccess):
        payload["images"] = list(result.image_urls)
        payload["saved_paths"] = list(result.saved_paths)
        if result.persistence_errors:
            payload["persistence_errors"] = list(result.persistence_errors)
        if result.request_id:
            payload["request_id"] = result.request_id
    else:
        payload["images"] = []
        payload["error"] = result.reason
    return payload


def confirmation_payload(decision: RequireConfirmation, task_count: int) -> dict[str, Any]:
    return {
        "type": SPENDING_CONFIRMATION_REQUIRED,
        "estimated_cost": float(decision.estimate),
        "spending_limit": float(decision.threshold),
        "batch_tasks": task_count,
        "message": decision.message,
        "confirmation_needed": True,
    }


class ToolRouter:
    def __init__(
        self,
        engine: GenerationEngine,
        *,
        credentials_provider: Callable[[], Credentials] | None = None,
        output_root: Path = DEFAULT_OUTPUT_DIR,
    ) -> None:
        self.engine = engine
        self._credentials_provider = credentials_provider or resolve_credentials
        self.output_root = Path(output_root)
        self._handlers: dict[str, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
            "generate_image": self._generate_image,
            "batch_generate": self._batch_generate,
            "calculate_cost": self._calculate_cost,
            "list_models": self._list_models,
            "get_model_info": self._get_model_info,
            "get_model_recommendations": self._get_model_recommendations,
        }

    def list(self) -> list[str]:
        return sorted(self._handlers.keys())

    def call(self, name: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            raise ToolError(f"Unknown tool: {name}")
        return handler(dict(arguments or {}))

    def _generate_image(self, args: Mapping[str, Any]) -> dict[str, Any]:
        prompt = _validate_prompt(args.get("prompt"))
        model_id = str(args.get("model") or DEFAULT_MODEL).strip()
        parameters, warnings = self._resolve_parameters(model_id, args.get("parameters"))
        task = GenerationTask(model_id=model_id, prompt=prompt, parameters=parameters)

        estimate = self.engine.estimate_cost([task])
        decision = self.engine.check_spending(estimate, bool(args.get("confirm_spending", False)))
        if isinstance(decision, RequireConfirmation):
            return confirmation_payload(decision, 1)

        output_directory = None
        if args.get("save_to_disk"):
            output_directory = self._output_directory(args.get("output_directory"))
        report = self.engine.run_batch(
            [task],
            self._credentials_provider(),
            output_directory=output_directory,
            estimate=estimate,
        )
        payload = result_payload(report.results[0])
        payload["parameters"] = serialize(task.parameters)
        payload["estimated_cost"] = float(estimate.total_cost)
        payload["warnings"] = warnings
        if output_directory is not None:
            payload["output_directory"] = str(output_directory)
        return payload

    def _batch_generate(self, args: Mapping[str, Any]) -> dict[str, Any]:
        raw_tasks = args.get("tasks")
        if not isinstance(raw_tasks, list) or not raw_tasks:
            raise ToolError("tasks must be a non-empty list")
        tasks: list[GenerationTask] = []
        warnings: list[str] = []
        for index, raw in enumerate(raw_tasks):
            if not isinstance(raw, Mapping):
                raise ToolError(f"Task {index + 1} must be an object")
            model_id = str(raw.get("model") or "").strip()
            if not model_id:
                raise ToolError(f"Task {index + 1} is missing a model")
            prompt = _validate_prompt(raw.get("prompt"))
            parameters, task_warnings = self._resolve_parameters(model_id, raw.get("parameters"))
            warnings.extend(f"Task {index + 1}: {message}" for message in task_warnings)
            tasks.append(GenerationTask(model_id=model_id, prompt=prompt, parameters=parameters, sequence_index=index))

        estimate = self.engine.estimate_cost(tasks)
        confirmed = bool(args.get("confirm_spending", False))
        decision = self.engine.check_spending(estimate, confirmed)
        if isinstance(decision, RequireConfirmation):
            return confirmation_payload(decision, len(tasks))

        batch_size = min(_int_argument(args.get("batch_size", 1), "batch_size"), MAX_BATCH_SIZE)
        output_directory = self._output_directory(args.get("output_directory"))
        report = self.engine.run_batch(
            tasks,
            self._credentials_provider(),
            concurrency_limit=batch_size,
            output_directory=output_directory,
            estimate=estimate,
        )
        return {
            "success": report.failed == 0,
            "total_tasks": report.total,
            "succeeded": report.succeeded,
            "failed": report.failed,
            "estimated_cost": float(estimate.total_cost),
            "spending_confirmed": confirmed,
            "results": [result_payload(result) for result in report.results],
            "warnings": warnings,
            "metadata": {
                "batch_size": batch_size,
                "output_directory": str(output_directory),
                "total_duration_ms": report.total_duration_ms,
            },
        }

    def _calculate_cost(self, args: Mapping[str, Any]) -> dict[str, Any]:
        raw_tasks = args.get("tasks")
        if not isinstance(raw_tasks, list):
            raise ToolError("tasks must be a list")
        tasks = []
        for index, raw in enumerate(raw_tasks):
            if not isinstance(raw, Mapping) or not raw.get("model"):
                raise ToolError(f"Task {index + 1} is missing a model")
            count = _int_argument(raw.get("image_count", 1), "image_count")
            tasks.append(
                GenerationTask(
                    model_id=str(raw["model"]).strip(),
                    prompt="",
                    parameters={"num_images": count},
                    sequence_index=index,
                )
            )
        estimate = self.engine.estimate_cost(tasks)
        return _cost_payload(estimate, self.engine.check_spending(estimate, False))

    def _list_models(self, args: Mapping[str, Any]) -> dict[str, Any]:
        max_cost = args.get("max_cost")
        models = self.engine.catalog.filter(
            type=args.get("type"),
            provider=args.get("provider"),
            category=args.get("category"),
            max_cost=max_cost,
        )
        quality = args.get("quality")
        if quality in {"high", "ultra"}:
            models.sort(key=lambda model: model.cost_per_image, reverse=True)
        elif quality == "fast":
            models.sort(key=lambda model: model.cost_per_image)
        costs = [model.cost_per_image for model in models]
        average = sum(costs, Decimal("0")) / len(costs) if costs else Decimal("0")
        return {
            "models": [model_summary(model) for model in models],
            "metadata": {
                "total_models": len(models),
                "filters_applied": {
                    "type": args.get("type"),
                    "provider": args.get("provider"),
                    "category": args.get("category"),
                    "max_cost": max_cost,
                    "quality": quality,
                },
                "average_cost": round(float(average), 4),
                "catalog_warnings": list(self.engine.catalog.warnings),
            },
        }

    def _get_model_info(self, args: Mapping[str, Any]) -> dict[str, Any]:
        model_id = str(args.get("model_id") or "").strip()
        model = self.engine.catalog.find_by_id(model_id)
        if model is None:
            raise ToolError(f"Model not found: {model_id}")
        return model_details(model)

    def _get_model_recommendations(self, args: Mapping[str, Any]) -> dict[str, Any]:
        budget = args.get("budget")
        scored = self.engine.catalog.recommend(
            budget=budget,
            type=args.get("type"),
            quality=str(args.get("quality") or "high"),
            speed=str(args.get("speed") or "medium"),
        )
        return {
            "recommendations": [
                {**model_summary(model), "score": round(score, 3)} for model, score in scored
            ],
            "criteria": {
                "budget": budget,
                "type": args.get("type"),
                "quality": args.get("quality") or "high",
                "speed": args.get("speed") or "medium",
            },
        }

    def _resolve_parameters(self, model_id: str, raw: Any) -> tuple[dict[str, Any], list[str]]:
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ToolError("parameters must be an object")
        model = self.engine.catalog.find_by_id(model_id)
        if model is None:
            return dict(raw), [f"Model '{model_id}' is not in the catalog; parameters sent unchecked."]
        return model.resolve_parameters(raw)

    def _output_directory(self, raw: Any) -> Path:
        if raw:
            return Path(str(raw)).expanduser()
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
        return self.output_root / stamp


def _validate_prompt(raw: Any) -> str:
    prompt = str(raw or "").strip()
    if len(prompt) < MIN_PROMPT_LENGTH:
        raise ToolError(f"Prompt must be at least {MIN_PROMPT_LENGTH} characters long")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ToolError(f"Prompt must be less than {MAX_PROMPT_LENGTH} characters")
    return prompt


def _int_argument(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise ToolError(f"{name} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ToolError(f"{name} must be an integer") from exc
    if value < 1:
        raise ToolError(f"{name} must be >= 1")
    return value


def _cost_payload(estimate: CostBreakdown, decision: Any) -> dict[str, Any]:
    payload = estimate.as_dict()
    payload["requires_confirmation"] = not decision.allowed
    if isinstance(decision, RequireConfirmation):
        payload["spending_limit"] = float(decision.threshold)
        payload["message"] = decision.message
    return payload
