"""Model descriptors and parameter schemas."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping


class ParamKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"

    @property
    def numeric(self) -> bool:
        return self in (ParamKind.INTEGER, ParamKind.FLOAT)


_KIND_ALIASES = {
    "string": ParamKind.STRING,
    "str": ParamKind.STRING,
    "enum": ParamKind.STRING,
    "integer": ParamKind.INTEGER,
    "int": ParamKind.INTEGER,
    "float": ParamKind.FLOAT,
    "number": ParamKind.FLOAT,
    "boolean": ParamKind.BOOLEAN,
    "bool": ParamKind.BOOLEAN,
}


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    kind: ParamKind = ParamKind.STRING
    minimum: float | None = None
    maximum: float | None = None
    allowed_values: tuple[str, ...] = ()
    default: Any = None
    description: str | None = None

    def coerce(self, value: Any, warnings: list[str]) -> Any:
        """Coerce `value` into this parameter's kind, clamping numeric bounds.

        Returns None (and records a warning) when the value cannot be used.
        """

        if self.kind is ParamKind.BOOLEAN:
            normalized = _coerce_bool(value)
            if normalized is None:
                _append_warning(warnings, f"Parameter '{self.name}' value '{value}' is not a boolean; ignoring.")
            return normalized
        if self.kind.numeric:
            try:
                number: float | int = float(value)
            except (TypeError, ValueError):
                number = math.nan
            if not math.isfinite(number):
                _append_warning(warnings, f"Parameter '{self.name}' value '{value}' is not numeric; ignoring.")
                return None
            if self.kind is ParamKind.INTEGER:
                number = int(round(number))
            clamped = number
            if self.minimum is not None and clamped < self.minimum:
                clamped = self.minimum
            if self.maximum is not None and clamped > self.maximum:
                clamped = self.maximum
            if self.kind is ParamKind.INTEGER:
                clamped = int(clamped)
            if clamped != number:
                _append_warning(warnings, f"Parameter '{self.name}' clamped to {clamped:g}.")
            return clamped
        text = str(value)
        if self.allowed_values and text not in self.allowed_values:
            _append_warning(
                warnings,
                f"Parameter '{self.name}' value '{text}' not in {list(self.allowed_values)}; ignoring.",
            )
            return None
        return text


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    cost_per_image: Decimal
    max_images_per_call: int = 1
    supported_parameters: tuple[ParameterSpec, ...] = ()
    type: str = "image"
    category: str = "text-to-image"
    description: str = ""
    capabilities: tuple[str, ...] = ()
    default_parameters: Mapping[str, Any] = field(default_factory=dict)
    source: str | None = None

    @property
    def provider(self) -> str:
        return self.id.split("/", 1)[0]

    def parameter(self, name: str) -> ParameterSpec | None:
        for spec in self.supported_parameters:
            if spec.name == name:
                return spec
        return None

    def resolve_parameters(self, overrides: Mapping[str, Any] | None = None) -> tuple[dict[str, Any], list[str]]:
        """Merge defaults with `overrides`, dropping or clamping what the model rejects."""

        warnings: list[str] = []
        resolved: dict[str, Any] = {}
        for spec in self.supported_parameters:
            if spec.default is not None:
                resolved[spec.name] = spec.default
        for key, value in self.default_parameters.items():
            resolved[str(key)] = value
        for raw_key, value in (overrides or {}).items():
            key = str(raw_key).strip()
            if not key or value is None:
                continue
            spec = self.parameter(key)
            if spec is None:
                _append_warning(warnings, f"Model '{self.id}' ignored unsupported parameter '{key}'.")
                continue
            coerced = spec.coerce(value, warnings)
            if coerced is not None:
                resolved[key] = coerced
        count = resolved.get("num_images")
        if count is not None:
            try:
                capped = max(1, min(int(count), self.max_images_per_call))
            except (TypeError, ValueError):
                capped = 1
            if capped != count:
                _append_warning(warnings, f"num_images limited to {capped} for '{self.id}'.")
            resolved["num_images"] = capped
        return resolved, warnings


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str]
    warnings: list[str]


_REQUIRED_FIELDS = ("id", "name", "type", "costPerImage")


def validate_descriptor(raw: Mapping[str, Any]) -> ValidationResult:
    errors: list[str] = []
    warnings: list[str] = []
    if not isinstance(raw, Mapping):
        return ValidationResult(False, ["Model config must be a JSON object"], [])

    for name in _REQUIRED_FIELDS:
        value = raw.get(name)
        if value is None or value == "":
            errors.append(f"Missing required field: {name}")

    model_id = raw.get("id")
    if isinstance(model_id, str) and model_id and "/" not in model_id:
        warnings.append('Model ID should follow "provider/model-name" format')

    cost = raw.get("costPerImage")
    if cost is not None:
        if isinstance(cost, bool) or not isinstance(cost, (int, float, str)):
            errors.append("costPerImage must be a number")
        else:
            try:
                if Decimal(str(cost)) < 0:
                    errors.append("costPerImage cannot be negative")
            except InvalidOperation:
                errors.append("costPerImage must be a number")

    max_images = raw.get("maxImages")
    if max_images is not None:
        if isinstance(max_images, bool) or not isinstance(max_images, int) or max_images < 1:
            errors.append("maxImages must be an integer >= 1")

    capabilities = raw.get("capabilities")
    if capabilities is not None and not isinstance(capabilities, list):
        errors.append("capabilities must be a list")

    defaults = raw.get("defaultParams")
    if defaults is not None and not isinstance(defaults, Mapping):
        errors.append("defaultParams must be an object")

    params = raw.get("parameters")
    if params is not None and not isinstance(params, Mapping):
        errors.append("parameters must be an object")
    elif isinstance(params, Mapping):
        for name, param in params.items():
            if not isinstance(param, Mapping):
                errors.append(f"Parameter {name} must be an object")
                continue
            kind = param.get("type")
            if not kind:
                warnings.append(f"Parameter {name} is missing type definition")
            elif str(kind).lower() not in _KIND_ALIASES:
                warnings.append(f"Parameter {name} has unknown type '{kind}'; treating as string")
            for key in ("options", "enum"):
                if param.get(key) is not None and not isinstance(param.get(key), list):
                    errors.append(f"Parameter {name}: {key} must be a list")
            lo, hi = param.get("min"), param.get("max")
            if _is_number(lo) and _is_number(hi) and lo >= hi:
                errors.append(f"Parameter {name}: min value must be less than max value")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def descriptor_from_raw(raw: Mapping[str, Any], source: str | None = None) -> ModelDescriptor:
    """Build a descriptor from a record that already passed `validate_descriptor`."""

    params = raw.get("parameters") or {}
    specs = tuple(_parameter_from_raw(str(name), spec) for name, spec in params.items())
    return ModelDescriptor(
        id=str(raw["id"]),
        name=str(raw["name"]),
        cost_per_image=Decimal(str(raw["costPerImage"])),
        max_images_per_call=int(raw.get("maxImages") or 1),
        supported_parameters=specs,
        type=str(raw.get("type") or "image"),
        category=str(raw.get("category") or "text-to-image"),
        description=str(raw.get("description") or ""),
        capabilities=tuple(str(cap) for cap in raw.get("capabilities") or ()),
        default_parameters=dict(raw.get("defaultParams") or {}),
        source=source,
    )


def _parameter_from_raw(name: str, raw: Mapping[str, Any]) -> ParameterSpec:
    kind = _KIND_ALIASES.get(str(raw.get("type") or "string").lower(), ParamKind.STRING)
    options = raw.get("options") or raw.get("enum") or ()
    return ParameterSpec(
        name=name,
        kind=kind,
        minimum=raw.get("min") if _is_number(raw.get("min")) else None,
        maximum=raw.get("max") if _is_number(raw.get("max")) else None,
        allowed_values=tuple(str(option) for option in options),
        default=raw.get("default"),
        description=raw.get("description"),
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return None


def _append_warning(warnings: list[str], message: str) -> None:
    if message in warnings:
        return
    warnings.append(message)
