"""falgen CLI entrypoints."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from .cli_progress import BatchProgressPrinter, progress_once
from .config import MAX_CONCURRENCY, Settings, load_settings
from .credentials import CredentialsError, resolve_credentials
from .engine import GenerationEngine
from .generation.orchestrator import ConfigurationError
from .models.catalog import CatalogError, ModelCatalog
from .models.descriptors import validate_descriptor
from .models.store import BUNDLED_MODELS_DIR, default_loader, load_json_directory, user_models_dir
from .pricing.estimator import CostBreakdown
from .pricing.guard import RequireConfirmation
from .providers import default_registry
from .providers.base import Transport
from .session import SessionConfig
from .tools import ToolError, ToolRouter, model_summary
from .utils import format_usd, load_dotenv

COST_ESTIMATE_PROMPT = "cost estimate"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="falgen", description="Batch image generation with fal.ai models")
    sub = parser.add_subparsers(dest="command")

    generate = sub.add_parser("generate", help="Generate images for prompts x models")
    _add_task_arguments(generate)
    generate.add_argument("--concurrency", type=int, help=f"Parallel requests (1-{MAX_CONCURRENCY})")
    generate.add_argument("--out", help="Output directory for images and summary.json")
    generate.add_argument("--events", help="Path to events.jsonl")
    generate.add_argument("--yes", action="store_true", help="Confirm spending above the limit")
    generate.add_argument("--dry-run", dest="dry_run", action="store_true", help="Use the offline transport")

    models = sub.add_parser("models", help="List available models")
    models.add_argument("--category")
    models.add_argument("--type", dest="model_type")
    models.add_argument("--max-cost", dest="max_cost", type=float)
    models.add_argument("--json", dest="as_json", action="store_true")

    cost = sub.add_parser("cost", help="Estimate the cost of a batch without running it")
    _add_task_arguments(cost, prompt_required=False)

    validate = sub.add_parser("validate", help="Validate model config JSON files")
    validate.add_argument("paths", nargs="*", help="Files or directories (default: bundled and user models)")

    tool = sub.add_parser("tool", help="Call a tool with JSON arguments and print the JSON result")
    tool.add_argument("name")
    tool.add_argument("--args", dest="tool_args", default="{}", help="JSON object of tool arguments")
    tool.add_argument("--events", help="Path to events.jsonl")
    tool.add_argument("--dry-run", dest="dry_run", action="store_true")

    return parser


def _add_task_arguments(parser: argparse.ArgumentParser, prompt_required: bool = True) -> None:
    parser.add_argument("--model", dest="models", action="append", required=True, help="Model id (repeatable)")
    parser.add_argument("--prompt", dest="prompts", action="append", default=[], help="Prompt (repeatable)")
    parser.add_argument("--prompts-file", dest="prompts_file", help="File with one prompt per line")
    parser.add_argument("--param", dest="params", action="append", default=[], help="Model parameter key=value")
    parser.add_argument("--images-per-model", dest="images_per_model", type=int, default=1)
    parser.set_defaults(prompt_required=prompt_required)


def _parse_params(raw_params: list[str]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for raw in raw_params:
        if "=" not in raw:
            raise ConfigurationError(f"Invalid --param '{raw}', expected key=value")
        key, value = raw.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Invalid --param '{raw}', expected key=value")
        try:
            params[key] = json.loads(value)
        except json.JSONDecodeError:
            params[key] = value
    return params


def _read_prompts(args: argparse.Namespace) -> list[str]:
    prompts = list(args.prompts)
    if args.prompts_file:
        path = Path(args.prompts_file)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read prompts file {path}: {exc}") from exc
        prompts.extend(line for line in lines if line.strip() and not line.lstrip().startswith("#"))
    return prompts


def _load_catalog(settings: Settings) -> ModelCatalog:
    catalog = ModelCatalog(default_loader(override_dir=settings.models_dir))
    catalog.load()
    for warning in catalog.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return catalog


def _build_session(args: argparse.Namespace, catalog: ModelCatalog) -> SessionConfig:
    prompts = _read_prompts(args)
    if not prompts and not args.prompt_required:
        prompts = [COST_ESTIMATE_PROMPT]
    session = SessionConfig().with_models(args.models).with_prompts(prompts)
    session = session.with_iterations(args.images_per_model)
    overrides = _parse_params(args.params)
    for model_id in session.model_ids:
        model = catalog.find_by_id(model_id)
        if model is None:
            print(f"Warning: model '{model_id}' is not in the catalog; parameters are sent unchecked.")
            session = session.with_parameters(model_id, overrides)
            continue
        resolved, warnings = model.resolve_parameters(overrides)
        for warning in warnings:
            print(f"Warning: {warning}")
        session = session.with_parameters(model_id, resolved)
    return session


def _select_transport(settings: Settings, dry_run: bool) -> Transport:
    registry = default_registry(request_timeout=settings.request_timeout, poll_timeout=settings.poll_timeout)
    transport = registry.get("dryrun" if dry_run else "fal")
    if transport is None:
        raise ConfigurationError("No transport available")
    return transport


def _print_estimate(estimate: CostBreakdown) -> None:
    print("Cost estimate:")
    for model_id, line in estimate.per_model.items():
        note = " (fallback price)" if line.estimated else ""
        print(
            f"  {model_id}: {line.image_count} x {format_usd(line.cost_per_image)} = "
            f"{format_usd(line.cost)}{note}"
        )
    print(f"  Total: {format_usd(estimate.total_cost)} for {estimate.image_count} image(s)")


def _confirm(message: str) -> bool:
    print(message)
    if not getattr(sys.stdin, "isatty", lambda: False)():
        print("Re-run with --yes to confirm.")
        return False
    answer = input("Proceed? [y/N] ").strip().lower()
    return answer in {"y", "yes"}


def _default_output_dir(settings: Settings) -> Path:
    return settings.output_dir / datetime.now().strftime("%Y%m%d-%H%M%S")


def _handle_generate(args: argparse.Namespace) -> int:
    settings = load_settings()
    dry_run = bool(args.dry_run or settings.dry_run)
    catalog = _load_catalog(settings)
    session = _build_session(args, catalog)
    concurrency = args.concurrency if args.concurrency is not None else settings.concurrency
    if concurrency > MAX_CONCURRENCY:
        print(f"Concurrency limited to {MAX_CONCURRENCY}.")
        concurrency = MAX_CONCURRENCY
    session = session.with_concurrency(concurrency)
    out_dir = Path(args.out) if args.out else _default_output_dir(settings)
    session = session.with_output_directory(out_dir).with_confirmation(args.yes)
    tasks = session.tasks()
    credentials = resolve_credentials(dry_run=dry_run)

    events_path = Path(args.events) if args.events else out_dir / "events.jsonl"
    engine = GenerationEngine(
        catalog=catalog,
        transport=_select_transport(settings, dry_run),
        events_path=events_path,
        spending_limit=settings.spending_limit,
    )
    estimate = engine.estimate_cost(tasks)
    _print_estimate(estimate)
    decision = engine.check_spending(estimate, session.confirmed)
    if isinstance(decision, RequireConfirmation):
        if not _confirm(decision.message):
            print("Generation cancelled.")
            engine.finish()
            return 1
        session = session.with_confirmation(True)

    start = progress_once(f"Generating {len(tasks)} task(s) via {engine.transport.name}")
    printer = BatchProgressPrinter(start=start)
    report = engine.run_batch(
        tasks,
        credentials,
        concurrency_limit=session.concurrency,
        output_directory=session.output_directory,
        on_progress=printer,
        estimate=estimate,
    )
    printer.finish()
    engine.finish()
    print(f"Succeeded: {report.succeeded}/{report.total} | Failed: {report.failed}")
    saved = report.saved_paths()
    if saved:
        print(f"Saved {len(saved)} image(s) under {session.output_directory}")
    for failure in report.failures():
        print(f"  #{failure.task.sequence_index + 1} {failure.task.model_id}: {failure.reason}")
    return 0 if report.failed == 0 else 1


def _handle_models(args: argparse.Namespace) -> int:
    catalog = _load_catalog(load_settings())
    models = catalog.filter(type=args.model_type, category=args.category, max_cost=args.max_cost)
    if args.as_json:
        print(json.dumps([model_summary(model) for model in models], indent=2))
        return 0
    if not models:
        print("No models match.")
        return 0
    for category, grouped in catalog.by_category().items():
        shown = [model for model in grouped if model in models]
        if not shown:
            continue
        print(f"{category}:")
        for model in shown:
            print(f"  {model.name:<28} {format_usd(model.cost_per_image):>8}/image  {model.id}")
    return 0


def _handle_cost(args: argparse.Namespace) -> int:
    settings = load_settings()
    catalog = _load_catalog(settings)
    tasks = _build_session(args, catalog).tasks()
    engine = GenerationEngine(
        catalog=catalog,
        transport=_select_transport(settings, dry_run=True),
        spending_limit=settings.spending_limit,
    )
    estimate = engine.estimate_cost(tasks)
    _print_estimate(estimate)
    decision = engine.check_spending(estimate)
    if isinstance(decision, RequireConfirmation):
        print(f"Above the {format_usd(decision.threshold)} spending limit: generate will ask for confirmation.")
    return 0


def _handle_validate(args: argparse.Namespace) -> int:
    targets = [Path(raw) for raw in args.paths] or [BUNDLED_MODELS_DIR, user_models_dir()]
    checked = 0
    invalid = 0
    for target in targets:
        if target.is_dir():
            records = load_json_directory(target)
            entries = [(target / record.source, record) for record in records]
        elif target.is_file():
            records = load_json_directory(target.parent)
            entries = [(target, record) for record in records if record.source == target.name]
        else:
            if args.paths:
                print(f"{target}: not found")
                invalid += 1
            continue
        for path, record in entries:
            checked += 1
            if record.data is None:
                invalid += 1
                print(f"{path}: unreadable ({record.error})")
                continue
            result = validate_descriptor(record.data)
            if not result.valid:
                invalid += 1
            print(f"{path}: {'ok' if result.valid else 'invalid'}")
            for error in result.errors:
                print(f"  error: {error}")
            for warning in result.warnings:
                print(f"  warning: {warning}")
    print(f"Checked {checked} config(s), {invalid} invalid.")
    return 1 if invalid else 0


def _handle_tool(args: argparse.Namespace) -> int:
    try:
        arguments = json.loads(args.tool_args)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"--args must be a JSON object: {exc}") from exc
    if not isinstance(arguments, dict):
        raise ConfigurationError("--args must be a JSON object")
    settings = load_settings()
    dry_run = bool(args.dry_run or settings.dry_run)
    engine = GenerationEngine(
        catalog=ModelCatalog(default_loader(override_dir=settings.models_dir)),
        transport=_select_transport(settings, dry_run),
        events_path=Path(args.events) if args.events else None,
        spending_limit=settings.spending_limit,
    )
    router = ToolRouter(
        engine,
        credentials_provider=lambda: resolve_credentials(dry_run=dry_run),
        output_root=settings.output_dir,
    )
    try:
        result = router.call(args.name, arguments)
    except ToolError as exc:
        print(json.dumps({"error": str(exc)}, indent=2))
        return 1
    finally:
        engine.finish()
    print(json.dumps(result, indent=2))
    return 0


def _run_handler(handler: Any, args: argparse.Namespace) -> int:
    try:
        return handler(args)
    except (ConfigurationError, CredentialsError, CatalogError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "generate":
        raise SystemExit(_run_handler(_handle_generate, args))
    if args.command == "models":
        raise SystemExit(_run_handler(_handle_models, args))
    if args.command == "cost":
        raise SystemExit(_run_handler(_handle_cost, args))
    if args.command == "validate":
        raise SystemExit(_run_handler(_handle_validate, args))
    if args.command == "tool":
        raise SystemExit(_run_handler(_handle_tool, args))
    parser.print_help()
    raise SystemExit(1)


if __name__ == "__main__":
    main()
