from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from falgen_engine.credentials import resolve_credentials
from falgen_engine.engine import GenerationEngine
from falgen_engine.models.catalog import ModelCatalog
from falgen_engine.models.descriptors import ModelDescriptor, ParamKind, ParameterSpec
from falgen_engine.providers.dryrun import DryRunTransport
from falgen_engine.tools import SPENDING_CONFIRMATION_REQUIRED, ToolError, ToolRouter


def _router(tmp_path: Path) -> ToolRouter:
    catalog = ModelCatalog.from_descriptors(
        [
            ModelDescriptor(
                id="fal-ai/flux/dev",
                name="Dev",
                cost_per_image=Decimal("0.025"),
                max_images_per_call=4,
                supported_parameters=(
                    ParameterSpec("num_images", ParamKind.INTEGER, 1, 4, default=1),
                    ParameterSpec("aspect_ratio", ParamKind.STRING, allowed_values=("1:1", "16:9"), default="1:1"),
                ),
            ),
            ModelDescriptor(
                id="fal-ai/flux-pro/v1.1-ultra",
                name="Ultra",
                cost_per_image=Decimal("2.00"),
                max_images_per_call=4,
                supported_parameters=(ParameterSpec("num_images", ParamKind.INTEGER, 1, 4, default=1),),
            ),
        ]
    )
    engine = GenerationEngine(catalog=catalog, transport=DryRunTransport())
    return ToolRouter(
        engine,
        credentials_provider=lambda: resolve_credentials(dry_run=True),
        output_root=tmp_path / "generated",
    )


def test_router_lists_tools(tmp_path: Path) -> None:
    assert _router(tmp_path).list() == [
        "batch_generate",
        "calculate_cost",
        "generate_image",
        "get_model_info",
        "get_model_recommendations",
        "list_models",
    ]


def test_unknown_tool_raises(tmp_path: Path) -> None:
    with pytest.raises(ToolError, match="Unknown tool"):
        _router(tmp_path).call("optimize_prompt", {"prompt": "x"})


def test_generate_image_returns_urls(tmp_path: Path) -> None:
    result = _router(tmp_path).call(
        "generate_image",
        {"prompt": "a quiet harbour", "model": "fal-ai/flux/dev", "parameters": {"num_images": 2, "bogus": 1}},
    )
    assert result["success"] is True
    assert len(result["images"]) == 2
    assert result["saved_paths"] == []
    assert result["parameters"]["aspect_ratio"] == "1:1"
    assert "bogus" not in result["parameters"]
    assert any("bogus" in warning for warning in result["warnings"])
    assert result["estimated_cost"] == 0.05


def test_generate_image_can_save_to_disk(tmp_path: Path) -> None:
    out = tmp_path / "mine"
    result = _router(tmp_path).call(
        "generate_image",
        {"prompt": "a quiet harbour", "model": "fal-ai/flux/dev", "save_to_disk": True, "output_directory": str(out)},
    )
    assert result["output_directory"] == str(out)
    assert len(result["saved_paths"]) == 1
    assert Path(result["saved_paths"][0]).exists()
    assert (out / "summary.json").exists()


def test_prompt_length_is_validated(tmp_path: Path) -> None:
    router = _router(tmp_path)
    with pytest.raises(ToolError, match="at least 3"):
        router.call("generate_image", {"prompt": "hi"})
    with pytest.raises(ToolError, match="less than 2000"):
        router.call("generate_image", {"prompt": "x" * 2001})


def test_confirmation_round_trip(tmp_path: Path) -> None:
    router = _router(tmp_path)
    tasks = [
        {"prompt": f"scene {i}", "model": "fal-ai/flux-pro/v1.1-ultra", "parameters": {"num_images": 1}}
        for i in range(3)
    ]
    first = router.call("batch_generate", {"tasks": tasks, "output_directory": str(tmp_path / "out")})
    assert first["type"] == SPENDING_CONFIRMATION_REQUIRED
    assert first["estimated_cost"] == 6.0
    assert first["spending_limit"] == 5.0
    assert first["batch_tasks"] == 3
    assert first["confirmation_needed"] is True
    assert not (tmp_path / "out").exists()

    second = router.call(
        "batch_generate",
        {"tasks": tasks, "output_directory": str(tmp_path / "out"), "confirm_spending": True, "batch_size": 2},
    )
    assert second["success"] is True
    assert second["spending_confirmed"] is True
    assert second["total_tasks"] == 3
    assert [result["prompt"] for result in second["results"]] == ["scene 0", "scene 1", "scene 2"]
    assert all(len(result["saved_paths"]) == 1 for result in second["results"])


def test_batch_generate_default_output_directory(tmp_path: Path) -> None:
    result = _router(tmp_path).call(
        "batch_generate",
        {"tasks": [{"prompt": "one boat", "model": "fal-ai/flux/dev"}]},
    )
    output_directory = Path(result["metadata"]["output_directory"])
    assert output_directory.parent == tmp_path / "generated"
    assert (output_directory / "summary.json").exists()


def test_batch_generate_validates_tasks(tmp_path: Path) -> None:
    router = _router(tmp_path)
    with pytest.raises(ToolError):
        router.call("batch_generate", {"tasks": []})
    with pytest.raises(ToolError, match="missing a model"):
        router.call("batch_generate", {"tasks": [{"prompt": "a boat"}]})


def test_calculate_cost_includes_unknown_models(tmp_path: Path) -> None:
    result = _router(tmp_path).call(
        "calculate_cost",
        {"tasks": [{"model": "fal-ai/flux/dev", "image_count": 4}, {"model": "someone/else"}]},
    )
    assert result["total_cost"] == pytest.approx(0.15)
    assert result["breakdown"]["someone/else"]["estimated"] is True
    assert result["requires_confirmation"] is False


def test_list_models_and_info(tmp_path: Path) -> None:
    router = _router(tmp_path)
    listed = router.call("list_models", {"max_cost": 0.1})
    assert [model["id"] for model in listed["models"]] == ["fal-ai/flux/dev"]
    assert listed["metadata"]["total_models"] == 1

    info = router.call("get_model_info", {"model_id": "fal-ai/flux/dev"})
    assert info["provider"] == "fal-ai"
    assert info["parameters"]["aspect_ratio"]["options"] == ["1:1", "16:9"]
    with pytest.raises(ToolError, match="Model not found"):
        router.call("get_model_info", {"model_id": "nope"})


def test_recommendations(tmp_path: Path) -> None:
    result = _router(tmp_path).call("get_model_recommendations", {"quality": "high"})
    assert result["recommendations"][0]["id"] == "fal-ai/flux-pro/v1.1-ultra"
    assert result["criteria"]["speed"] == "medium"


def test_batch_size_is_parsed_and_capped(tmp_path: Path) -> None:
    router = _router(tmp_path)
    tasks = [{"prompt": "one boat", "model": "fal-ai/flux/dev"}]
    as_text = router.call(
        "batch_generate", {"tasks": tasks, "batch_size": "2", "output_directory": str(tmp_path / "a")}
    )
    assert as_text["metadata"]["batch_size"] == 2
    capped = router.call(
        "batch_generate", {"tasks": tasks, "batch_size": 50, "output_directory": str(tmp_path / "b")}
    )
    assert capped["metadata"]["batch_size"] == 5
    with pytest.raises(ToolError, match="batch_size must be >= 1"):
        router.call("batch_generate", {"tasks": tasks, "batch_size": 0})
    with pytest.raises(ToolError, match="batch_size must be an integer"):
        router.call("batch_generate", {"tasks": tasks, "batch_size": "many"})


def test_non_finite_parameter_is_a_warning(tmp_path: Path) -> None:
    result = _router(tmp_path).call(
        "generate_image",
        {"prompt": "a quiet harbour", "model": "fal-ai/flux/dev", "parameters": {"num_images": "inf"}},
    )
    assert result["success"] is True
    assert result["parameters"]["num_images"] == 1
    assert any("is not numeric" in warning for warning in result["warnings"])
