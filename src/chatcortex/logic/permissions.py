"""Per-plan model availability."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chatcortex.logic.registry import AIModelConfig, ModelRegistry

DEFAULT_PLAN = "free"


def allowed_model_ids(plan: str | None, plans_config: Mapping[str, Any]) -> set[str] | None:
    """Return the model ids a plan may use, or ``None`` for no restriction.

    A plan missing from ``plans_config`` falls back to the default plan. When
    no plans are configured at all, every model is available.
    """
    if not plans_config:
        return None

    plan_config = plans_config.get(plan or DEFAULT_PLAN)
    if plan_config is None:
        plan_config = plans_config.get(DEFAULT_PLAN)
    if not isinstance(plan_config, Mapping):
        return set()

    models = plan_config.get("models")
    if models in (None, "*") or (isinstance(models, list) and "*" in models):
        return None
    if not isinstance(models, list):
        return set()
    return {str(model_id) for model_id in models}


def available_models(
    registry: ModelRegistry,
    plan: str | None,
    plans_config: Mapping[str, Any],
) -> list[AIModelConfig]:
    """Filter the registry's model list by subscription plan, keeping order."""
    allowed = allowed_model_ids(plan, plans_config)
    models = registry.list()
    if allowed is None:
        return models
    return [config for config in models if config.id in allowed]


def is_model_allowed(model_id: str, plan: str | None, plans_config: Mapping[str, Any]) -> bool:
    allowed = allowed_model_ids(plan, plans_config)
    return allowed is None or model_id in allowed
