"""Pipeline configuration with sensible defaults.

All parameters can be overridden via ``config/pipeline.yaml``.
If the file does not exist, defaults are used.
"""

from __future__ import annotations

from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, field_validator, model_validator

NOTIFICATION_TYPES = ("new_message", "match", "intro_request", "wali_approval")


class QuotaConfig(BaseModel):
    """Daily ceilings on positive signals, keyed by subscription tier.

    A tier mapped to ``None`` is unlimited.  Tiers missing from the
    mapping get the ceiling of ``default_tier``, so an unrecognised tier
    name never lifts the limit.
    """

    daily_positive_limits: dict[str, int | None] = {
        "free": 3,
        "basic": 3,
        "silver": None,
        "gold": None,
        "premium": None,
        "elite": None,
    }
    default_tier: str = "basic"

    def limit_for(self, tier: str) -> int | None:
        if tier in self.daily_positive_limits:
            return self.daily_positive_limits[tier]
        return self.daily_positive_limits[self.default_tier]

    @model_validator(mode="after")
    def default_tier_is_listed(self) -> QuotaConfig:
        if self.default_tier not in self.daily_positive_limits:
            raise ValueError(f"default_tier {self.default_tier!r} has no entry in daily_positive_limits")
        return self


class GuardianConfig(BaseModel):
    """Guardian gate behaviour."""

    # Rejection is terminal; re-detection never reopens a pair unless enabled.
    allow_retry_after_rejection: bool = False


class BatcherConfig(BaseModel):
    """Parameters for the notification batcher."""

    dwell_minutes: float = 2.0
    max_groups_per_run: int = 50
    max_previews: int = 5
    preview_max_chars: int = 120
    fetch_limit: int = 500
    send_timeout_seconds: float = 10.0
    batch_interval_seconds: float = 120.0
    notification_types: list[str] = ["new_message", "match"]

    @field_validator("notification_types")
    @classmethod
    def known_types(cls, value: list[str]) -> list[str]:
        unknown = sorted(set(value) - set(NOTIFICATION_TYPES))
        if unknown:
            raise ValueError(f"Unknown notification types: {unknown}")
        return value

    @field_validator("max_groups_per_run", "max_previews", "fetch_limit")
    @classmethod
    def positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value


class PipelineConfig(BaseModel):
    """Top-level pipeline configuration combining all sub-configs."""

    quota: QuotaConfig = QuotaConfig()
    guardian: GuardianConfig = GuardianConfig()
    batcher: BatcherConfig = BatcherConfig()


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Load pipeline configuration from a YAML file.

    If the file does not exist, returns a ``PipelineConfig`` with all
    default values.  Partial overrides are supported -- only the keys
    present in the YAML file will override defaults.
    """
    if not path.exists():
        structlog.get_logger().debug("pipeline_config_defaults", path=str(path))
        return PipelineConfig()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return PipelineConfig(**data)
