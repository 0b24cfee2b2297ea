"""Deduplication settings and their resolution against caller overrides."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from txdedup.config import settings as app_settings
from txdedup.services.errors import InvalidSettingsError

CRITERIA = ("date", "amount", "description", "location", "account")


@dataclass(frozen=True)
class EnabledCriteria:
    """Which criteria take part in scoring."""

    date: bool = True
    amount: bool = True
    description: bool = True
    location: bool = True
    account: bool = True


@dataclass(frozen=True)
class DeduplicationSettings:
    """Tolerances and thresholds for one detection call."""

    date_tolerance_days: float = 3
    amount_tolerance_percent: float = 1.0
    description_similarity_threshold: float = 0.8
    auto_merge_threshold: float = 0.95
    enabled_criteria: EnabledCriteria = field(default_factory=EnabledCriteria)

    def validate(self) -> "DeduplicationSettings":
        """Check ranges, returning self so calls can be chained."""
        if self.date_tolerance_days < 0:
            raise InvalidSettingsError("date_tolerance_days must be >= 0")
        if self.amount_tolerance_percent < 0:
            raise InvalidSettingsError("amount_tolerance_percent must be >= 0")
        for name in ("description_similarity_threshold", "auto_merge_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise InvalidSettingsError(f"{name} must be between 0 and 1, got {value}")
        return self


class SettingsResolver:
    """Supplies default settings merged with per-call overrides.

    Defaults come from application configuration unless given explicitly.
    Overrides may be a full ``DeduplicationSettings`` (used as-is after
    validation) or a partial mapping. A partial ``enabled_criteria`` mapping
    is merged field by field, so ``{"location": False}`` only switches off
    location.
    """

    def __init__(self, defaults: DeduplicationSettings | None = None):
        self.defaults = (defaults or self._from_config()).validate()

    @staticmethod
    def _from_config() -> DeduplicationSettings:
        return DeduplicationSettings(
            date_tolerance_days=app_settings.dedup_date_tolerance_days,
            amount_tolerance_percent=app_settings.dedup_amount_tolerance_percent,
            description_similarity_threshold=app_settings.dedup_description_similarity_threshold,
            auto_merge_threshold=app_settings.dedup_auto_merge_threshold,
        )

    def resolve(
        self,
        overrides: DeduplicationSettings | Mapping[str, Any] | None = None,
    ) -> DeduplicationSettings:
        """Merge overrides into the defaults.

        Args:
            overrides: Full settings, a partial mapping, or None

        Returns:
            Validated, immutable settings

        Raises:
            InvalidSettingsError: Unknown keys or out-of-range values
        """
        if overrides is None:
            return self.defaults
        if isinstance(overrides, DeduplicationSettings):
            return overrides.validate()

        known = {f.name for f in fields(DeduplicationSettings)}
        unknown = set(overrides) - known
        if unknown:
            raise InvalidSettingsError(f"Unknown settings: {', '.join(sorted(unknown))}")

        values = {k: v for k, v in overrides.items() if v is not None}
        criteria = values.pop("enabled_criteria", None)
        resolved = replace(self.defaults, **values)

        if criteria is not None:
            resolved = replace(
                resolved, enabled_criteria=self._merge_criteria(resolved.enabled_criteria, criteria)
            )

        return resolved.validate()

    @staticmethod
    def _merge_criteria(
        base: EnabledCriteria,
        overrides: EnabledCriteria | Mapping[str, Any],
    ) -> EnabledCriteria:
        if isinstance(overrides, EnabledCriteria):
            return overrides

        unknown = set(overrides) - set(CRITERIA)
        if unknown:
            raise InvalidSettingsError(f"Unknown criteria: {', '.join(sorted(unknown))}")
        return replace(base, **{k: bool(v) for k, v in overrides.items() if v is not None})
