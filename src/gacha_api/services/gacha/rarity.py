"""Probability-weighted reward tier roll."""

from __future__ import annotations

import random
from typing import Any, Mapping

from loguru import logger

from gacha_api.core.errors import GachaError, GachaErrorCode, RarityConfigurationError
from gacha_api.models.gacha import RewardTier
from gacha_api.services.configuration import ConfigurationService

CONFIG_CATEGORY = "gacha"
RARITY_WEIGHTS_KEY = "rarity_weights"

# Remaining 20% of the roll space yields no reward
DEFAULT_RARITY_WEIGHTS: dict[RewardTier, float] = {
    RewardTier.SP: 2,
    RewardTier.SSR: 8,
    RewardTier.SR: 15,
    RewardTier.S: 23,
    RewardTier.R: 32,
}

ROLL_SPACE = 100.0


def _normalize_weights(raw: Mapping[Any, Any]) -> dict[RewardTier, float]:
    """Coerce a mapping keyed by tier names into a validated weight table.

    Raises ``ValueError`` describing the first violation found.
    """

    weights: dict[RewardTier, float] = {}
    for key, value in raw.items():
        try:
            tier = key if isinstance(key, RewardTier) else RewardTier(str(key).upper())
        except ValueError as exc:
            raise ValueError(f"unknown reward tier {key!r}") from exc
        if isinstance(value, bool):
            raise ValueError(f"weight for {tier.value} must be numeric")
        try:
            weight = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"weight for {tier.value} must be numeric") from exc
        if weight < 0:
            raise ValueError(f"weight for {tier.value} must not be negative")
        weights[tier] = weight

    total = sum(weights.values())
    if total > ROLL_SPACE:
        raise ValueError(f"weights sum to {total:g}, which exceeds {ROLL_SPACE:g}")
    return {tier: weights.get(tier, 0.0) for tier in RewardTier}


class RarityRoller:
    """Roll a reward tier against the configured weight table."""

    def __init__(
        self,
        config_service: ConfigurationService,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config_service
        self._rng = rng or random.Random()

    async def current_weights(self) -> dict[RewardTier, float]:
        stored = await self._config.get(CONFIG_CATEGORY, RARITY_WEIGHTS_KEY)
        if stored is None:
            return dict(DEFAULT_RARITY_WEIGHTS)
        if not isinstance(stored, Mapping):
            raise RarityConfigurationError("Stored rarity weights must be a mapping")
        try:
            return _normalize_weights(stored)
        except ValueError as exc:
            raise RarityConfigurationError(f"Stored rarity weights are invalid: {exc}") from exc

    async def set_weights(self, weights: Mapping[Any, Any]) -> dict[RewardTier, float]:
        try:
            normalized = _normalize_weights(weights)
        except ValueError as exc:
            raise GachaError(GachaErrorCode.INVALID_CONFIGURATION, str(exc)) from exc

        await self._config.set(
            CONFIG_CATEGORY,
            RARITY_WEIGHTS_KEY,
            {tier.value: weight for tier, weight in normalized.items()},
        )
        logger.info(
            "Rarity weights updated",
            weights={tier.value: weight for tier, weight in normalized.items()},
        )
        return normalized

    async def roll(self) -> RewardTier | None:
        weights = await self.current_weights()
        return self.roll_with(weights)

    def roll_with(self, weights: Mapping[RewardTier, float]) -> RewardTier | None:
        """Resolve a single uniform draw against ``weights`` (rarest tier first)."""

        value = self._rng.random() * ROLL_SPACE
        cumulative = 0.0
        for tier in RewardTier:
            cumulative += weights.get(tier, 0.0)
            if value < cumulative:
                return tier
        return None


__all__ = ["DEFAULT_RARITY_WEIGHTS", "RarityRoller"]
