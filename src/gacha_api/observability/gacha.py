from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class GachaSnapshot:
    draws: Dict[str, int]
    tiers: Dict[str, int]
    redemptions: Dict[str, int]
    sweeps: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "draws": dict(self.draws),
            "tiers": dict(self.tiers),
            "redemptions": dict(self.redemptions),
            "sweeps": dict(self.sweeps),
        }


class GachaObservabilityStore:
    """Collect draw, redemption, and expiry telemetry for dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._draws: Dict[str, int] = defaultdict(int)
        self._tiers: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._sweeps: Dict[str, int] = defaultdict(int)

    def record_draw(
        self,
        *,
        tier: str | None,
        shortfall: bool,
        reward_stored: bool,
        inventory_full: bool,
        published: bool,
    ) -> None:
        with self._lock:
            self._draws["total"] += 1
            if shortfall:
                self._draws["shortfall"] += 1
            if published:
                self._draws["published"] += 1
            self._tiers[tier or "none"] += 1
            if reward_stored:
                self._draws["rewards_stored"] += 1
            if inventory_full:
                self._draws["rewards_dropped"] += 1

    def record_draw_failure(self, code: str) -> None:
        with self._lock:
            self._draws[f"failed:{code}"] += 1

    def record_redemption(self, outcome: str) -> None:
        with self._lock:
            self._redemptions[outcome] += 1

    def record_sweep(self, *, expired_redemptions: int, expired_items: int) -> None:
        with self._lock:
            self._sweeps["runs"] += 1
            self._sweeps["expired_redemptions"] += expired_redemptions
            self._sweeps["expired_items"] += expired_items

    def snapshot(self) -> GachaSnapshot:
        with self._lock:
            return GachaSnapshot(
                draws=dict(self._draws),
                tiers=dict(self._tiers),
                redemptions=dict(self._redemptions),
                sweeps=dict(self._sweeps),
            )

    def reset(self) -> None:
        with self._lock:
            self._draws.clear()
            self._tiers.clear()
            self._redemptions.clear()
            self._sweeps.clear()


_STORE = GachaObservabilityStore()


def get_gacha_store() -> GachaObservabilityStore:
    return _STORE


__all__ = ["get_gacha_store", "GachaObservabilityStore", "GachaSnapshot"]
