"""Observability endpoints for gacha telemetry and Prometheus scraping."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gacha_api.api.dependencies.security import require_admin_api_key
from gacha_api.observability.gacha import get_gacha_store


router = APIRouter(
    prefix="/observability",
    tags=["Observability"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.get("/gacha", summary="Gacha observability snapshot")
async def get_gacha_snapshot() -> dict[str, object]:
    """Aggregated draw, redemption, and sweep counters since process start."""
    return get_gacha_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} counter",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    summary="Prometheus-formatted gacha metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_gacha_store().snapshot()
    lines: list[str] = []
    for event, value in sorted(snapshot.draws.items()):
        lines.extend(_format_metric("gacha_draw_events_total", "Draw events by outcome", value, {"event": event}))
    for tier, value in sorted(snapshot.tiers.items()):
        lines.extend(_format_metric("gacha_tiers_won_total", "Reward tiers rolled", value, {"tier": tier}))
    for outcome, value in sorted(snapshot.redemptions.items()):
        lines.extend(
            _format_metric("gacha_redemptions_total", "Redemption attempts by outcome", value, {"outcome": outcome})
        )
    for metric, value in sorted(snapshot.sweeps.items()):
        lines.extend(_format_metric(f"gacha_expiry_{metric}_total", "Expiry sweep totals", value))
    return PlainTextResponse("\n".join(lines) + "\n")
