"""Gacha draw services."""

from .draws import DrawOutcome, DrawService, WonReward
from .exclusions import ExclusionLedger
from .quota import QuotaTracker
from .rarity import DEFAULT_RARITY_WEIGHTS, RarityRoller
from .selector import CandidateSelection, DrawSelector
from .trips import TripPublisher, trip_signature

__all__ = [
    "CandidateSelection",
    "DEFAULT_RARITY_WEIGHTS",
    "DrawOutcome",
    "DrawSelector",
    "DrawService",
    "ExclusionLedger",
    "QuotaTracker",
    "RarityRoller",
    "TripPublisher",
    "WonReward",
    "trip_signature",
]
