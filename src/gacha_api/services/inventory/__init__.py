"""Reward inventory services."""

from .inventory_service import CapacitySnapshot, InventoryService, RewardGrant

__all__ = ["CapacitySnapshot", "InventoryService", "RewardGrant"]
