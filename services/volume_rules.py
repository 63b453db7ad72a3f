"""
Volume rule matching, shared by the pricing engine and the selection rules.
"""
from __future__ import annotations

from typing import Optional, Sequence

from schemas.bundle_schemas import VolumeRuleData


def find_applicable_volume_rule(
    rules: Sequence[VolumeRuleData], quantity: int
) -> Optional[VolumeRuleData]:
    """Highest qualifying min_quantity wins; gaps and overlaps are not checked."""
    for rule in sorted(rules, key=lambda r: r.min_quantity, reverse=True):
        if quantity >= rule.min_quantity:
            if rule.max_quantity is None or quantity <= rule.max_quantity:
                return rule
    return None


def qualification_warning(rules: Sequence[VolumeRuleData], quantity: int) -> Optional[str]:
    """Hint shown when ``quantity`` earns no volume discount, None when a rule applies."""
    if not rules or find_applicable_volume_rule(rules, quantity) is not None:
        return None
    min_qty = min(rule.min_quantity for rule in rules)
    if quantity < min_qty:
        return f"Add {min_qty - quantity} more to qualify for a discount"
    return f"Current quantity ({quantity}) does not qualify for any discount"
