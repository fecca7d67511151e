"""Class registry: validates and holds the current voting class list.

The class list is only ever replaced whole. Each accepted configuration
is identified by a content hash recorded in the audit trail.

Structural invariants:
- 1..max_classes entries.
- every slice_pct in [1, 100].
- slices sum to exactly 100.
- every balance-weighted class names an asset.
"""

from __future__ import annotations

from typing import Sequence

from hybridgov.errors import ValidationError
from hybridgov.models.config import GovernanceLimits
from hybridgov.models.voting_class import (
    BalanceWeightedClass,
    DirectClass,
    VotingClass,
    classes_hash,
)


def validate_classes(
    classes: Sequence[VotingClass],
    max_classes: int = GovernanceLimits.max_classes,
) -> None:
    """Check a class configuration against the structural invariants.

    Raises:
        ValidationError: On the first invariant violated.
    """
    if not 1 <= len(classes) <= max_classes:
        raise ValidationError(
            f"Class count must be in [1, {max_classes}], got {len(classes)}"
        )
    total = 0
    for i, vc in enumerate(classes):
        if not isinstance(vc, (DirectClass, BalanceWeightedClass)):
            raise ValidationError(f"Class {i} has unknown type {type(vc).__name__}")
        if not 1 <= vc.slice_pct <= 100:
            raise ValidationError(
                f"Class {i} slice_pct must be in [1, 100], got {vc.slice_pct}"
            )
        if isinstance(vc, BalanceWeightedClass):
            if not vc.asset:
                raise ValidationError(
                    f"Class {i} is balance-weighted but has no asset"
                )
            if vc.min_balance < 0:
                raise ValidationError(
                    f"Class {i} min_balance cannot be negative: {vc.min_balance}"
                )
        total += vc.slice_pct
    if total != 100:
        raise ValidationError(f"Class slices must sum to 100, got {total}")


class ClassRegistry:
    """Holds the current global class configuration.

    Usage:
        registry = ClassRegistry()
        registry.init_classes([DirectClass(slice_pct=50), ...])
        config_hash = registry.set_classes([...])
    """

    def __init__(self, limits: GovernanceLimits | None = None) -> None:
        self._limits = limits or GovernanceLimits()
        self._classes: tuple[VotingClass, ...] = ()
        self._initialised = False

    def init_classes(self, initial: Sequence[VotingClass]) -> str:
        """Install the first configuration. Allowed once.

        Returns:
            Content hash of the configuration.

        Raises:
            ValidationError: If already initialised or invalid.
        """
        if self._initialised:
            raise ValidationError("Class registry is already initialised")
        digest = self.set_classes(initial)
        return digest

    def set_classes(self, new_classes: Sequence[VotingClass]) -> str:
        """Replace the whole configuration atomically.

        Returns:
            Content hash of the new configuration.

        Raises:
            ValidationError: If the configuration is invalid. The
                current configuration is left unchanged.
        """
        validate_classes(new_classes, self._limits.max_classes)
        self._classes = tuple(new_classes)
        self._initialised = True
        return classes_hash(self._classes)

    def get_classes(self) -> tuple[VotingClass, ...]:
        return self._classes

    def snapshot(self) -> tuple[VotingClass, ...]:
        """Frozen copy of the current configuration for a new proposal.

        Raises:
            ValidationError: If no classes are configured.
        """
        if not self._classes:
            raise ValidationError("No voting classes configured")
        return tuple(self._classes)

    @property
    def config_hash(self) -> str:
        return classes_hash(self._classes)
