"""Tests for voting power arithmetic — proves gating, scaling and range rules."""

import math

import pytest

from hybridgov.errors import AccumulatorOverflowError, ValidationError
from hybridgov.integration.balances import BalanceLedger, BalanceRegistry
from hybridgov.integration.capabilities import CapabilityRegistry
from hybridgov.models.voting_class import BalanceWeightedClass, DirectClass
from hybridgov.tally.power import (
    POWER_SCALE,
    check_fits,
    class_power,
    integer_sqrt,
    validate_weights,
)


def _lookups(
    grants: dict[str, list[str]] | None = None,
    balances: dict[str, int] | None = None,
):
    caps = CapabilityRegistry(grants or {})
    registry = BalanceRegistry({"tok": BalanceLedger(balances or {})})
    return registry.balance_of, caps.holds_any


class TestIntegerSqrt:
    def test_zero(self) -> None:
        assert integer_sqrt(0) == 0

    def test_small_values_floor(self) -> None:
        assert integer_sqrt(1) == 1
        assert integer_sqrt(2) == 1
        assert integer_sqrt(3) == 1
        assert integer_sqrt(4) == 2
        assert integer_sqrt(15) == 3
        assert integer_sqrt(16) == 4

    def test_matches_math_isqrt(self) -> None:
        for x in range(0, 5000):
            assert integer_sqrt(x) == math.isqrt(x)

    def test_large_values(self) -> None:
        assert integer_sqrt(10**36) == 10**18
        assert integer_sqrt(2**128 - 1) == 2**64 - 1

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValidationError):
            integer_sqrt(-1)


class TestClassPowerGating:
    def test_ungated_direct_gives_full_vote(self) -> None:
        bal, caps = _lookups()
        assert class_power("alice", DirectClass(slice_pct=100), bal, caps) == POWER_SCALE

    def test_gated_without_capability_gives_zero(self) -> None:
        bal, caps = _lookups()
        vc = DirectClass(slice_pct=100, gate_ids=frozenset({"member"}))
        assert class_power("alice", vc, bal, caps) == 0

    def test_gate_is_or_semantics(self) -> None:
        bal, caps = _lookups(grants={"alice": ["delegate"]})
        vc = DirectClass(slice_pct=100, gate_ids=frozenset({"member", "delegate"}))
        assert class_power("alice", vc, bal, caps) == POWER_SCALE

    def test_privileged_principal_bypasses_gate(self) -> None:
        bal, caps = _lookups()
        vc = DirectClass(slice_pct=100, gate_ids=frozenset({"member"}))
        assert class_power("governor", vc, bal, caps, privileged_id="governor") == POWER_SCALE

    def test_privileged_principal_does_not_affect_other_voters(self) -> None:
        bal, caps = _lookups()
        vc = DirectClass(slice_pct=100, gate_ids=frozenset({"member"}))
        assert class_power("alice", vc, bal, caps, privileged_id="governor") == 0


class TestClassPowerBalance:
    def test_linear_balance_scaled(self) -> None:
        bal, caps = _lookups(balances={"alice": 250})
        vc = BalanceWeightedClass(slice_pct=100, asset="tok")
        assert class_power("alice", vc, bal, caps) == 250 * POWER_SCALE

    def test_quadratic_balance(self) -> None:
        """balance 10000, min 100 -> sqrt 100 -> 10000 raw units."""
        bal, caps = _lookups(balances={"alice": 10000})
        vc = BalanceWeightedClass(slice_pct=100, asset="tok", quadratic=True, min_balance=100)
        assert class_power("alice", vc, bal, caps) == 10000

    def test_below_min_balance_gives_zero(self) -> None:
        bal, caps = _lookups(balances={"alice": 99})
        vc = BalanceWeightedClass(slice_pct=100, asset="tok", min_balance=100)
        assert class_power("alice", vc, bal, caps) == 0

    def test_exactly_min_balance_counts(self) -> None:
        bal, caps = _lookups(balances={"alice": 100})
        vc = BalanceWeightedClass(slice_pct=100, asset="tok", min_balance=100)
        assert class_power("alice", vc, bal, caps) == 100 * POWER_SCALE

    def test_zero_balance_gives_zero(self) -> None:
        bal, caps = _lookups()
        vc = BalanceWeightedClass(slice_pct=100, asset="tok")
        assert class_power("alice", vc, bal, caps) == 0

    def test_gated_balance_class_checks_gate_first(self) -> None:
        bal, caps = _lookups(balances={"alice": 5000})
        vc = BalanceWeightedClass(slice_pct=100, asset="tok", gate_ids=frozenset({"member"}))
        assert class_power("alice", vc, bal, caps) == 0


class TestValidateWeights:
    def test_single_full_weight(self) -> None:
        validate_weights([0], [100], 1)

    def test_split_weights(self) -> None:
        validate_weights([2, 0], [60, 40], 3)

    def test_zero_weight_entry_allowed_if_sum_is_100(self) -> None:
        validate_weights([0, 1], [100, 0], 2)

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([], [], 2)

    def test_length_mismatch_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([0, 1], [100], 2)

    def test_index_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([2], [100], 2)

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([-1], [100], 2)

    def test_duplicate_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([1, 1], [50, 50], 2)

    def test_weight_over_100_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([0, 1], [150, -50], 2)

    def test_sum_not_100_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_weights([0, 1], [50, 49], 2)


class TestCheckFits:
    def test_max_value_fits(self) -> None:
        check_fits(2**128 - 1)

    def test_overflow_rejected(self) -> None:
        with pytest.raises(AccumulatorOverflowError):
            check_fits(2**128)

    def test_negative_rejected(self) -> None:
        with pytest.raises(AccumulatorOverflowError):
            check_fits(-1)

    def test_custom_width(self) -> None:
        check_fits(255, 8)
        with pytest.raises(AccumulatorOverflowError):
            check_fits(256, 8)
