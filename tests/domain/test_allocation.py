"""
Tests for the penalty -> interest -> principal waterfall.

Includes hypothesis property tests for conservation of the amount.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from coop_kernel.domain.allocation import Allocation, allocate_waterfall

money = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
dues = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestWaterfallOrder:
    """Penalty first, then interest, remainder to principal."""

    def test_penalty_then_interest_then_principal(self):
        split = allocate_waterfall(Decimal("1000.00"), Decimal("20.00"), Decimal("80.00"))
        assert split.penalty == Decimal("20.00")
        assert split.interest == Decimal("80.00")
        assert split.principal == Decimal("900.00")

    def test_amount_smaller_than_penalty(self):
        split = allocate_waterfall(Decimal("5.00"), Decimal("20.00"), Decimal("80.00"))
        assert split.penalty == Decimal("5.00")
        assert split.interest == Decimal("0.00")
        assert split.principal == Decimal("0.00")

    def test_amount_covers_penalty_and_part_of_interest(self):
        split = allocate_waterfall(Decimal("50.00"), Decimal("20.00"), Decimal("80.00"))
        assert split.penalty == Decimal("20.00")
        assert split.interest == Decimal("30.00")
        assert split.principal == Decimal("0.00")

    def test_no_dues_everything_to_principal(self):
        split = allocate_waterfall(Decimal("600.00"), Decimal("0"), Decimal("0"))
        assert split.principal == Decimal("600.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1.00")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            allocate_waterfall(amount, Decimal("0"), Decimal("0"))

    def test_allocation_rejects_inconsistent_components(self):
        with pytest.raises(ValueError):
            Allocation(
                amount=Decimal("10.00"),
                penalty=Decimal("1.00"),
                interest=Decimal("1.00"),
                principal=Decimal("1.00"),
            )


# =============================================================================
# Properties
# =============================================================================


class TestWaterfallProperties:

    @given(amount=money, penalty_due=dues, interest_due=dues)
    @settings(max_examples=300)
    def test_components_sum_to_amount(self, amount, penalty_due, interest_due):
        split = allocate_waterfall(amount, penalty_due, interest_due)
        assert split.penalty + split.interest + split.principal == amount

    @given(amount=money, penalty_due=dues, interest_due=dues)
    @settings(max_examples=300)
    def test_components_bounded_by_dues(self, amount, penalty_due, interest_due):
        split = allocate_waterfall(amount, penalty_due, interest_due)
        assert Decimal("0") <= split.penalty <= penalty_due
        assert Decimal("0") <= split.interest <= interest_due
        assert split.principal >= 0

    @given(amount=money, penalty_due=dues, interest_due=dues)
    @settings(max_examples=300)
    def test_principal_only_after_dues_are_covered(self, amount, penalty_due, interest_due):
        split = allocate_waterfall(amount, penalty_due, interest_due)
        if split.principal > 0:
            assert split.penalty == penalty_due
            assert split.interest == interest_due
