"""Tests for per-member dividend computation and distribution totals."""

from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from coop_kernel.domain.dividend_math import compute_member_dividend, summarize

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
rates = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestComputeMemberDividend:

    def test_dividend_and_average_return(self):
        share = compute_member_dividend(
            uuid4(), Decimal("1000"), Decimal("100"), Decimal("5.0"), Decimal("10.0")
        )
        assert share.dividend_amount == Decimal("50.00")
        assert share.average_return_amount == Decimal("10.00")
        assert share.total_amount == Decimal("60.00")

    def test_member_without_shares_or_interest_gets_nothing(self):
        share = compute_member_dividend(
            uuid4(), Decimal("0"), Decimal("0"), Decimal("5"), Decimal("10")
        )
        assert share.total_amount == Decimal("0.00")

    def test_rounds_half_up(self):
        share = compute_member_dividend(
            uuid4(), Decimal("333.33"), Decimal("0"), Decimal("1.5"), Decimal("0")
        )
        # 333.33 * 1.5% = 4.99995
        assert share.dividend_amount == Decimal("5.00")


class TestSummarize:

    def test_empty(self):
        totals = summarize([])
        assert totals.member_count == 0
        assert totals.grand_total == Decimal("0")

    @given(
        members=st.lists(st.tuples(amounts, amounts), min_size=0, max_size=25),
        dividend_rate=rates,
        average_return_rate=rates,
    )
    @settings(max_examples=200)
    def test_totals_equal_sum_of_recipients(self, members, dividend_rate, average_return_rate):
        shares = [
            compute_member_dividend(uuid4(), capital, interest, dividend_rate, average_return_rate)
            for capital, interest in members
        ]
        totals = summarize(shares)
        assert totals.member_count == len(shares)
        assert totals.total_dividend_amount == sum(
            (s.dividend_amount for s in shares), Decimal("0")
        )
        assert totals.grand_total == sum((s.total_amount for s in shares), Decimal("0"))
