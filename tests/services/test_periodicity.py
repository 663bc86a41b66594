"""
Unit tests for periodicity: pure functions, no DB.
"""
import pytest

from smartbudget.services.periodicity import (
    align_to_latest,
    calculate_confidence,
    check_bi_monthly_pattern,
    check_quarterly_pattern,
    check_yearly_pattern,
    circular_gaps,
    classify_group,
    latest_month,
    validate_single_transaction_per_period,
    validate_spacing,
)
from smartbudget.services.records import RecurrencePattern
from smartbudget.services.transaction_grouper import group_similar_transactions


# ── gaps and spacing ─────────────────────────────────────────────────────────

class TestCircularGaps:
    def test_year_wrap(self):
        assert circular_gaps([11, 1]) == [2]

    def test_drops_widest_gap(self):
        assert circular_gaps([1, 3, 5]) == [2, 2]

    def test_single_month(self):
        assert circular_gaps([4, 4]) == []


class TestLatestCycle:
    def test_latest_month_follows_year_wrap(self):
        assert latest_month([11, 1]) == 1

    def test_latest_month(self):
        assert latest_month([1, 3, 6, 8]) == 8

    def test_single_month(self):
        assert latest_month([4]) == 4

    def test_align_drops_months_before_shift(self):
        assert align_to_latest([1, 3, 6, 8], 2) == [6, 8]

    def test_align_keeps_regular_cycle(self):
        assert align_to_latest([11, 1], 2) == [1, 11]


class TestValidateSpacing:
    def test_exact_steps(self):
        assert validate_spacing([2, 2], 2)

    def test_one_gap_off_by_one(self):
        assert validate_spacing([2, 3], 2)

    def test_no_exact_gap(self):
        assert not validate_spacing([3], 2)

    def test_gap_off_by_two(self):
        assert not validate_spacing([2, 4], 2)

    def test_more_deviating_than_exact(self):
        assert not validate_spacing([2, 3, 3], 2)

    def test_empty(self):
        assert not validate_spacing([], 3)


class TestConfidence:
    def test_full_observation(self):
        assert calculate_confidence(3, 3, True) == pytest.approx(0.9)

    def test_capped(self):
        assert calculate_confidence(4, 3, True) == pytest.approx(0.95)

    def test_invalid_spacing(self):
        assert calculate_confidence(3, 3, False) == 0.0


# ── individual checks ────────────────────────────────────────────────────────

class TestBiMonthly:
    def test_year_wrap_months_sorted(self):
        match = check_bi_monthly_pattern([11, 1], 4)
        assert match.type is RecurrencePattern.bi_monthly
        assert match.scheduled_months == [1, 11]

    def test_odd_months(self):
        match = check_bi_monthly_pattern([1, 3, 5], 6)
        assert match.scheduled_months == [1, 3, 5]
        assert match.confidence == pytest.approx(0.9)

    def test_shifted_cycle_keeps_latest_months(self):
        match = check_bi_monthly_pattern([1, 3, 6, 8], 8)
        assert match.type is RecurrencePattern.bi_monthly
        assert match.scheduled_months == [6, 8]
        assert match.confidence == pytest.approx(0.9)

    def test_quarterly_spacing_is_not_bi_monthly(self):
        assert check_bi_monthly_pattern([1, 4, 7], 9) is None

    def test_too_few_occurrences_for_window(self):
        assert check_bi_monthly_pattern([1, 3], 12) is None

    def test_single_occurrence(self):
        assert check_bi_monthly_pattern([5], 6) is None


class TestQuarterly:
    def test_projects_through_december(self):
        match = check_quarterly_pattern([1, 4, 7], 9)
        assert match.type is RecurrencePattern.quarterly
        assert match.scheduled_months == [1, 4, 7, 10]

    def test_bi_monthly_spacing_is_not_quarterly(self):
        assert check_quarterly_pattern([1, 3, 5], 6) is None


class TestYearly:
    def test_same_month_each_year(self, make_txn):
        txns = [
            make_txn("Car Insurance", -1500, "2022-03-01"),
            make_txn("Car Insurance", -1550, "2023-03-02"),
            make_txn("Car Insurance", -1600, "2024-03-01"),
        ]
        match = check_yearly_pattern(txns, 36)
        assert match.type is RecurrencePattern.yearly
        assert match.scheduled_months == [3]
        assert match.confidence == pytest.approx(0.9)

    def test_different_months(self, make_txn):
        txns = [
            make_txn("Car Insurance", -1500, "2023-03-01"),
            make_txn("Car Insurance", -1500, "2024-04-01"),
        ]
        assert check_yearly_pattern(txns, 24) is None

    def test_single_year(self, make_txn):
        assert check_yearly_pattern([make_txn("Car Insurance", -1500, "2024-03-01")], 24) is None


# ── classify_group ───────────────────────────────────────────────────────────

class TestClassifyGroup:
    def _group(self, txns):
        groups = group_similar_transactions(txns)
        assert len(groups) == 1
        return groups[0]

    def test_same_calendar_month_rejects(self, make_txn):
        txns = [
            make_txn("Municipal Tax", -450, "2024-01-05"),
            make_txn("Municipal Tax", -450, "2024-01-25"),
            make_txn("Municipal Tax", -450, "2024-03-05"),
            make_txn("Municipal Tax", -450, "2024-05-05"),
        ]
        assert not validate_single_transaction_per_period(txns)
        assert classify_group(self._group(txns), 6) is None

    def test_bi_monthly_group(self, make_txn):
        txns = [
            make_txn("Municipal Tax", -400, "2024-01-10"),
            make_txn("Municipal Tax", -450, "2024-03-10"),
            make_txn("Municipal Tax", -500, "2024-05-10"),
        ]
        match = classify_group(self._group(txns), 6)
        assert match.type is RecurrencePattern.bi_monthly
        assert match.scheduled_months == [1, 3, 5]

    def test_quarterly_group(self, make_txn):
        txns = [
            make_txn("Property Insurance", -300, "2024-01-15"),
            make_txn("Property Insurance", -300, "2024-04-15"),
            make_txn("Property Insurance", -300, "2024-07-15"),
        ]
        match = classify_group(self._group(txns), 9)
        assert match.type is RecurrencePattern.quarterly
        assert match.scheduled_months == [1, 4, 7, 10]

    def test_monthly_spend_is_not_recurring_here(self, make_txn):
        txns = [make_txn("Grocery Store", -300, f"2024-{m:02d}-03") for m in range(1, 7)]
        assert classify_group(self._group(txns), 6) is None
