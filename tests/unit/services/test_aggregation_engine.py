"""Unit tests for portfolio aggregation."""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from insurepulse.schemas.records import ActivePolicy, InsuranceType
from insurepulse.services.portfolio.aggregation_engine import (
    AggregationEngine,
    UNSPECIFIED_LINE,
    build_snapshot,
    ratio,
)
from insurepulse.utils.exceptions import ConfigurationError

TENANT = "tenant-a"
LOAD = Decimal("0.15")


def _policy(number, premium, country="BH", line="Motor", takaful=False):
    return ActivePolicy(
        policy_number=number,
        premium=Decimal(premium),
        country=country,
        line_of_business=line,
        insurance_type=InsuranceType.TAKAFUL if takaful else InsuranceType.CONVENTIONAL,
    )


class TestBuildSnapshot:
    """Test suite for build_snapshot."""

    def test_loss_and_combined_ratio(self):
        policies = [_policy("P-1", "100000", country="SA"), _policy("P-2", "50000", country="BH")]

        snapshot = build_snapshot(TENANT, policies, {"P-1": Decimal("60000")}, LOAD)

        assert snapshot.policy_count == 2
        assert snapshot.total_premium == Decimal("150000")
        assert snapshot.average_premium == Decimal("75000")
        assert snapshot.incurred_losses == Decimal("60000")
        assert snapshot.loss_ratio == Decimal("0.40")
        assert snapshot.combined_ratio == Decimal("0.46")

    def test_empty_portfolio(self):
        snapshot = build_snapshot(TENANT, [], {}, LOAD)

        assert snapshot.policy_count == 0
        assert snapshot.total_premium == 0
        assert snapshot.average_premium == 0
        assert snapshot.loss_ratio == 0
        assert snapshot.combined_ratio == 0
        assert snapshot.takaful_percentage == 0
        assert snapshot.by_country == ()
        assert snapshot.by_line_of_business == ()

    def test_zero_premium_gives_zero_ratios(self):
        policies = [_policy("P-1", "0", takaful=True)]

        snapshot = build_snapshot(TENANT, policies, {"P-1": Decimal("500")}, LOAD)

        assert snapshot.incurred_losses == Decimal("500")
        assert snapshot.loss_ratio == 0
        assert snapshot.takaful_percentage == 0
        assert snapshot.by_country[0].loss_ratio == 0

    def test_takaful_percentage(self):
        policies = [
            _policy("P-1", "300", takaful=True),
            _policy("P-2", "100"),
        ]

        snapshot = build_snapshot(TENANT, policies, {}, LOAD)

        assert snapshot.takaful_premium == Decimal("300")
        assert snapshot.takaful_percentage == Decimal("0.75")
        assert 0 <= snapshot.takaful_percentage <= 1

    def test_losses_for_unknown_policies_are_ignored(self):
        policies = [_policy("P-1", "1000")]

        snapshot = build_snapshot(TENANT, policies, {"P-1": Decimal("100"), "GONE": Decimal("900")}, LOAD)

        assert snapshot.incurred_losses == Decimal("100")
        assert snapshot.loss_ratio == Decimal("0.1")

    def test_dimensions_in_first_seen_order(self):
        policies = [
            _policy("P-1", "100", country="SA", line="Property"),
            _policy("P-2", "100", country="BH", line="Motor"),
            _policy("P-3", "100", country="SA", line="Motor"),
        ]

        snapshot = build_snapshot(TENANT, policies, {}, LOAD)

        assert [row.key for row in snapshot.by_country] == ["SA", "BH"]
        assert [row.key for row in snapshot.by_line_of_business] == ["Property", "Motor"]
        assert snapshot.by_country[0].policy_count == 2
        assert snapshot.by_country[0].total_premium == Decimal("200")

    def test_dimension_metrics(self):
        policies = [
            _policy("P-1", "100000", country="SA", takaful=True),
            _policy("P-2", "50000", country="BH"),
        ]

        snapshot = build_snapshot(TENANT, policies, {"P-1": Decimal("60000")}, LOAD)

        saudi, bahrain = snapshot.by_country
        assert saudi.dimension == "country"
        assert saudi.loss_ratio == Decimal("0.6")
        assert saudi.combined_ratio == Decimal("0.69")
        assert saudi.takaful_percentage == 1
        assert bahrain.incurred_losses == 0
        assert bahrain.loss_ratio == 0

    def test_missing_line_of_business_is_grouped(self):
        policies = [_policy("P-1", "100", line=None), _policy("P-2", "100", line=None)]

        snapshot = build_snapshot(TENANT, policies, {}, LOAD)

        assert [row.key for row in snapshot.by_line_of_business] == [UNSPECIFIED_LINE]
        assert snapshot.by_line_of_business[0].policy_count == 2

    def test_dimension_totals_match_portfolio(self):
        policies = [
            _policy("P-1", "120.50", country="SA", line="Motor"),
            _policy("P-2", "80.25", country="AE", line="Health"),
            _policy("P-3", "10", country="SA", line=None),
        ]

        snapshot = build_snapshot(TENANT, policies, {}, LOAD)

        for rows in (snapshot.by_country, snapshot.by_line_of_business):
            assert sum(row.total_premium for row in rows) == snapshot.total_premium
            assert sum(row.policy_count for row in rows) == snapshot.policy_count

    def test_deterministic(self):
        policies = [_policy("P-1", "100", country="SA"), _policy("P-2", "300", country="BH", takaful=True)]
        losses = {"P-2": Decimal("45")}

        assert build_snapshot(TENANT, policies, losses, LOAD) == build_snapshot(TENANT, policies, losses, LOAD)

    def test_zero_expense_load(self):
        snapshot = build_snapshot(TENANT, [_policy("P-1", "100")], {"P-1": Decimal("50")}, Decimal(0))

        assert snapshot.combined_ratio == snapshot.loss_ratio


def test_ratio_with_zero_denominator():
    assert ratio(Decimal("5"), Decimal(0)) == 0


def test_negative_expense_load_is_rejected():
    with pytest.raises(ConfigurationError):
        AggregationEngine(Mock(), expense_load_factor=Decimal("-0.1"))


def test_expense_load_defaults_to_settings():
    engine = AggregationEngine(Mock())

    assert engine.expense_load_factor >= 0
