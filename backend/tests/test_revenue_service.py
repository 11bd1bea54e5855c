# Overview: Pytest coverage for the driver/office revenue split.

from decimal import Decimal

import pytest
from courier.errors import InvalidAmountError
from courier.services import revenue_service
from courier.services.revenue_service import round_to_unit, split


class TestRoundToUnit:
    def test_half_rounds_up(self):
        assert round_to_unit(Decimal("2500")) == Decimal("3000")
        assert round_to_unit(Decimal("1500")) == Decimal("2000")

    def test_below_half_rounds_down(self):
        assert round_to_unit(Decimal("2499")) == Decimal("2000")
        assert round_to_unit(Decimal("499")) == Decimal("0")


class TestSplit:
    def test_tax_is_excluded_from_base(self):
        result = split(100000, 10000)
        assert result.base == Decimal("90000")
        assert result.driver_share == Decimal("63000")
        assert result.office_share == Decimal("27000")
        assert result.residual == Decimal("0")

    def test_shares_rounded_independently(self):
        """1750 -> 2000 and 750 -> 1000: the shares overshoot the base by 500."""
        result = split(Decimal("2500"))
        assert result.driver_share == Decimal("2000")
        assert result.office_share == Decimal("1000")
        assert result.residual == Decimal("-500")

    def test_residual_is_reported_not_absorbed(self):
        result = split(Decimal("3300"))
        # 2310 -> 2000, 990 -> 1000
        assert result.driver_share == Decimal("2000")
        assert result.office_share == Decimal("1000")
        assert result.residual == Decimal("300")
        assert result.base == result.driver_share + result.office_share + result.residual

    def test_zero_amount(self):
        result = split(0)
        assert result.driver_share == Decimal("0")
        assert result.office_share == Decimal("0")
        assert result.residual == Decimal("0")

    def test_float_input_accepted(self):
        assert split(10000.0).driver_share == Decimal("7000")

    def test_tax_above_cost_rejected(self):
        with pytest.raises(InvalidAmountError):
            split(1000, 5000)

    def test_negative_cost_rejected(self):
        with pytest.raises(InvalidAmountError):
            split(-1)

    @pytest.mark.parametrize("bad", [True, "1000", None])
    def test_non_numeric_rejected(self, bad):
        with pytest.raises(InvalidAmountError):
            split(bad)

    def test_to_dict_uses_strings(self):
        payload = split(100000, 10000).to_dict()
        assert payload == {
            "base": "90000",
            "driver_share": "63000",
            "office_share": "27000",
            "residual": "0",
        }


def test_driver_commission_matches_split():
    assert revenue_service.driver_commission(Decimal("15000")) == Decimal("11000")
