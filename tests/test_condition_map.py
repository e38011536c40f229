"""
HoloSwap Pricing — Condition Mapping Tests

Display names for PokePulse condition codes and the ±10% price band.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from src.utils.condition_map import (
    ConditionBand,
    ConditionCode,
    display_condition,
    estimate_band,
)


class TestDisplayCondition:
    """Short codes map to the names customers see."""

    @pytest.mark.parametrize(
        "code,name",
        [
            (ConditionCode.NEAR_MINT.value, "Near Mint"),
            (ConditionCode.LIGHTLY_PLAYED.value, "Lightly Played"),
            (ConditionCode.MODERATELY_PLAYED.value, "Moderately Played"),
            (ConditionCode.HEAVILY_PLAYED.value, "Heavily Played"),
            (ConditionCode.DAMAGED.value, "Damaged"),
        ],
    )
    def test_known_codes(self, code: str, name: str) -> None:
        assert display_condition(code) == name

    def test_lower_case_code(self) -> None:
        assert display_condition(" nm ") == "Near Mint"

    def test_unknown_code_kept_upper_case(self) -> None:
        assert display_condition("ex") == "EX"

    def test_missing_code(self) -> None:
        assert display_condition(None) == "UNKNOWN"
        assert display_condition("") == "UNKNOWN"


class TestEstimateBand:
    """Low/high are the observed value scaled by 0.9 and 1.1."""

    def test_ten_pounds(self) -> None:
        assert estimate_band(Decimal("10.00")) == ConditionBand(
            low=Decimal("9.00"), market=Decimal("10.00"), high=Decimal("11.00")
        )

    def test_rounds_half_up_to_pence(self) -> None:
        """0.9 * 1.25 = 1.125 -> 1.13; 1.1 * 1.25 = 1.375 -> 1.38."""
        band = estimate_band(Decimal("1.25"))
        assert band.low == Decimal("1.13")
        assert band.high == Decimal("1.38")

    def test_zero_value(self) -> None:
        assert estimate_band(Decimal("0")) == ConditionBand(
            low=Decimal("0.00"), market=Decimal("0.00"), high=Decimal("0.00")
        )

    def test_custom_factor(self) -> None:
        band = estimate_band(Decimal("100"), factor=Decimal("0.25"))
        assert band.low == Decimal("75.00")
        assert band.high == Decimal("125.00")

    def test_band_is_ordered(self) -> None:
        band = estimate_band(Decimal("37.49"))
        assert band.low <= band.market <= band.high
