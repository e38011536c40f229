"""
Tests for price alert rules (src/engine/alerts.py).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.config import AlertType
from src.engine.alerts import is_cooldown_active, pct_change, should_trigger

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestShouldTrigger:
    @pytest.mark.parametrize(
        "alert_type,threshold,old,new,expected",
        [
            (AlertType.PCT_UP, "20", "10", "12", True),
            (AlertType.PCT_UP, "20", "10", "11.99", False),
            (AlertType.PCT_DOWN, "10", "10", "9", True),
            (AlertType.PCT_DOWN, "10", "10", "9.5", False),
            (AlertType.PCT_DOWN, "10", "10", "12", False),
            (AlertType.ABOVE, "50", "40", "50", True),
            (AlertType.ABOVE, "50", "40", "49.99", False),
            (AlertType.BELOW, "5", "6", "5", True),
            (AlertType.BELOW, "5", "6", "5.01", False),
        ],
    )
    def test_rules(
        self, alert_type: AlertType, threshold: str, old: str, new: str, expected: bool
    ) -> None:
        assert should_trigger(
            alert_type.value, Decimal(threshold), Decimal(old), Decimal(new)
        ) is expected

    @pytest.mark.parametrize("old,new", [(None, "10"), ("10", None), ("0", "10"), ("10", "0")])
    def test_missing_or_zero_price_never_triggers(self, old: str | None, new: str | None) -> None:
        old_price = Decimal(old) if old is not None else None
        new_price = Decimal(new) if new is not None else None
        for alert_type in AlertType:
            assert not should_trigger(alert_type.value, Decimal("1"), old_price, new_price)

    def test_unknown_alert_type(self) -> None:
        assert not should_trigger("sideways", Decimal("1"), Decimal("10"), Decimal("20"))


class TestCooldown:
    def test_never_triggered(self) -> None:
        assert not is_cooldown_active(None, 24, NOW)

    def test_within_cooldown(self) -> None:
        assert is_cooldown_active(NOW - timedelta(hours=23), 24, NOW)

    def test_cooldown_elapsed(self) -> None:
        assert not is_cooldown_active(NOW - timedelta(hours=24), 24, NOW)

    def test_default_cooldown_is_24h(self) -> None:
        assert is_cooldown_active(NOW - timedelta(hours=23), None, NOW)
        assert not is_cooldown_active(NOW - timedelta(hours=25), None, NOW)

    def test_custom_cooldown(self) -> None:
        assert not is_cooldown_active(NOW - timedelta(hours=2), 1, NOW)

    def test_naive_timestamp_treated_as_utc(self) -> None:
        naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert is_cooldown_active(naive, 24, NOW)


def test_pct_change() -> None:
    assert pct_change(Decimal("10"), Decimal("12")) == Decimal("20")
    assert pct_change(Decimal("10"), Decimal("9")) == Decimal("-10")
