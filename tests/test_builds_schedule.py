"""Tests for builds/schedule.py module."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from runner_imagegen.builds.schedule import (
    ScheduleRule,
    arm_rebuild_schedule,
    rate_expression,
)
from runner_imagegen.errors import INVALID_INTERVAL, ConfigurationError


class TestRateExpression:
    """Tests for rate_expression function."""

    @pytest.mark.parametrize(
        ("interval", "expected"),
        [
            (timedelta(days=7), "rate(7 days)"),
            (timedelta(days=1), "rate(1 day)"),
            (timedelta(hours=12), "rate(12 hours)"),
            (timedelta(hours=1), "rate(1 hour)"),
            (timedelta(hours=36), "rate(36 hours)"),
            (timedelta(minutes=90), "rate(90 minutes)"),
            (timedelta(minutes=1), "rate(1 minute)"),
        ],
    )
    def test_largest_whole_unit(self, interval, expected):
        assert rate_expression(interval) == expected

    @pytest.mark.parametrize(
        "interval",
        [timedelta(0), timedelta(days=-1), timedelta(seconds=30), timedelta(seconds=90)],
    )
    def test_invalid(self, interval):
        with pytest.raises(ConfigurationError) as exc_info:
            rate_expression(interval)
        assert exc_info.value.code == INVALID_INTERVAL


class TestArmRebuildSchedule:
    """Tests for arm_rebuild_schedule function."""

    def test_weekly(self):
        """A 7 day interval creates exactly one weekly rule."""
        scheduler = MagicMock()

        rule = arm_rebuild_schedule(
            "runner-image-project", "runner-image", timedelta(days=7), scheduler
        )

        assert rule == ScheduleRule(
            name="runner-image-project-build-schedule",
            description="Rebuild image for runner-image",
            expression="rate(7 days)",
            project="runner-image-project",
        )
        scheduler.create_rule.assert_called_once_with(rule)

    def test_zero_interval_creates_nothing(self):
        """Zero means manual rebuilds only."""
        scheduler = MagicMock()

        rule = arm_rebuild_schedule("p", "r", timedelta(0), scheduler)

        assert rule is None
        scheduler.create_rule.assert_not_called()

    def test_negative_interval_rejected(self):
        scheduler = MagicMock()

        with pytest.raises(ConfigurationError):
            arm_rebuild_schedule("p", "r", timedelta(hours=-1), scheduler)
        scheduler.create_rule.assert_not_called()
