import pytest

from vtc_pricing.models.domain import OrganizationPricingSettings
from vtc_pricing.services.autoswitch.dense_zone import detect_dense_zone
from vtc_pricing.services.autoswitch.mad import billed_hours, build_suggestion, calculate_mad_price
from vtc_pricing.services.autoswitch.round_trip import detect_round_trip_blocked

ORG = OrganizationPricingSettings(base_rate_per_km=2.5, base_rate_per_hour=45.0)


@pytest.mark.parametrize("minutes, hours", [(0, 1), (30, 1), (60, 1), (61, 2), (250, 5)])
def test_hourly_hire_bills_started_hours(minutes, hours):
    assert billed_hours(minutes) == hours


def test_mad_price_includes_target_margin():
    assert calculate_mad_price(90, 45.0, 20.0) == (2, pytest.approx(108.0))


def test_suggestion_only_switches_when_enabled_and_more_profitable():
    better = build_suggestion("DENSE_ZONE_LOW_SPEED", 29.7, 54.0, 1, auto_switch_enabled=True)
    disabled = build_suggestion("DENSE_ZONE_LOW_SPEED", 29.7, 54.0, 1, auto_switch_enabled=False)
    worse = build_suggestion("DENSE_ZONE_LOW_SPEED", 80.0, 54.0, 1, auto_switch_enabled=True)

    assert better.auto_switched
    assert better.price_difference == pytest.approx(24.3)
    assert better.percentage_gain == pytest.approx(81.82)
    assert not disabled.auto_switched
    assert not worse.auto_switched
    assert "optimal" in worse.recommendation


def test_dense_zone_detection():
    slow = detect_dense_zone("PARIS_0", "PARIS_10", 5.0, 30.0, ORG)
    fast = detect_dense_zone("PARIS_0", "PARIS_0", 10.0, 20.0, ORG)
    outside = detect_dense_zone("PARIS_0", "ORLY", 5.0, 30.0, ORG)

    assert slow.is_intra_dense_zone
    assert slow.commercial_speed_kmh == pytest.approx(10.0)
    assert slow.is_below_threshold
    assert fast.commercial_speed_kmh == pytest.approx(30.0)
    assert not fast.is_below_threshold
    assert not outside.is_intra_dense_zone


@pytest.mark.parametrize(
    "distance_km, duration_minutes, waiting, blocked, reason",
    [
        (40.0, 45.0, 300.0, True, "EXCEEDS_MAX_RETURN_DISTANCE"),
        (20.0, 30.0, 60.0, True, "WAITING_TIME_TOO_SHORT"),
        (20.0, 60.0, 130.0, True, "CANNOT_RETURN_IN_TIME"),
        (20.0, 30.0, 150.0, False, "DRIVER_CAN_RETURN"),
        (8.0, 10.0, 60.0, False, "DRIVER_CAN_RETURN"),
        (8.0, 10.0, 45.0, True, "WAITING_TIME_TOO_SHORT"),
    ],
)
def test_round_trip_blocked_reasons(distance_km, duration_minutes, waiting, blocked, reason):
    detection = detect_round_trip_blocked(True, waiting, distance_km, duration_minutes, ORG)

    assert detection.is_driver_blocked is blocked
    assert detection.reason == reason
    if blocked:
        assert detection.blocked_window_minutes == pytest.approx(2 * duration_minutes + waiting)


def test_one_way_trip_is_never_blocked():
    detection = detect_round_trip_blocked(False, 0.0, 50.0, 60.0, ORG)

    assert detection.reason == "NOT_ROUND_TRIP"
    assert not detection.is_driver_blocked
