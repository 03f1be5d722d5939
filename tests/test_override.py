import logging
from datetime import datetime, timezone

import pytest

from vtc_pricing import PricingEngine, override_price
from vtc_pricing.models.domain import (
    Contact,
    ContactType,
    GeoPoint,
    OrganizationPricingSettings,
    PartnerContract,
    PricingSnapshot,
    VehicleCategory,
    Zone,
    ZoneKind,
    ZoneRoute,
    ZonesEndpoint,
)
from vtc_pricing.schemas.pricing import PricingMode, PricingRequest

PARIS_0 = Zone(
    id="paris-0",
    code="PARIS_0",
    name="Paris centre",
    kind=ZoneKind.POLYGON,
    coordinates=((48.80, 2.25), (48.80, 2.45), (48.92, 2.45), (48.92, 2.25)),
    price_multiplier=1.1,
)
CATEGORY = VehicleCategory(id="berline", code="BERLINE", name="Berline", max_passengers=4)
ORG = OrganizationPricingSettings(base_rate_per_km=2.5, base_rate_per_hour=45.0)
REQUEST = PricingRequest(
    pickup=GeoPoint(lat=48.8566, lng=2.3522),
    dropoff=GeoPoint(lat=48.8700, lng=2.3300),
    vehicle_category_id="berline",
    estimated_distance_km=10.0,
    estimated_duration_minutes=20.0,
)


@pytest.fixture
def dynamic_result():
    snapshot = PricingSnapshot(settings=ORG, vehicle_category=CATEGORY, zones=(PARIS_0,))
    return PricingEngine().calculate(REQUEST, snapshot)


@pytest.fixture
def contract_result():
    route = ZoneRoute(
        id="route-1",
        vehicle_category_id="berline",
        origin=ZonesEndpoint(zone_ids=frozenset({"paris-0"})),
        destination=ZonesEndpoint(zone_ids=frozenset({"paris-0"})),
        fixed_price=80.0,
    )
    contact = Contact(
        id="partner-1",
        display_name="Hotel Lutetia",
        contact_type=ContactType.PARTNER,
        contract=PartnerContract(id="contract-1", zone_routes=(route,)),
    )
    snapshot = PricingSnapshot(settings=ORG, vehicle_category=CATEGORY, zones=(PARIS_0,), contact=contact)
    return PricingEngine().calculate(REQUEST, snapshot)


def test_override_reprices_and_keeps_cost(dynamic_result):
    moment = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

    outcome = override_price(dynamic_result, 40.0, reason="Loyal client", overridden_at=moment)

    assert outcome.success
    assert outcome.error is None
    result = outcome.result
    assert result.pricing_mode is PricingMode.MANUAL
    assert result.price == 40.0
    assert result.internal_cost == dynamic_result.internal_cost == 12.26
    assert result.margin == 27.74
    assert result.margin_percent == pytest.approx(69.35)

    rule = result.applied_rules[-1]
    assert rule.type == "MANUAL_OVERRIDE"
    assert rule.price_before == 33.0
    assert rule.price_change == 7.0
    assert rule.price_change_percent == pytest.approx(21.21)
    assert rule.reason == "Loyal client"
    assert rule.overridden_at == moment.isoformat()
    assert not rule.is_contract_price_override
    assert len(result.applied_rules) == len(dynamic_result.applied_rules) + 1


@pytest.mark.parametrize("new_price", [0.0, -5.0, 0.004])
def test_non_positive_price_is_refused(dynamic_result, new_price):
    outcome = override_price(dynamic_result, new_price)

    assert not outcome.success
    assert outcome.error.code == "INVALID_PRICE"
    assert outcome.result == dynamic_result


def test_minimum_margin_is_enforced(dynamic_result):
    outcome = override_price(dynamic_result, 13.0, minimum_margin_percent=20.0)

    assert not outcome.success
    assert outcome.error.code == "BELOW_MINIMUM_MARGIN"
    assert outcome.error.details["resultingMarginPercent"] == pytest.approx(5.69)
    assert outcome.result.price == 33.0


def test_contract_price_override_is_flagged(contract_result, caplog):
    with caplog.at_level(logging.WARNING, logger="vtc_pricing.services.override"):
        outcome = override_price(contract_result, 90.0, reason="Event night")

    assert outcome.success
    assert outcome.result.matched_grid.id == "route-1"
    assert outcome.result.applied_rules[-1].is_contract_price_override
    assert any("Contract price override" in record.getMessage() for record in caplog.records)

    again = override_price(outcome.result, 95.0)
    assert again.result.applied_rules[-1].is_contract_price_override
    assert again.result.applied_rules[-1].price_before == 90.0
