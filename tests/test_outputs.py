import csv
import io
import json

from vtc_pricing import PricingEngine
from vtc_pricing.models.domain import GeoPoint, OrganizationPricingSettings, PricingSnapshot, VehicleCategory
from vtc_pricing.schemas.pricing import PricingRequest
from vtc_pricing.schemas.rules import DynamicBaseRule, GridFallbackRule
from vtc_pricing.services.costs.profitability import reprice
from vtc_pricing.services.outputs import (
    applied_rules_to_csv,
    result_from_json,
    result_to_json,
    result_to_json_string,
)
from vtc_pricing.services.validation import validate_pricing_result


def _result():
    snapshot = PricingSnapshot(
        settings=OrganizationPricingSettings(base_rate_per_km=2.5, base_rate_per_hour=45.0),
        vehicle_category=VehicleCategory(id="berline", code="BERLINE", name="Berline", max_passengers=4),
    )
    request = PricingRequest(
        pickup=GeoPoint(lat=48.8566, lng=2.3522),
        dropoff=GeoPoint(lat=48.8700, lng=2.3300),
        vehicle_category_id="berline",
        estimated_distance_km=10.0,
        estimated_duration_minutes=20.0,
    )
    return PricingEngine().calculate(request, snapshot)


def test_json_round_trip_keeps_rule_kinds():
    result = _result()

    payload = json.loads(result_to_json_string(result))
    restored = result_from_json(payload)

    assert payload == result_to_json(result)
    assert payload["pricing_mode"] == "DYNAMIC"
    assert payload["trip_analysis"]["cost_breakdown"]["total"] == result.internal_cost
    assert isinstance(restored.applied_rules[0], GridFallbackRule)
    assert isinstance(restored.applied_rules[1], DynamicBaseRule)
    assert restored == result


def test_stored_result_with_unknown_rule_kind_still_loads(caplog):
    result = _result()
    payload = result_to_json(result)
    payload["applied_rules"].insert(1, {"type": "LOYALTY_BONUS", "description": "Retired rule", "points": 3})

    with caplog.at_level("WARNING", logger="vtc_pricing.services.outputs.formatter"):
        restored = result_from_json(payload)

    assert restored == result
    assert "LOYALTY_BONUS" in caplog.text


def test_rules_csv_has_one_row_per_rule():
    result = _result()

    rows = list(csv.DictReader(io.StringIO(applied_rules_to_csv(result))))

    assert [row["type"] for row in rows] == [rule.type for rule in result.applied_rules]
    assert rows[0]["position"] == "1"
    assert rows[0]["price_after"] == ""
    assert json.loads(rows[0]["details"])["reason"] == "PRIVATE_CLIENT"
    assert rows[-2]["price_after"] == "30.0"


def test_validation_flags_margins():
    result = _result()

    report = validate_pricing_result(result)
    greedy = validate_pricing_result(reprice(result, 100.0))
    losing = validate_pricing_result(reprice(result, 10.0))

    assert report.is_valid
    assert report.warnings == []
    assert greedy.is_valid
    assert any("Unusually high margin" in warning for warning in greedy.warnings)
    assert losing.is_valid
    assert any("below internal cost" in warning for warning in losing.warnings)
