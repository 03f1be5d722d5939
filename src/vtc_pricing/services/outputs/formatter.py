"""Utilities to serialize pricing results into JSON/CSV audit artifacts."""

from __future__ import annotations

import csv
import io
import json
import logging

from ...schemas.pricing import PricingResult
from ...schemas.rules import RuleType

logger = logging.getLogger(__name__)

_RULE_COLUMNS = ["position", "type", "description", "price_before", "price_after"]


def result_to_json(result: PricingResult) -> dict:
    """Plain nested structure of the result, safe to persist verbatim."""

    return result.model_dump(mode="json")


def result_to_json_string(result: PricingResult) -> str:
    return json.dumps(result_to_json(result), ensure_ascii=False, sort_keys=True)


def result_from_json(payload: dict) -> PricingResult:
    """Rebuild a stored result. Rules of a kind this version does not know are dropped with a warning."""

    known = {rule_type.value for rule_type in RuleType}
    rules = payload.get("applied_rules") or []
    unknown = [rule for rule in rules if isinstance(rule, dict) and rule.get("type") not in known]
    if unknown:
        skipped = sorted({str(rule.get("type")) for rule in unknown})
        logger.warning(f"Dropping {len(unknown)} applied rule(s) of unknown type: {', '.join(skipped)}")
        payload = {**payload, "applied_rules": [rule for rule in rules if rule not in unknown]}
    return PricingResult.model_validate(payload)


def applied_rules_to_csv(result: PricingResult) -> str:
    """One row per applied rule; rule-specific fields go to a JSON ``details`` column."""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=[*_RULE_COLUMNS, "details"])
    writer.writeheader()
    for position, rule in enumerate(result.applied_rules, start=1):
        payload = rule.model_dump(mode="json")
        writer.writerow(
            {
                "position": position,
                "type": payload.pop("type"),
                "description": payload.pop("description", ""),
                "price_before": payload.pop("price_before", ""),
                "price_after": payload.pop("price_after", ""),
                "details": json.dumps(payload, sort_keys=True),
            }
        )
    return buffer.getvalue()
