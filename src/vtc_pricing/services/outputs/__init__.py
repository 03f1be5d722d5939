"""Audit export helpers."""

from .formatter import applied_rules_to_csv, result_from_json, result_to_json, result_to_json_string

__all__ = ["result_to_json", "result_to_json_string", "result_from_json", "applied_rules_to_csv"]
