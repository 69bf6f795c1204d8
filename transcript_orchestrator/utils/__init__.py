"""Shared helpers."""

from .json_parsing import extract_json, extract_json_object

__all__ = ["extract_json", "extract_json_object"]
