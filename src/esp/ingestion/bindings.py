"""SPARQL JSON result parsing."""

from __future__ import annotations

from typing import Any

import orjson

from esp.ingestion.errors import MalformedPayloadError
from esp.models import RawRecord


# binding variable -> RawRecord field
FIELD_MAP: dict[str, str] = {
    "qid": "external_id",
    "itemLabel": "label",
    "itemDescription": "description",
    "startDate": "start_text",
    "end": "end_text",
    "countryLabel": "country_label",
    "countryIso": "country_iso",
    "countryQid": "country_external_id",
    "coord": "coordinate_text",
}


def extract_bindings(content: bytes | str) -> list[dict[str, Any]]:
    """Return ``results.bindings`` from a SPARQL JSON response body."""
    try:
        payload = orjson.loads(content)
    except orjson.JSONDecodeError as exc:
        raise MalformedPayloadError(f"SPARQL response is not valid JSON: {exc}") from exc

    results = payload.get("results") if isinstance(payload, dict) else None
    bindings = results.get("bindings") if isinstance(results, dict) else None
    if not isinstance(bindings, list):
        raise MalformedPayloadError("SPARQL response missing results.bindings")

    return [binding for binding in bindings if isinstance(binding, dict)]


def value_of(binding: dict[str, Any], name: str) -> str:
    """Return the text value of a binding field, or '' when absent."""
    field = binding.get(name)
    if not isinstance(field, dict):
        return ""
    value = field.get("value")
    if value is None:
        return ""
    return str(value)


def parse_binding(binding: dict[str, Any]) -> RawRecord:
    """Flatten a binding into a RawRecord."""
    values = {field: value_of(binding, name) for name, field in FIELD_MAP.items()}
    return RawRecord.model_validate({**values, "payload": binding})
