import orjson
import pytest

from esp.ingestion.bindings import extract_bindings, parse_binding, value_of
from esp.ingestion.errors import MalformedPayloadError


def _response(bindings) -> bytes:
    return orjson.dumps({"head": {"vars": []}, "results": {"bindings": bindings}})


def test_extract_bindings_returns_rows(binding):
    rows = extract_bindings(_response([binding(qid="Q1"), binding(qid="Q2")]))
    assert [row["qid"]["value"] for row in rows] == ["Q1", "Q2"]


def test_extract_bindings_empty_page():
    assert extract_bindings(_response([])) == []


@pytest.mark.parametrize(
    "body",
    [b"not json", b"[]", b'{"results": {}}', b'{"results": {"bindings": {}}}', b"{}"],
)
def test_extract_bindings_rejects_unexpected_shape(body):
    with pytest.raises(MalformedPayloadError):
        extract_bindings(body)


def test_value_of_absent_field_is_empty():
    row = {"qid": {"type": "literal", "value": "Q5"}, "coord": {"type": "literal"}}
    assert value_of(row, "qid") == "Q5"
    assert value_of(row, "itemLabel") == ""
    assert value_of(row, "coord") == ""


def test_parse_binding_maps_fields(binding):
    raw = parse_binding(
        binding(qid="Q42", label="Revolt", end="1918-01-01T00:00:00Z", coord="Point(1 2)")
    )
    assert raw.external_id == "Q42"
    assert raw.label == "Revolt"
    assert raw.start_text == "1917-11-07T00:00:00Z"
    assert raw.end_text == "1918-01-01T00:00:00Z"
    assert raw.country_external_id == "Q159"
    assert raw.country_label == "Russia"
    assert raw.country_iso == "RU"
    assert raw.coordinate_text == "Point(1 2)"
    assert raw.payload["qid"]["value"] == "Q42"


def test_parse_binding_missing_optionals(binding):
    raw = parse_binding(binding(end=None, coord=None, country_iso=None))
    assert raw.end_text == ""
    assert raw.coordinate_text == ""
    assert raw.country_iso == ""
