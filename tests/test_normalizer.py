from datetime import datetime, timezone

import pytest

from esp.ingestion.bindings import parse_binding
from esp.ingestion.normalizer import NormalizationGate, is_admissible
from esp.models import AcceptDecision, ExternalRecord, RejectDecision
from esp.utils.countries import ISO3_TO_ISO2, normalize_iso
from esp.utils.geo import parse_point
from esp.utils.time import parse_timestamp


def _base_record(**overrides) -> ExternalRecord:
    payload = {
        "external_id": "Q1",
        "name": "Test",
        "start_date": datetime(1917, 11, 7, tzinfo=timezone.utc),
        "country": "",
        "country_external_id": None,
        "latitude": None,
        "longitude": None,
    }
    payload.update(overrides)
    return ExternalRecord.model_validate(payload)


def test_parse_point_longitude_first():
    assert parse_point("Point(-58.38 -34.60)") == (-34.60, -58.38)


def test_parse_point_case_insensitive_prefix():
    assert parse_point("POINT(10.5 20.25)") == (20.25, 10.5)


@pytest.mark.parametrize(
    "value",
    [
        "",
        None,
        "Point(abc)",
        "Point(1)",
        "Point(1 2 3)",
        "Point(abc def)",
        "Line(1 2)",
        "Point(nan 1)",
        "Point(-58.38 -34.60",
        "Point(1 2))",
    ],
)
def test_parse_point_invalid(value):
    assert parse_point(value) is None


def test_parse_timestamp_trailing_z_is_utc():
    parsed = parse_timestamp("1917-11-07T00:00:00Z")
    assert parsed == datetime(1917, 11, 7, tzinfo=timezone.utc)


def test_parse_timestamp_naive_is_utc():
    parsed = parse_timestamp("1968-05-03T10:00:00")
    assert parsed.tzinfo is timezone.utc
    assert parsed.hour == 10


def test_parse_timestamp_offset_converted():
    parsed = parse_timestamp("1989-11-09T20:00:00+02:00")
    assert parsed == datetime(1989, 11, 9, 18, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", ["", "   ", None, "not a date", "1917-13-40"])
def test_parse_timestamp_invalid(value):
    assert parse_timestamp(value) is None


def test_normalize_iso():
    assert normalize_iso("ARG") == "AR"
    assert normalize_iso("XX") == "XX"
    assert normalize_iso("ZZZ") == "ZZZ"
    assert normalize_iso(" arg ") == "AR"
    assert normalize_iso("") is None
    assert normalize_iso(None) is None
    assert normalize_iso("ABCD") == "ABCD"


def test_iso_table_is_read_only():
    assert len(ISO3_TO_ISO2) > 240
    with pytest.raises(TypeError):
        ISO3_TO_ISO2["ZZZ"] = "ZZ"


def test_admissible_with_country_identifier():
    assert is_admissible(_base_record(country_external_id="Q414"))


def test_admissible_with_country_label():
    assert is_admissible(_base_record(country="Argentina"))


def test_admissible_with_coordinates_only():
    assert is_admissible(_base_record(latitude=-34.6, longitude=-58.38))


def test_not_admissible_without_location():
    assert not is_admissible(_base_record())
    assert not is_admissible(_base_record(latitude=-34.6))


def test_gate_accepts_and_normalizes(settings, binding):
    gate = NormalizationGate(settings)
    decision = gate.evaluate(
        parse_binding(binding(qid="q7", country_iso="ru", coord="Point(-58.38 -34.60)"))
    )
    assert isinstance(decision, AcceptDecision)
    record = decision.record
    assert record.external_id == "Q7"
    assert record.country_iso == "RU"
    assert record.latitude == -34.60
    assert record.longitude == -58.38
    assert record.start_date == datetime(1917, 11, 7, tzinfo=timezone.utc)


def test_gate_accepts_coordinates_without_country(settings, binding):
    gate = NormalizationGate(settings)
    raw = parse_binding(
        binding(country_qid=None, country_label=None, country_iso=None, coord="Point(1 2)")
    )
    decision = gate.evaluate(raw)
    assert isinstance(decision, AcceptDecision)
    assert (decision.record.latitude, decision.record.longitude) == (2.0, 1.0)


def test_gate_rejects_invalid_start(settings, binding):
    decision = NormalizationGate(settings).evaluate(parse_binding(binding(start="sometime")))
    assert isinstance(decision, RejectDecision)
    assert decision.reason == "invalid_start_date"


def test_gate_rejects_missing_start(settings, binding):
    decision = NormalizationGate(settings).evaluate(parse_binding(binding(start=None)))
    assert decision.reason == "invalid_start_date"


def test_gate_rejects_before_min_year(settings, binding):
    decision = NormalizationGate(settings).evaluate(
        parse_binding(binding(start="1848-02-22T00:00:00Z"))
    )
    assert decision.reason == "before_min_year"


def test_gate_min_year_can_be_disabled(settings, binding):
    gate = NormalizationGate(settings, apply_min_year=False)
    decision = gate.evaluate(parse_binding(binding(start="1848-02-22T00:00:00Z")))
    assert isinstance(decision, AcceptDecision)


def test_gate_rejects_not_admissible(settings, binding):
    raw = parse_binding(
        binding(country_qid=None, country_label=None, country_iso=None, coord="Point(abc)")
    )
    decision = NormalizationGate(settings).evaluate(raw)
    assert decision.reason == "not_admissible"


def test_gate_invalid_end_is_dropped(settings, binding):
    decision = NormalizationGate(settings).evaluate(parse_binding(binding(end="later")))
    assert isinstance(decision, AcceptDecision)
    assert decision.record.end_date is None


def test_gate_name_falls_back_to_identifier(settings, binding):
    decision = NormalizationGate(settings).evaluate(parse_binding(binding(qid="Q9", label="")))
    assert decision.record.name == "Q9"
