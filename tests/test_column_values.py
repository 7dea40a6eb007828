"""Tests for Monday.com column value parsing."""

import json
from datetime import date

from scripts.monday import column_values as cv


def col(text=None, value=None, type_="text", id_="c1"):
    return {"id": id_, "text": text, "value": value, "type": type_}


class TestClassify:
    def test_empty_column(self):
        assert cv.classify(None).kind == cv.PayloadKind.EMPTY
        assert cv.classify(col()).kind == cv.PayloadKind.EMPTY

    def test_json_string_is_decoded(self):
        payload = cv.classify(col(value=json.dumps({"date": "2024-03-11"})))
        assert payload.kind == cv.PayloadKind.OBJECT
        assert payload.value == {"date": "2024-03-11"}

    def test_bare_number(self):
        assert cv.classify(col(value="12.5")).kind == cv.PayloadKind.NUMBER

    def test_undecodable_string_is_text(self):
        payload = cv.classify(col(value="not json"))
        assert payload.kind == cv.PayloadKind.TEXT
        assert payload.value == "not json"


class TestParseNumber:
    def test_number_payload(self):
        assert cv.parse_number(col(value="40")) == 40.0

    def test_numbers_column_object_with_string(self):
        assert cv.parse_number(col(value=json.dumps("1500"))) == 1500.0

    def test_object_value_key(self):
        assert cv.parse_number(col(value=json.dumps({"value": 7}))) == 7.0

    def test_falls_back_to_text_with_currency(self):
        assert cv.parse_number(col(text="£12,500.50")) == 12500.5

    def test_garbage_is_none(self):
        assert cv.parse_number(col(text="TBC")) is None

    def test_positive_number_rejects_zero(self):
        assert cv.parse_positive_number(col(value="0")) is None
        assert cv.parse_positive_number(col(value="3")) == 3.0


class TestParseDate:
    def test_date_object(self):
        assert cv.parse_date(col(value=json.dumps({"date": "2024-05-01", "time": None}))) == date(2024, 5, 1)

    def test_text_fallback(self):
        assert cv.parse_date(col(text="2024-05-01")) == date(2024, 5, 1)
        assert cv.parse_date(col(text="1 May 2024")) == date(2024, 5, 1)

    def test_unparseable(self):
        assert cv.parse_date(col(text="soon")) is None


class TestParseTimeline:
    def test_from_to(self):
        value = json.dumps({"from": "2024-01-01", "to": "2024-01-31"})
        assert cv.parse_timeline(col(value=value)) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_start_end_variant(self):
        value = json.dumps({"start": "2024-02-01", "end": "2024-02-10"})
        assert cv.parse_timeline(col(value=value)) == (date(2024, 2, 1), date(2024, 2, 10))

    def test_non_object(self):
        assert cv.parse_timeline(col(text="Jan")) == (None, None)


class TestParsePeople:
    def test_persons_and_teams_skips_teams(self):
        value = json.dumps({"personsAndTeams": [
            {"id": 1, "kind": "person"}, {"id": 9, "kind": "team"}, {"id": 2, "kind": "person"},
        ]})
        assert cv.parse_people(col(value=value, type_="people")) == ["1", "2"]

    def test_person_ids(self):
        assert cv.parse_people(col(value=json.dumps({"personIds": [3, 3, 4]}))) == ["3", "4"]

    def test_list_of_entries(self):
        value = json.dumps([{"personId": 5}, {"id": 6}])
        assert cv.parse_people(col(value=value)) == ["5", "6"]


class TestIndexColumns:
    def test_decodes_values(self):
        indexed = cv.index_columns([
            col(text="40", value="40", type_="numbers", id_="hours"),
            col(text=None, value=None, id_="empty"),
        ])
        assert indexed["hours"] == {"text": "40", "value": 40.0, "type": "numbers"}
        assert indexed["empty"]["value"] is None
