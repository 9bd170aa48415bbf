import os
import unittest
from datetime import date, datetime
from unittest import mock

from record_factories import hex_id, make_tool, ref

from schemas.records import Checkout, Employee, parse_date, parse_timestamp
from services.reference_service import DEFAULT_APP_IDS, RecordKind, create_record_url, extract_record_id


class ReferenceResolverTests(unittest.TestCase):
    def test_extracts_id_for_matching_kind(self):
        reference = ref(RecordKind.TOOL, 7)
        self.assertEqual(extract_record_id(reference, RecordKind.TOOL), hex_id(7))

    def test_reference_of_other_kind_is_no_reference(self):
        reference = ref(RecordKind.TOOL, 7)
        self.assertIsNone(extract_record_id(reference, RecordKind.EMPLOYEE))

    def test_malformed_input_is_no_reference(self):
        for value in (None, "", "   ", 42, {"id": hex_id(1)}, "https://example.org/apps/x/records/y", "abc"):
            self.assertIsNone(extract_record_id(value, RecordKind.CHECKOUT), value)

    def test_bare_trailing_id_accepted_without_kind(self):
        self.assertEqual(extract_record_id(f"legacy:{hex_id(3)}"), hex_id(3))
        self.assertIsNone(extract_record_id(f"legacy:{hex_id(3)}", RecordKind.TOOL))

    def test_create_record_url_uses_kind_app_id(self):
        url = create_record_url(RecordKind.RETURN, hex_id(9))
        self.assertEqual(
            url,
            f"https://my.living-apps.de/rest/apps/{DEFAULT_APP_IDS[RecordKind.RETURN]}/records/{hex_id(9)}",
        )
        self.assertEqual(extract_record_id(url, RecordKind.RETURN), hex_id(9))

    def test_app_id_override_from_environment(self):
        override = "a" * 24
        with mock.patch.dict(os.environ, {"APP_ID_WERKZEUGE": override}):
            url = create_record_url(RecordKind.TOOL, hex_id(1))
            self.assertIn(f"/apps/{override}/records/", url)
            self.assertEqual(extract_record_id(url, RecordKind.TOOL), hex_id(1))
            stale = f"https://my.living-apps.de/rest/apps/{DEFAULT_APP_IDS[RecordKind.TOOL]}/records/{hex_id(1)}"
            self.assertIsNone(extract_record_id(stale, RecordKind.TOOL))


class DateNormalisationTests(unittest.TestCase):
    def test_timestamp_formats(self):
        self.assertEqual(parse_timestamp("2025-03-01"), datetime(2025, 3, 1))
        self.assertEqual(parse_timestamp("2025-03-01T08:30"), datetime(2025, 3, 1, 8, 30))
        self.assertEqual(parse_timestamp("2025-03-01 08:30:15"), datetime(2025, 3, 1, 8, 30, 15))
        self.assertEqual(parse_timestamp("2025-03-01T08:30:00Z"), datetime(2025, 3, 1, 8, 30))
        self.assertEqual(parse_timestamp("2025-03-01T10:30:00+02:00"), datetime(2025, 3, 1, 8, 30))

    def test_unparseable_values_become_none(self):
        for value in (None, "", "gestern", 12, ["2025-01-01"]):
            self.assertIsNone(parse_timestamp(value), value)
            self.assertIsNone(parse_date(value), value)

    def test_date_truncates_time_of_day(self):
        self.assertEqual(parse_date("2025-03-01T23:59"), date(2025, 3, 1))
        self.assertEqual(parse_date("2025-03-01"), date(2025, 3, 1))
        self.assertEqual(parse_date(datetime(2025, 3, 1, 23, 59)), date(2025, 3, 1))


class RecordParsingTests(unittest.TestCase):
    def test_tool_fields_are_normalised(self):
        tool = make_tool(
            1,
            pruefpflicht="true",
            naechster_prueftermin="2025-07-01T10:00",
            anschaffungspreis="199.90",
            zustand="verbogen",
        )
        self.assertTrue(tool.fields.requires_inspection)
        self.assertEqual(tool.fields.next_inspection, date(2025, 7, 1))
        self.assertAlmostEqual(tool.fields.purchase_price, 199.9)
        self.assertEqual(tool.fields.condition, "verbogen")

    def test_missing_or_broken_fields_do_not_fail(self):
        checkout = Checkout.model_validate({"record_id": hex_id(2), "createdat": "kaputt", "fields": None})
        self.assertIsNone(checkout.createdat)
        self.assertIsNone(checkout.fields.tool)
        self.assertIsNone(checkout.event_time)

        checkout = Checkout.model_validate(
            {"record_id": hex_id(3), "fields": {"geplantes_rueckgabedatum": "bald", "werkzeug": 17}}
        )
        self.assertIsNone(checkout.fields.planned_return)
        self.assertEqual(checkout.fields.tool, "17")

    def test_event_time_falls_back_to_creation(self):
        checkout = Checkout.model_validate({"record_id": hex_id(4), "createdat": "2025-06-01T07:00:00", "fields": {}})
        self.assertEqual(checkout.event_time, datetime(2025, 6, 1, 7))

    def test_employee_full_name(self):
        self.assertEqual(
            Employee.model_validate({"record_id": hex_id(5), "fields": {"vorname": "Eva", "nachname": "Berg"}}).full_name,
            "Eva Berg",
        )
        self.assertEqual(Employee.model_validate({"record_id": hex_id(6), "fields": {"nachname": "Berg"}}).full_name, "Berg")
        self.assertIsNone(Employee.model_validate({"record_id": hex_id(7), "fields": {}}).full_name)


if __name__ == "__main__":
    unittest.main()
