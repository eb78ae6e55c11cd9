import json
import tempfile
import unittest
from pathlib import Path

from ubbschedule.model import Timetable, TimetableEntry
from ubbschedule.storage import (
    is_user_entries_file,
    load_timetable,
    load_user_entries,
    save_timetable,
    timetable_filename,
)

ENTRY = {
    "id": 3,
    "day": "Monday",
    "interval": {"start": {"hour": 8, "minute": 0}, "end": {"hour": 10, "minute": 0}},
    "subjectName": "Algebra",
    "teacher": "Prof. Pop",
    "frequency": "oddweeks",
    "type": "lecture",
    "room": "C310",
    "format": "211/1",
}


def _timetable(group_name: str = "") -> Timetable:
    return Timetable(
        academic_year="2025",
        semester="1",
        specialization="INFO",
        year_of_study="3",
        entries=[TimetableEntry(day="Luni", hours="8-10", group="211/1", subject="Algebra")],
        group_name=group_name,
    )


class TestStorage(unittest.TestCase):
    def test_timetable_roundtrip(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = save_timetable(_timetable(), Path(d) / "out" / "t.json")
            loaded = load_timetable(path)
            self.assertEqual(loaded, _timetable())
            self.assertFalse(is_user_entries_file(path))

    def test_filename(self) -> None:
        self.assertEqual(timetable_filename(_timetable()), "2025-1_INFO3.json")
        self.assertEqual(timetable_filename(_timetable("Grupa 211")), "2025-1_INFO3_Grupa211.json")

    def test_user_entries_list_and_object(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            as_list = Path(d) / "list.json"
            as_list.write_text(json.dumps([ENTRY]), encoding="utf-8")
            as_object = Path(d) / "object.json"
            as_object.write_text(json.dumps({"entries": [ENTRY]}), encoding="utf-8")

            for path in (as_list, as_object):
                self.assertTrue(is_user_entries_file(path))
                entries = load_user_entries(path)
                self.assertEqual(len(entries), 1)
                self.assertEqual(entries[0].id, "3")
                self.assertEqual(entries[0].subject, "Algebra")
                self.assertEqual(entries[0].start.hour, 8)
                self.assertEqual(entries[0].end.hour, 10)

    def test_malformed_files_raise_value_error(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            broken = Path(d) / "broken.json"
            broken.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ValueError) as ctx:
                load_timetable(broken)
            self.assertIn("broken.json", str(ctx.exception))

            wrong = Path(d) / "wrong.json"
            wrong.write_text(json.dumps({"entries": "nope"}), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_timetable(wrong)
            with self.assertRaises(ValueError):
                load_user_entries(wrong)

            bad_hour = Path(d) / "bad_hour.json"
            bad_hour.write_text(json.dumps([{"day": "Monday", "interval": {"start": {"hour": "x"}}}]), encoding="utf-8")
            with self.assertRaises(ValueError):
                load_user_entries(bad_hour)


if __name__ == "__main__":
    unittest.main()
