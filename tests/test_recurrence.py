import unittest
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from ubbschedule.model import (
    AcademicPeriod,
    AcademicYearStructure,
    EventType,
    Frequency,
    PeriodType,
    RecurrenceRule,
    SemesterStructure,
    TimetableEntry,
    UserEvent,
    UserTimetableEntry,
)
from ubbschedule.recurrence import (
    align_to_parity,
    default_semester_dates,
    determine_semester_end,
    determine_semester_start,
    entries_to_events,
    entry_to_event,
    exclusion_dates,
    expand,
    find_semester,
    next_weekday,
    parse_day_of_week,
    parse_event_type,
    parse_frequency,
    parse_hours,
    resolve_until,
    semester_numeral,
    semester_week,
    should_suppress,
    synthesize,
    timetable_from_entries,
    user_entries_to_events,
)

TZ = ZoneInfo("Europe/Bucharest")
SEMESTER_START = date(2025, 9, 29)
INTERVAL = {"start": {"hour": 8, "minute": 0}, "end": {"hour": 10, "minute": 0}}


def _structure() -> AcademicYearStructure:
    periods = [
        AcademicPeriod(date(2025, 9, 29), date(2025, 12, 21), PeriodType.TEACHING, "Activitate didactică"),
        AcademicPeriod(date(2025, 12, 1), date(2025, 12, 1), PeriodType.FREE_DAY, "Ziua Națională"),
        AcademicPeriod(date(2025, 12, 22), date(2026, 1, 4), PeriodType.VACATION, "Vacanța de iarnă"),
        AcademicPeriod(date(2026, 1, 5), date(2026, 1, 18), PeriodType.TEACHING, "Activitate didactică"),
        AcademicPeriod(date(2026, 1, 19), date(2026, 2, 8), PeriodType.EXAMS, "Sesiune de examene"),
    ]
    return AcademicYearStructure(
        academic_year="2025-2026",
        language="ro-en",
        semesters=[SemesterStructure(semester="I", periods=periods)],
        last_scraped=datetime(2025, 10, 1),
    )


def _event(day: date, frequency: str = Frequency.WEEKLY, event_type: str = EventType.LECTURE, **rule) -> UserEvent:
    return UserEvent(
        id="algebra",
        title="Algebra (Curs)",
        start_time=datetime.combine(day, time(8, 0)).replace(tzinfo=TZ),
        end_time=datetime.combine(day, time(10, 0)).replace(tzinfo=TZ),
        is_recurring=True,
        recurrence_rule=RecurrenceRule(frequency=frequency, days_of_week=[day.isoweekday() % 7], **rule),
        type=event_type,
    )


class TestMappings(unittest.TestCase):
    def test_parse_frequency(self) -> None:
        cases = {
            "sapt. 1": Frequency.ODD_WEEKS,
            "Săpt. 1": Frequency.ODD_WEEKS,
            "s1": Frequency.ODD_WEEKS,
            "sapt. 2": Frequency.EVEN_WEEKS,
            "săpt.2": Frequency.EVEN_WEEKS,
            "S2": Frequency.EVEN_WEEKS,
            "S1 (sapt. impare)": Frequency.ODD_WEEKS,
            "s 2 - pare": Frequency.EVEN_WEEKS,
            "1-14": Frequency.WEEKLY,
            "": Frequency.WEEKLY,
            "sapt": Frequency.WEEKLY,
            "oddweeks": Frequency.ODD_WEEKS,
            "biweekly": Frequency.BIWEEKLY,
            "ceva": Frequency.WEEKLY,
        }
        for text, expected in cases.items():
            self.assertEqual(parse_frequency(text), expected, text)

    def test_parse_event_type(self) -> None:
        self.assertEqual(parse_event_type("Curs"), EventType.LECTURE)
        self.assertEqual(parse_event_type("Laborator"), EventType.LAB)
        self.assertEqual(parse_event_type("L"), EventType.LAB)
        self.assertEqual(parse_event_type("Seminar"), EventType.SEMINAR)
        self.assertEqual(parse_event_type("s"), EventType.SEMINAR)
        self.assertEqual(parse_event_type("custom"), EventType.CUSTOM)
        self.assertEqual(parse_event_type("???"), EventType.LECTURE)

    def test_parse_day_of_week(self) -> None:
        self.assertEqual(parse_day_of_week("Luni"), 1)
        self.assertEqual(parse_day_of_week("Marți"), 2)
        self.assertEqual(parse_day_of_week("Sâmbătă"), 6)
        self.assertEqual(parse_day_of_week("Sunday"), 0)
        self.assertEqual(parse_day_of_week(" friday "), 5)
        self.assertIsNone(parse_day_of_week("Funday"))

    def test_parse_hours(self) -> None:
        self.assertEqual(parse_hours("8-10"), (time(8), time(10)))
        self.assertEqual(parse_hours("08:00 - 10:00"), (time(8), time(10)))
        self.assertEqual(parse_hours("8.30-10"), (time(8, 30), time(10)))
        self.assertIsNone(parse_hours("10-8"))
        self.assertIsNone(parse_hours("25-26"))
        self.assertIsNone(parse_hours("dimineata"))


class TestDates(unittest.TestCase):
    def test_default_semester_dates(self) -> None:
        self.assertEqual(default_semester_dates(date(2025, 11, 15)), (date(2025, 9, 29), date(2026, 1, 31)))
        self.assertEqual(default_semester_dates(date(2026, 1, 10)), (date(2025, 9, 29), date(2026, 1, 31)))
        self.assertEqual(default_semester_dates(date(2026, 3, 1)), (date(2026, 1, 26), date(2026, 6, 30)))

    def test_next_weekday(self) -> None:
        self.assertEqual(next_weekday(SEMESTER_START, 3), date(2025, 10, 1))
        self.assertEqual(next_weekday(SEMESTER_START, 1), SEMESTER_START)
        self.assertEqual(next_weekday(SEMESTER_START, 0), date(2025, 10, 5))

    def test_semester_week(self) -> None:
        self.assertEqual(semester_week(date(2025, 9, 29), SEMESTER_START), 1)
        self.assertEqual(semester_week(date(2025, 10, 5), SEMESTER_START), 1)
        self.assertEqual(semester_week(date(2025, 10, 6), SEMESTER_START), 2)


class TestEntries(unittest.TestCase):
    def test_entry_to_event(self) -> None:
        entry = TimetableEntry(
            day="Miercuri",
            hours="8-10",
            frequency="sapt. 1",
            room="C310",
            group="211/1",
            type="Curs",
            subject="Algebra",
            teacher="Prof. Pop Ion",
        )
        event = entry_to_event(entry, SEMESTER_START, tz=TZ)

        self.assertEqual(event.title, "Algebra (Curs)")
        self.assertEqual(event.start_time, datetime(2025, 10, 1, 8, 0, tzinfo=TZ))
        self.assertEqual(event.end_time, datetime(2025, 10, 1, 10, 0, tzinfo=TZ))
        self.assertEqual(event.location, "C310")
        self.assertIn("Group: 211/1", event.description)
        self.assertEqual(event.type, EventType.LECTURE)
        self.assertEqual(event.recurrence_rule.frequency, Frequency.ODD_WEEKS)
        self.assertEqual(event.recurrence_rule.days_of_week, [3])
        self.assertEqual(entry_to_event(entry, SEMESTER_START, tz=TZ).id, event.id)

    def test_rows_with_unknown_day_are_skipped(self) -> None:
        entry = TimetableEntry(day="?", hours="8-10", subject="Algebra")
        self.assertIsNone(entry_to_event(entry, SEMESTER_START, tz=TZ))

    def test_entries_to_events_skips_unusable_rows(self) -> None:
        rows = [
            TimetableEntry(day="Luni", hours="8-10", subject="Algebra"),
            TimetableEntry(day="?", hours="8-10", subject="Geometrie"),
            TimetableEntry(day="Marti", hours="10-8", subject="Logica"),
            TimetableEntry(day="Joi", hours="12-14", frequency="sapt. 2", subject="Analiza"),
        ]
        events = entries_to_events(rows, SEMESTER_START, tz=TZ)

        self.assertEqual([e.title for e in events], ["Algebra", "Analiza"])
        self.assertEqual(events[1].start_time, datetime(2025, 10, 2, 12, 0, tzinfo=TZ))

    def test_user_entries_to_events(self) -> None:
        rows = [
            UserTimetableEntry.from_dict({"id": 1, "day": "Friday", "interval": INTERVAL, "subjectName": "Algebra", "type": "lab"}),
            UserTimetableEntry.from_dict({"id": 2, "day": "Someday", "interval": INTERVAL, "subjectName": "Analiza"}),
        ]
        events = user_entries_to_events(rows, SEMESTER_START, tz=TZ)

        self.assertEqual([e.id for e in events], ["1"])
        self.assertEqual(events[0].start_time.date(), date(2025, 10, 3))
        self.assertEqual(events[0].type, EventType.LAB)

    def test_user_entries_share_the_model(self) -> None:
        raw = {
            "id": 7,
            "day": "Tuesday",
            "interval": {"start": {"hour": 12, "minute": 0}, "end": {"hour": 14, "minute": 0}},
            "subjectName": "Analiza",
            "frequency": "evenweeks",
            "type": "seminar",
            "room": "C512",
            "format": "212",
        }
        timetable = timetable_from_entries(
            "user-1", [UserTimetableEntry.from_dict(raw)], semester_start=SEMESTER_START, tz=TZ
        )

        self.assertEqual(len(timetable.events), 1)
        event = timetable.events[0]
        self.assertEqual(event.id, "7")
        self.assertEqual(event.start_time, datetime(2025, 9, 30, 12, 0, tzinfo=TZ))
        self.assertEqual(event.type, EventType.SEMINAR)
        self.assertEqual(event.recurrence_rule.frequency, Frequency.EVEN_WEEKS)
        self.assertIsNone(event.recurrence_rule.until)
        self.assertEqual(timetable.semester_start, SEMESTER_START)


class TestSeries(unittest.TestCase):
    def test_align_to_parity(self) -> None:
        self.assertEqual(align_to_parity(SEMESTER_START, Frequency.WEEKLY, SEMESTER_START), (SEMESTER_START, 1))
        self.assertEqual(align_to_parity(SEMESTER_START, Frequency.ODD_WEEKS, SEMESTER_START), (SEMESTER_START, 2))
        self.assertEqual(
            align_to_parity(SEMESTER_START, Frequency.EVEN_WEEKS, SEMESTER_START),
            (date(2025, 10, 6), 2),
        )
        self.assertEqual(
            align_to_parity(date(2025, 10, 7), Frequency.ODD_WEEKS, SEMESTER_START),
            (date(2025, 10, 14), 2),
        )

    def test_odd_weeks_stay_odd(self) -> None:
        event = _event(SEMESTER_START, Frequency.ODD_WEEKS, until=date(2026, 1, 18))
        series = synthesize(event, semester_start=SEMESTER_START)
        occurrences = expand(series)

        self.assertEqual(len(occurrences), 8)
        for occ in occurrences:
            self.assertEqual(semester_week(occ.start.date(), SEMESTER_START) % 2, 1)
        self.assertLessEqual(occurrences[-1].start.date(), date(2026, 1, 18))

    def test_even_weeks_start_in_week_two(self) -> None:
        event = _event(date(2025, 10, 1), Frequency.EVEN_WEEKS, until=date(2025, 11, 30))
        occurrences = expand(synthesize(event, semester_start=SEMESTER_START))

        self.assertEqual(occurrences[0].start.date(), date(2025, 10, 8))
        self.assertEqual(occurrences[1].start.date(), date(2025, 10, 22))

    def test_vacation_mondays_are_excluded(self) -> None:
        event = _event(date(2025, 12, 15))
        series = synthesize(event, structure=_structure())

        self.assertEqual(series.until, date(2026, 1, 18))
        self.assertIn(datetime(2025, 12, 22, 8, 0, tzinfo=TZ), series.exdates)
        self.assertIn(datetime(2025, 12, 29, 8, 0, tzinfo=TZ), series.exdates)
        # the free day on 01.12 is before the first occurrence
        self.assertNotIn(datetime(2025, 12, 1, 8, 0, tzinfo=TZ), series.exdates)

        days = [occ.start.date() for occ in expand(series)]
        self.assertEqual(days, [date(2025, 12, 15), date(2026, 1, 5), date(2026, 1, 12)])

    def test_exclusion_dates_match_weekday_and_start_time(self) -> None:
        event = _event(date(2025, 12, 17))
        stamps = exclusion_dates(event, _structure())

        self.assertEqual(
            stamps,
            [datetime(2025, 12, 24, 8, 0, tzinfo=TZ), datetime(2025, 12, 31, 8, 0, tzinfo=TZ)],
        )
        self.assertEqual(exclusion_dates(event, None), [])

    def test_event_starting_in_vacation_is_dropped(self) -> None:
        structure = _structure()
        event = _event(date(2025, 12, 22))
        self.assertTrue(should_suppress(event, structure))
        self.assertIsNone(synthesize(event, structure=structure))

        custom = _event(date(2025, 12, 22), event_type=EventType.CUSTOM)
        self.assertFalse(should_suppress(custom, structure))
        self.assertIsNotNone(synthesize(custom, structure=structure))

    def test_until_precedence(self) -> None:
        structure = _structure()
        anchor = date(2025, 10, 6)

        explicit = RecurrenceRule(until=date(2025, 12, 1))
        self.assertEqual(resolve_until(explicit, anchor, date(2026, 1, 31), structure), (date(2025, 12, 1), None))

        rule = RecurrenceRule(count=5)
        self.assertEqual(resolve_until(rule, anchor, date(2026, 1, 31), structure), (date(2026, 1, 18), None))
        self.assertEqual(resolve_until(rule, anchor, date(2026, 1, 31), None), (date(2026, 1, 31), None))
        self.assertEqual(resolve_until(rule, anchor, None, None), (None, 5))
        self.assertEqual(resolve_until(RecurrenceRule(), anchor, None, None), (anchor + timedelta(weeks=14), None))

    def test_semester_end_from_structure(self) -> None:
        self.assertEqual(determine_semester_end(_structure(), date(2025, 10, 6)), date(2026, 1, 18))
        self.assertIsNone(determine_semester_end(_structure(), date(2026, 5, 1)))

    def test_count_bound(self) -> None:
        event = _event(SEMESTER_START, count=3)
        occurrences = expand(synthesize(event))
        self.assertEqual([o.start.date() for o in occurrences], [date(2025, 9, 29), date(2025, 10, 6), date(2025, 10, 13)])

    def test_wall_clock_survives_dst(self) -> None:
        event = _event(date(2025, 10, 20), until=date(2025, 11, 3))
        occurrences = expand(synthesize(event))

        self.assertEqual([o.start.hour for o in occurrences], [8, 8, 8])
        self.assertEqual(occurrences[0].start.utcoffset(), timedelta(hours=3))
        self.assertEqual(occurrences[-1].start.utcoffset(), timedelta(hours=2))
        self.assertEqual(occurrences[-1].end.hour, 10)

    def test_one_time_event(self) -> None:
        event = _event(date(2025, 11, 5))
        event.is_recurring = False
        series = synthesize(event, structure=_structure())
        self.assertFalse(series.is_recurring)
        self.assertEqual(len(expand(series)), 1)



def _full_year() -> AcademicYearStructure:
    shared = [
        AcademicPeriod(date(2026, 2, 23), date(2026, 4, 12), PeriodType.TEACHING, "Activitate didactică"),
        AcademicPeriod(date(2026, 4, 13), date(2026, 4, 19), PeriodType.VACATION, "Vacanța de Paști"),
    ]
    non_terminal = shared + [
        AcademicPeriod(date(2026, 4, 20), date(2026, 6, 7), PeriodType.TEACHING, "Activitate didactică"),
        AcademicPeriod(date(2026, 6, 8), date(2026, 6, 28), PeriodType.EXAMS, "Sesiune de examene"),
    ]
    terminal = shared + [
        AcademicPeriod(date(2026, 4, 20), date(2026, 5, 31), PeriodType.TEACHING, "Activitate didactică"),
        AcademicPeriod(date(2026, 5, 25), date(2026, 5, 25), PeriodType.FREE_DAY, "Rusalii"),
        AcademicPeriod(date(2026, 6, 22), date(2026, 7, 5), PeriodType.GRADUATION, "Examen de licență"),
    ]
    structure = _structure()
    structure.semesters += [
        SemesterStructure("II", "non-terminal", non_terminal),
        SemesterStructure("II", "terminal", terminal),
    ]
    return structure


class TestSecondSemester(unittest.TestCase):
    SPRING_START = date(2026, 2, 23)

    def test_semester_numeral(self) -> None:
        self.assertEqual(semester_numeral("1"), "I")
        self.assertEqual(semester_numeral("2"), "II")
        self.assertEqual(semester_numeral("II"), "II")
        self.assertIsNone(semester_numeral(None))

    def test_semester_is_picked_by_code(self) -> None:
        structure = _full_year()
        # Monday of the week with February 1st is still in the winter exam session
        self.assertEqual(find_semester(structure, date(2026, 1, 26)).semester, "I")

        self.assertEqual(find_semester(structure, semester="2").year_type, "non-terminal")
        self.assertEqual(find_semester(structure, semester="2", is_terminal_year=True).year_type, "terminal")
        self.assertEqual(determine_semester_start(structure, semester="2"), self.SPRING_START)
        self.assertEqual(determine_semester_end(structure, date(2026, 1, 26), semester="2"), date(2026, 6, 7))
        self.assertEqual(
            determine_semester_end(structure, semester="2", is_terminal_year=True),
            date(2026, 5, 31),
        )

    def test_odd_weeks_of_the_second_semester(self) -> None:
        event = _event(self.SPRING_START, Frequency.ODD_WEEKS)
        series = synthesize(event, structure=_full_year(), semester_start=self.SPRING_START, semester="2")
        days = [o.start.date() for o in expand(series)]

        self.assertEqual(series.until, date(2026, 6, 7))
        self.assertEqual(
            days,
            [
                date(2026, 2, 23),
                date(2026, 3, 9),
                date(2026, 3, 23),
                date(2026, 4, 6),
                date(2026, 4, 20),
                date(2026, 5, 4),
                date(2026, 5, 18),
                date(2026, 6, 1),
            ],
        )

    def test_terminal_year_ends_earlier(self) -> None:
        event = _event(self.SPRING_START, Frequency.ODD_WEEKS)
        series = synthesize(
            event,
            structure=_full_year(),
            semester_start=self.SPRING_START,
            semester="2",
            is_terminal_year=True,
        )
        days = [o.start.date() for o in expand(series)]

        self.assertEqual(series.until, date(2026, 5, 31))
        self.assertEqual(days[-1], date(2026, 5, 18))
        self.assertEqual(len(days), 7)

    def test_weekly_class_skips_the_spring_vacation(self) -> None:
        event = _event(self.SPRING_START)
        series = synthesize(event, structure=_full_year(), semester_start=self.SPRING_START, semester="2")
        days = [o.start.date() for o in expand(series)]

        self.assertNotIn(date(2026, 4, 13), days)
        self.assertIn(date(2026, 4, 20), days)
        self.assertEqual(days[-1], date(2026, 6, 1))

    def test_exclusions_follow_cohort_and_series_bounds(self) -> None:
        structure = _full_year()
        event = _event(self.SPRING_START)
        bounds = {"first": self.SPRING_START, "until": date(2026, 6, 7)}

        regular = exclusion_dates(event, structure, [1], **bounds)
        self.assertEqual(regular, [datetime(2026, 4, 13, 8, 0, tzinfo=TZ)])

        final_year = exclusion_dates(event, structure, [1], is_terminal_year=True, **bounds)
        self.assertEqual(
            final_year,
            [datetime(2026, 4, 13, 8, 0, tzinfo=TZ), datetime(2026, 5, 25, 8, 0, tzinfo=TZ)],
        )


if __name__ == "__main__":
    unittest.main()
