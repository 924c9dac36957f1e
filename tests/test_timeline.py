import unittest
from datetime import date, timedelta

from sheet_gantt.models import Task
from sheet_gantt.timeline import FIRST_TIMELINE_COLUMN, MAX_SHEET_COLUMNS, day_label, plan_timeline


def task(task_id: str, start: date, end: date) -> Task:
    return Task(id=task_id, name=f"Task {task_id}", start=start, end=end)


class PlanTimelineTests(unittest.TestCase):
    def setUp(self):
        self.tasks = [
            task("0", date(2024, 1, 1), date(2024, 1, 1)),
            task("1", date(2024, 1, 2), date(2024, 1, 10)),
        ]

    def test_column_count_equals_buffered_span(self):
        plan = plan_timeline(self.tasks, buffer_days=3)
        self.assertEqual(plan.min_date, date(2023, 12, 29))
        self.assertEqual(plan.max_date, date(2024, 1, 13))
        self.assertEqual(plan.day_count, (plan.max_date - plan.min_date).days + 1)
        self.assertEqual(plan.day_count, 16)

    def test_date_map_is_contiguous_and_ascending(self):
        plan = plan_timeline(self.tasks, buffer_days=2)
        positions = [plan.date_map[column.key] for column in plan.columns]
        self.assertEqual(positions, list(range(FIRST_TIMELINE_COLUMN, FIRST_TIMELINE_COLUMN + plan.day_count)))
        self.assertEqual(len(set(plan.date_map.values())), len(plan.date_map))
        days = [column.date for column in plan.columns]
        self.assertEqual(days, sorted(days))
        for earlier, later in zip(days, days[1:]):
            self.assertEqual(later - earlier, timedelta(days=1))

    def test_zero_buffer_and_custom_first_column(self):
        plan = plan_timeline(self.tasks, buffer_days=0, first_column=10)
        self.assertEqual(plan.min_date, date(2024, 1, 1))
        self.assertEqual(plan.columns[0].column, 10)
        self.assertEqual(plan.last_column, 10 + plan.day_count - 1)

    def test_buffer_out_of_range_is_rejected(self):
        with self.assertRaises(ValueError):
            plan_timeline(self.tasks, buffer_days=-1)
        with self.assertRaises(ValueError):
            plan_timeline(self.tasks, buffer_days=32)

    def test_empty_task_list_uses_default_window(self):
        anchor = date(2024, 6, 15)
        plan = plan_timeline([], anchor=anchor, empty_span_days=7)
        self.assertEqual(plan.min_date, date(2024, 6, 8))
        self.assertEqual(plan.max_date, date(2024, 6, 22))
        self.assertEqual(plan.day_count, 15)

    def test_labels_and_weekends(self):
        plan = plan_timeline([task("0", date(2024, 1, 6), date(2024, 1, 8))], buffer_days=0)
        self.assertEqual([column.label for column in plan.columns], ["Sat 06", "Sun 07", "Mon 08"])
        self.assertEqual([column.is_weekend for column in plan.columns], [True, True, False])
        self.assertEqual(day_label(date(2024, 3, 1)), "Fri 01")

    def test_out_of_grid_days_are_clamped(self):
        plan = plan_timeline(self.tasks, buffer_days=0)
        with self.assertLogs("sheet_gantt.timeline", level="WARNING"):
            self.assertEqual(plan.column_for(date(2023, 1, 1)), (plan.first_column, True))
        with self.assertLogs("sheet_gantt.timeline", level="WARNING"):
            self.assertEqual(plan.column_for(date(2025, 1, 1)), (plan.last_column, True))
        self.assertEqual(plan.column_for(date(2024, 1, 2)), (plan.first_column + 1, False))

    def test_far_off_date_is_trimmed_to_sheet_width(self):
        # a bare 5 in a date cell reads as Excel serial 1900-01-04
        tasks = [task("0", date(1900, 1, 4), date(2024, 1, 10)), task("1", date(2024, 1, 2), date(2024, 1, 10))]
        with self.assertLogs("sheet_gantt.timeline", level="WARNING"):
            plan = plan_timeline(tasks, buffer_days=3, anchor=date(2024, 1, 5))
        self.assertEqual(plan.last_column, MAX_SHEET_COLUMNS)
        self.assertEqual(plan.day_count, MAX_SHEET_COLUMNS - FIRST_TIMELINE_COLUMN + 1)
        self.assertEqual(plan.max_date, date(2024, 1, 13))
        self.assertEqual(plan.column_for(date(2024, 1, 2)), (plan.date_map["2024-01-02"], False))
        with self.assertLogs("sheet_gantt.timeline", level="WARNING"):
            self.assertEqual(plan.column_for(date(1900, 1, 4)), (plan.first_column, True))

    def test_trimmed_window_prefers_the_busiest_range(self):
        tasks = [task(str(i), date(2024, 1, 1 + i), date(2024, 1, 2 + i)) for i in range(3)]
        tasks.append(task("9", date(1900, 1, 4), date(1900, 1, 5)))
        with self.assertLogs("sheet_gantt.timeline", level="WARNING"):
            plan = plan_timeline(tasks, buffer_days=0, anchor=date(1900, 1, 4))
        self.assertEqual(plan.max_date, date(2024, 1, 4))
        self.assertGreater(plan.min_date, date(1900, 1, 5))

    def test_first_column_past_sheet_edge_is_rejected(self):
        with self.assertRaises(ValueError):
            plan_timeline(self.tasks, first_column=MAX_SHEET_COLUMNS + 1)

    def test_month_spans(self):
        plan = plan_timeline([task("0", date(2024, 1, 30), date(2024, 2, 2))], buffer_days=0)
        spans = plan.month_spans()
        self.assertEqual([span.label for span in spans], ["January 2024", "February 2024"])
        self.assertEqual(spans[0].last_column + 1, spans[1].first_column)
        self.assertEqual(spans[1].last_column, plan.last_column)


if __name__ == "__main__":
    unittest.main()
