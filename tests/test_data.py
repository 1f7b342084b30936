"""
Unit tests for ExpenseClient.data.data
(covers the pandas summaries shown on the home and stats screens).

Run with:
    python -m unittest tests.test_data
"""
import datetime
import decimal
import unittest

from ExpenseClient.data import data
from ExpenseClient.data.model import Category, Expense, Stats


def _expense(amount, category, date, _id=None) -> Expense:
    return Expense(
        id=_id,
        amount=decimal.Decimal(str(amount)),
        category=category,
        description='x',
        date=date,
    )


TODAY = datetime.date(2025, 3, 10)


class ExpenseFrameTests(unittest.TestCase):

    def test_empty(self):
        df = data.expenses_to_frame([])
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), data.EXPENSE_DATA_COLUMNS)

    def test_sorted_by_date_with_missing_dates_last(self):
        df = data.expenses_to_frame([
            _expense(1, Category.Food, None, 'c'),
            _expense(2, Category.Food, datetime.datetime(2025, 3, 2), 'b'),
            _expense(3, Category.Food, datetime.datetime(2025, 3, 1), 'a'),
        ])
        self.assertEqual(list(df['id']), ['a', 'b', 'c'])
        self.assertEqual(df['amount'].dtype.kind, 'f')

    def test_aware_dates_are_converted(self):
        aware = datetime.datetime(2025, 3, 1, tzinfo=datetime.timezone.utc)
        df = data.expenses_to_frame([_expense(1, Category.Food, aware)])
        self.assertIsNone(df['date'].dt.tz)


class TopCategoryTests(unittest.TestCase):

    def test_top_categories(self):
        day = datetime.datetime(2025, 3, 1)
        df = data.get_top_categories([
            _expense(50, Category.Food, day),
            _expense(25, Category.Bills, day),
            _expense(10, Category.Health, day),
            _expense(15, Category.Food, day),
        ], limit=2)

        self.assertEqual(list(df.columns), data.CATEGORY_DATA_COLUMNS)
        self.assertEqual(list(df['category']), ['Food', 'Bills'])
        self.assertEqual(list(df['amount']), [65.0, 25.0])
        self.assertEqual(list(df['percentage']), [65, 25])

    def test_empty(self):
        df = data.get_top_categories([])
        self.assertTrue(df.empty)
        self.assertEqual(list(df.columns), data.CATEGORY_DATA_COLUMNS)


class LastSevenDaysTests(unittest.TestCase):

    def test_window(self):
        totals = data.get_last_seven_days([
            _expense(10, Category.Food, datetime.datetime(2025, 3, 10, 20, 0)),
            _expense(5, Category.Food, datetime.datetime(2025, 3, 10, 8, 0)),
            _expense(7, Category.Food, datetime.datetime(2025, 3, 4, 12, 0)),
            _expense(99, Category.Food, datetime.datetime(2025, 3, 3, 12, 0)),
            _expense(99, Category.Food, datetime.datetime(2025, 3, 11, 12, 0)),
            _expense(99, Category.Food, None),
        ], today=TODAY)

        self.assertEqual(len(totals), 7)
        self.assertEqual(totals[6], 15.0)
        self.assertEqual(totals[0], 7.0)
        self.assertEqual(sum(totals), 22.0)

    def test_empty(self):
        self.assertEqual(data.get_last_seven_days([], today=TODAY), [0.0] * 7)


class StatsSummaryTests(unittest.TestCase):

    def test_chart_series_sorted(self):
        stats = Stats(
            total_amount=30.0,
            total_expenses=3,
            chart_data=[
                {'date': datetime.datetime(2025, 3, 3), 'amount': 3.0},
                {'date': None, 'amount': 100.0},
                {'date': datetime.datetime(2025, 3, 1), 'amount': 1.0},
            ],
            category_stats={},
        )
        df = data.get_chart_series(stats)
        self.assertEqual(list(df['amount']), [1.0, 3.0])

    def test_breakdown(self):
        stats = Stats(
            total_amount=300.0,
            total_expenses=3,
            chart_data=[],
            category_stats={'Bills': 100.0, 'Food': 200.0},
        )
        df = data.get_category_breakdown(stats)
        self.assertEqual(list(df['category']), ['Food', 'Bills'])
        self.assertEqual(list(df['percentage']), [66.7, 33.3])

    def test_breakdown_zero_total(self):
        stats = Stats(total_amount=0.0, total_expenses=0, chart_data=[], category_stats={'Food': 0.0})
        df = data.get_category_breakdown(stats)
        self.assertEqual(list(df['percentage']), [0.0])

    def test_empty(self):
        self.assertTrue(data.get_chart_series(Stats.empty()).empty)
        self.assertTrue(data.get_category_breakdown(Stats.empty()).empty)
