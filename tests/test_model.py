"""
Unit tests for ExpenseClient.data.model
(covers parsing of API payloads and the local form validation).

Run with:
    python -m unittest tests.test_model
"""
import datetime
import decimal
import unittest

from ExpenseClient.data import model
from ExpenseClient.data.model import Category, Expense, ExpenseList, Period, Stats
from ExpenseClient.status import status


class ParseHelperTests(unittest.TestCase):

    def test_parse_datetime_utc_suffix(self):
        value = model.parse_datetime('2025-03-01T12:30:00.000Z')
        self.assertEqual(value, datetime.datetime(2025, 3, 1, 12, 30, tzinfo=datetime.timezone.utc))

    def test_parse_datetime_invalid(self):
        self.assertIsNone(model.parse_datetime(''))
        self.assertIsNone(model.parse_datetime(None))
        self.assertIsNone(model.parse_datetime('yesterday'))
        self.assertIsNone(model.parse_datetime(12345))

    def test_parse_datetime_from_date(self):
        self.assertEqual(model.parse_datetime(datetime.date(2025, 1, 2)), datetime.datetime(2025, 1, 2))

    def test_to_iso(self):
        self.assertEqual(model.to_iso(datetime.datetime(2025, 3, 1, 9, 5, 7, 123456)), '2025-03-01T09:05:07.123Z')

        aware = datetime.datetime(2025, 3, 1, 12, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=5, minutes=30)))
        self.assertEqual(model.to_iso(aware), '2025-03-01T06:30:00.000Z')

    def test_parse_amount(self):
        self.assertEqual(model.parse_amount(12), decimal.Decimal(12))
        self.assertEqual(model.parse_amount('12.50'), decimal.Decimal('12.50'))
        self.assertEqual(model.parse_amount(0.1), decimal.Decimal('0.1'))
        self.assertEqual(model.parse_amount(None), 0)
        self.assertEqual(model.parse_amount(True), 0)
        self.assertEqual(model.parse_amount('abc'), 0)

    def test_category_parse(self):
        self.assertIs(Category.parse('Food'), Category.Food)
        self.assertIs(Category.parse(Category.Bills), Category.Bills)
        self.assertIs(Category.parse('food'), Category.Other)
        self.assertIs(Category.parse(None), Category.Other)

    def test_fixed_enumerations(self):
        self.assertEqual(len(Category), 9)
        self.assertEqual([p.value for p in Period], ['daily', 'weekly', 'monthly', 'yearly'])
        self.assertIs(model.DEFAULT_CATEGORY, Category.Other)
        self.assertIs(model.DEFAULT_PERIOD, Period.Weekly)


class PayloadTests(unittest.TestCase):

    def test_expense_from_dict(self):
        expense = Expense.from_dict({
            '_id': 'abc123',
            'amount': 99.99,
            'category': 'Health',
            'description': 'Pharmacy',
            'date': '2025-02-10T00:00:00.000Z',
        })
        self.assertEqual(expense.id, 'abc123')
        self.assertEqual(expense.amount, decimal.Decimal('99.99'))
        self.assertIs(expense.category, Category.Health)
        self.assertEqual(expense.date.year, 2025)

    def test_expense_from_sparse_dict(self):
        expense = Expense.from_dict({'id': 7})
        self.assertEqual(expense.id, '7')
        self.assertEqual(expense.amount, 0)
        self.assertIs(expense.category, Category.Other)
        self.assertEqual(expense.description, '')
        self.assertIsNone(expense.date)

    def test_expense_list(self):
        result = ExpenseList.from_dict({'expenses': [{'amount': 1}, 'junk', {'amount': 2}], 'total': 3})
        self.assertEqual(len(result.expenses), 2)
        self.assertEqual(result.total, 3)

        empty = ExpenseList.from_dict({})
        self.assertEqual(empty.expenses, [])
        self.assertEqual(empty.total, 0)

    def test_stats(self):
        stats = Stats.from_dict({
            'totalAmount': '150.5',
            'totalExpenses': 3,
            'chartData': [{'date': '2025-03-01T00:00:00Z', 'amount': 150.5}],
            'categoryStats': {'Food': 100, 'Bills': '50.5'},
        })
        self.assertEqual(stats.total_amount, 150.5)
        self.assertEqual(stats.total_expenses, 3)
        self.assertEqual(stats.category_stats, {'Food': 100.0, 'Bills': 50.5})
        self.assertEqual(stats.chart_data[0]['amount'], 150.5)
        self.assertFalse(stats.is_empty)

    def test_empty_stats(self):
        self.assertTrue(Stats.from_dict(None).is_empty)
        self.assertTrue(Stats.from_dict({}).is_empty)
        self.assertEqual(Stats.empty().chart_data, [])


class FormValidationTests(unittest.TestCase):

    def test_valid_expense_form(self):
        date = datetime.datetime(2025, 3, 1)
        draft = model.validate_expense_form(' 12.5 ', '  Coffee  ', 'Food', date)

        self.assertEqual(draft.amount, decimal.Decimal('12.5'))
        self.assertEqual(draft.description, 'Coffee')
        self.assertIs(draft.category, Category.Food)
        self.assertEqual(draft.to_payload(), {
            'amount': 12.5,
            'category': 'Food',
            'description': 'Coffee',
            'date': '2025-03-01T00:00:00.000Z',
        })

    def test_expense_form_defaults(self):
        draft = model.validate_expense_form('1', 'x', category='Unknown')
        self.assertIs(draft.category, Category.Other)
        self.assertIsInstance(draft.date, datetime.datetime)

    def test_expense_form_required_fields(self):
        for amount, description in (('', 'x'), ('1', ''), ('  ', '  '), (None, None)):
            with self.assertRaises(status.ValidationException) as ctx:
                model.validate_expense_form(amount, description)
            self.assertEqual(ctx.exception.user_message, 'Please fill in all required fields')

    def test_expense_form_invalid_amount(self):
        for amount in ('abc', '0', '-1', '1e', 'inf', 'NaN'):
            with self.assertRaises(status.ValidationException) as ctx:
                model.validate_expense_form(amount, 'x')
            self.assertEqual(ctx.exception.user_message, 'Please enter a valid amount')

    def test_login_form(self):
        model.validate_login_form('a@example.com', 'pw')
        with self.assertRaises(status.ValidationException):
            model.validate_login_form('', 'pw')
        with self.assertRaises(status.ValidationException):
            model.validate_login_form('a@example.com', '')

    def test_signup_form(self):
        model.validate_signup_form('Asha', 'a@example.com', 'pw', 'pw')
        with self.assertRaises(status.ValidationException) as ctx:
            model.validate_signup_form('Asha', 'a@example.com', 'pw', 'other')
        self.assertEqual(ctx.exception.user_message, 'Passwords do not match')

    def test_otp(self):
        self.assertEqual(model.validate_otp(' 1234 '), '1234')
        self.assertEqual(model.validate_otp('123456'), '123456')
        for otp in ('123', '1234567', 'abcd', '', None):
            with self.assertRaises(status.ValidationException):
                model.validate_otp(otp)
