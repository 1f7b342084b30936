"""Data analytics API for fetched expenses and stats.

This module turns the transient copies of expenses and stats held by the screens into
pandas DataFrames and derives the summaries they display: top categories, the last
seven days of spending, the sorted stats chart series and the per-category breakdown.
"""
import datetime
import logging
from typing import Iterable, List, Optional

import pandas as pd

from .model import Expense, Stats

EXPENSE_DATA_COLUMNS: List[str] = ['id', 'date', 'amount', 'category', 'description']
CATEGORY_DATA_COLUMNS: List[str] = ['category', 'amount', 'percentage']
CHART_DATA_COLUMNS: List[str] = ['date', 'amount']


def _naive(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Convert aware datetimes to naive local time so they compare with each other."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def expenses_to_frame(expenses: Iterable[Expense]) -> pd.DataFrame:
    """Build a DataFrame of expenses sorted by date.

    Rows without a parsable date are kept at the end.

    Args:
        expenses: Expenses as parsed from the API.

    Returns:
        pd.DataFrame: Columns EXPENSE_DATA_COLUMNS, 'amount' as float, 'date' as datetime64.
    """
    rows = [
        {
            'id': e.id,
            'date': _naive(e.date),
            'amount': float(e.amount),
            'category': e.category.value,
            'description': e.description,
        }
        for e in expenses
    ]
    if not rows:
        return pd.DataFrame(columns=EXPENSE_DATA_COLUMNS)

    df = pd.DataFrame(rows, columns=EXPENSE_DATA_COLUMNS)
    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce').fillna(0.0)
    return df.sort_values(by='date', ascending=True, na_position='last').reset_index(drop=True)


def get_top_categories(expenses: Iterable[Expense], limit: int = 3) -> pd.DataFrame:
    """Return the categories with the highest spending.

    Args:
        expenses: Expenses as parsed from the API.
        limit: Maximum number of categories returned.

    Returns:
        pd.DataFrame: Columns CATEGORY_DATA_COLUMNS sorted by amount, descending. The
        percentage is a rounded integer share of the total, 0 when nothing was spent.
    """
    df = expenses_to_frame(expenses)
    if df.empty:
        return pd.DataFrame(columns=CATEGORY_DATA_COLUMNS)

    totals = df.groupby('category', sort=False)['amount'].sum().reset_index()
    total_spent = totals['amount'].sum()
    if total_spent > 0:
        totals['percentage'] = (totals['amount'] / total_spent * 100).round(0).astype(int)
    else:
        totals['percentage'] = 0

    totals = totals.sort_values(by='amount', ascending=False, kind='stable')
    return totals.head(limit).reset_index(drop=True)[CATEGORY_DATA_COLUMNS]


def get_last_seven_days(expenses: Iterable[Expense], today: Optional[datetime.date] = None) -> List[float]:
    """Daily spending over the last seven days.

    Args:
        expenses: Expenses as parsed from the API.
        today: The reference day, defaults to the current local date.

    Returns:
        list[float]: Seven totals, oldest first, today last. Expenses outside the window
        or without a date are ignored.
    """
    today = today or datetime.date.today()
    totals = [0.0] * 7

    df = expenses_to_frame(expenses)
    if df.empty:
        return totals

    df = df.dropna(subset=['date'])
    days_ago = (pd.Timestamp(today) - df['date'].dt.normalize()).dt.days
    for diff, amount in zip(days_ago, df['amount']):
        if 0 <= diff < 7:
            totals[6 - diff] += float(amount)
    return totals


def get_chart_series(stats: Stats) -> pd.DataFrame:
    """Return the stats chart data sorted by date, ascending.

    Points without a parsable date are dropped.
    """
    if not stats.chart_data:
        return pd.DataFrame(columns=CHART_DATA_COLUMNS)

    df = pd.DataFrame(
        [{'date': _naive(p['date']), 'amount': p['amount']} for p in stats.chart_data],
        columns=CHART_DATA_COLUMNS,
    )
    df['date'] = pd.to_datetime(df['date'], errors='coerce')
    clean_df = df.dropna(subset=['date'])
    if len(clean_df) != len(df):
        logging.warning(f'Dropped {len(df) - len(clean_df)} chart points with an invalid date.')
    return clean_df.sort_values(by='date', ascending=True).reset_index(drop=True)


def get_category_breakdown(stats: Stats) -> pd.DataFrame:
    """Per-category amounts of a stats period with their share of the period total.

    Returns:
        pd.DataFrame: Columns CATEGORY_DATA_COLUMNS sorted by amount, descending. The
        percentage has one decimal and is 0 when the total is 0.
    """
    if not stats.category_stats:
        return pd.DataFrame(columns=CATEGORY_DATA_COLUMNS)

    df = pd.DataFrame(
        list(stats.category_stats.items()),
        columns=['category', 'amount'],
    )
    if stats.total_amount > 0:
        df['percentage'] = (df['amount'] / stats.total_amount * 100).round(1)
    else:
        df['percentage'] = 0.0
    df = df.sort_values(by='amount', ascending=False, kind='stable')
    return df.reset_index(drop=True)[CATEGORY_DATA_COLUMNS]
