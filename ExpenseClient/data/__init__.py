"""
Data package: value types and summaries.

- :mod:`ExpenseClient.data.model` – Expense, Stats and form validation.
- :mod:`ExpenseClient.data.data` – pandas summaries for the dashboard and the stats screen.
"""
