"""
UI package: application signals and screen controllers.

- :mod:`ExpenseClient.ui.actions` – Centralized Qt signals shared by every layer.
- :mod:`ExpenseClient.ui.screens` – Non-visual controllers for the login, signup, home,
  add-expense, stats and settings screens.
"""
