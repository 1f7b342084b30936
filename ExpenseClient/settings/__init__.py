"""
Settings package: configuration API and locale helpers.

This package provides:

- :mod:`ExpenseClient.settings.lib` – Core settings management and schema validation.
- :mod:`ExpenseClient.settings.locale` – Localization utilities for formatting amounts.
"""
