"""
Core package for ExpenseClient providing essential functionality.

This package includes:

- :mod:`ExpenseClient.core.storage` – Persistent key-value store for the session.
- :mod:`ExpenseClient.core.auth` – Session type and the bearer-token SessionManager with one-shot refresh.
- :mod:`ExpenseClient.core.service` – Remote API endpoints with asynchronous execution.
"""
