"""
Logging subsystem for ExpenseClient.

Modules:

- :mod:`ExpenseClient.log.log` – Root logger setup, Qt message bridge and the in-memory log tank.
"""
