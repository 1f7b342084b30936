"""Test suite for ExpenseClient.

QStandardPaths test mode is switched on before the package is imported so the config
and the session store created at import time never touch the user's real data.
"""
from PySide6 import QtCore

QtCore.QStandardPaths.setTestModeEnabled(True)
