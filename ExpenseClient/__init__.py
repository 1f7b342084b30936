"""
ExpenseClient: client for a remote expense-tracking API.

This package provides:

- :mod:`ExpenseClient.core` – The persistent session store, the bearer-token session manager with one-shot refresh, and the remote API endpoints.
- :mod:`ExpenseClient.data` – Expense and stats types, form validation and pandas summaries (:func:`ExpenseClient.data.data.get_top_categories`, :func:`ExpenseClient.data.data.get_category_breakdown`).
- :mod:`ExpenseClient.ui` – Application signals and the non-visual screen controllers (login, signup, home, add expense, stats, settings).
- :mod:`ExpenseClient.settings` – Client configuration with schema validation, and locale-aware formatting.
- :mod:`ExpenseClient.log` – In-app logging with an in-memory log tank.

Use :func:`ExpenseClient.exec_` to start the client event loop.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ExpenseClient requires Python 3.11 or higher.')

__version__ = '0.0.0'
__author__ = 'Gergely Wootsch'
__license__ = 'GPL-3.0'
__copyright__ = 'Copyright (C) 2025 Gergely Wootsch'
__description__ = 'ExpenseClient: client for tracking personal expenses against a remote expense API.'
__url__ = 'https://github.com/wgergely/ExpenseTracker'
__email__ = 'hello+ExpenseTracker@gergely-wootsch.com'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Start the client event loop.

    Initializes the QCoreApplication, resolves the initial route from the stored session
    and enters the Qt event loop.
    """
    import logging
    from .ui import screens
    from .ui.actions import signals

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication(sys.argv)

    signals.navigationRequested.connect(lambda route: logging.info(f'Navigate: {route}'))

    root = screens.RootController()
    root.navigationRequested.connect(signals.navigationRequested)

    # Ask components to load their data
    QtCore.QTimer.singleShot(0, signals.initializationRequested)
    QtCore.QTimer.singleShot(0, root.start)

    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
