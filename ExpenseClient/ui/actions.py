"""Application-wide Qt signals for ExpenseClient.

This module provides:
    - Signals: custom Qt signals for configuration changes, the session lifecycle,
      data fetch results, navigation requests and error reporting.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for application config, session, data, and UI events."""
    initializationRequested = QtCore.Signal()

    configSectionChanged = QtCore.Signal(str)  # Section
    metadataChanged = QtCore.Signal(str, object)

    loggedIn = QtCore.Signal(object)  # Session
    loggedOut = QtCore.Signal()
    sessionRefreshed = QtCore.Signal(object)  # Session
    sessionExpired = QtCore.Signal()

    expensesFetched = QtCore.Signal(object)  # ExpenseList
    expenseAdded = QtCore.Signal(object)  # Expense or None
    statsFetched = QtCore.Signal(str, object)  # Period, Stats

    navigationRequested = QtCore.Signal(str)  # Route

    showLogs = QtCore.Signal()

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        @QtCore.Slot()
        def _on_session_expired() -> None:
            logging.debug('Session expired, requesting the login route.')
            self.navigationRequested.emit('login')

        self.sessionExpired.connect(_on_session_expired)
        self.loggedOut.connect(_on_session_expired)


signals = Signals()
