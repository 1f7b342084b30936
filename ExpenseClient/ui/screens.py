"""Non-visual screen controllers.

Each controller mirrors the view state of one screen of the app in plain attributes and
talks to the outside world through two signals: ``alert(title, message)`` for message boxes
and ``navigationRequested(route)`` for navigation. Rendering is left to whatever view binds
to them.

Authenticated screens hold the session returned by
:data:`~ExpenseClient.core.auth.session_manager` and replace it with the session returned
by every service call, so a refreshed token is picked up without re-reading the store.
"""
import datetime
import decimal
import logging
from typing import Any, Callable, List, Optional, Tuple

import pandas as pd
from PySide6 import QtCore

from ..core import auth
from ..core import service
from ..core.auth import Session, User
from ..data import data
from ..data.model import (
    DEFAULT_CATEGORY,
    DEFAULT_PERIOD,
    Category,
    Expense,
    Period,
    Stats,
    validate_expense_form,
    validate_login_form,
    validate_otp,
    validate_signup_form,
)
from ..settings import lib
from ..settings import locale
from ..status import status
from .actions import signals

ROUTE_LOGIN: str = 'login'
ROUTE_SIGNUP: str = 'signup'
ROUTE_TABS: str = 'tabs'
ROUTE_ADD_EXPENSE: str = 'add-expense'
ROUTE_STATS: str = 'stats'
ROUTE_SETTINGS: str = 'settings'

ERROR_TITLE: str = 'Error'
SUCCESS_TITLE: str = 'Success'
SESSION_EXPIRED_TITLE: str = 'Session Expired'
SESSION_EXPIRED_MESSAGE: str = 'Please login again'
NETWORK_ERROR_MESSAGE: str = 'Network error. Please try again.'
GENERIC_ERROR_MESSAGE: str = 'Something went wrong'

PREFERENCE_KEYS: List[str] = [
    'notifications_enabled',
    'theme',
    'biometric_enabled',
    'default_period',
    'default_category',
    'locale',
]


class RootController(QtCore.QObject):
    """Decides where the app starts."""
    navigationRequested = QtCore.Signal(str)

    def initial_route(self) -> str:
        """Return 'tabs' when a stored session loads, 'login' otherwise."""
        route = ROUTE_TABS if auth.session_manager.load_session() is not None else ROUTE_LOGIN
        logging.debug(f'Initial route: {route}')
        return route

    def start(self) -> str:
        route = self.initial_route()
        self.navigationRequested.emit(route)
        return route


class BaseScreen(QtCore.QObject):
    """
    Shared state and error handling of every screen.

    Attributes:
        session (Session): The session this screen signs its requests with.
        loading (bool): True while a request is in flight.
    """
    alert = QtCore.Signal(str, str)  # Title, message
    navigationRequested = QtCore.Signal(str)  # Route

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        self.session: Optional[Session] = None
        self.loading: bool = False

        self._connect_signals()

    def _connect_signals(self) -> None:
        signals.sessionRefreshed.connect(self.session_refreshed)
        signals.sessionExpired.connect(self.session_cleared)
        signals.loggedOut.connect(self.session_cleared)

    @QtCore.Slot(object)
    def session_refreshed(self, session: Session) -> None:
        """Pick up a token refreshed by another caller for the same user."""
        if self.session is not None and self.session.user == session.user:
            self.session = session

    @QtCore.Slot()
    def session_cleared(self) -> None:
        self.session = None

    def mount(self) -> bool:
        """
        Load the stored session.

        Returns:
            bool: False if there is no session. The user has been sent to the login
            screen in that case.
        """
        self.session = auth.session_manager.load_session()
        if self.session is None:
            self._session_expired()
            return False
        return True

    def _session_expired(self) -> None:
        self.session = None
        self.alert.emit(SESSION_EXPIRED_TITLE, SESSION_EXPIRED_MESSAGE)
        self.navigationRequested.emit(ROUTE_LOGIN)

    def _handle_error(self, ex: Exception, fallback: str = GENERIC_ERROR_MESSAGE) -> None:
        """
        Recover from a failed action at the screen boundary.

        Validation and API errors are shown verbatim, network errors get a generic retry
        message and a lost session sends the user back to the login screen.
        """
        if isinstance(ex, status.ReauthenticationRequiredException):
            self._session_expired()
        elif isinstance(ex, status.ServiceUnavailableException):
            self.alert.emit(ERROR_TITLE, NETWORK_ERROR_MESSAGE)
        elif isinstance(ex, status.ValidationException):
            self.alert.emit(ERROR_TITLE, ex.user_message)
        elif isinstance(ex, status.ApiException):
            self.alert.emit(ERROR_TITLE, ex.message or fallback)
        else:
            logging.error(f'Unhandled error: {ex}')
            self.alert.emit(ERROR_TITLE, fallback)

    def _run(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call func with the loading flag set."""
        self.loading = True
        try:
            return func(*args, **kwargs)
        finally:
            self.loading = False

    def _ensure_session(self) -> bool:
        if self.session is not None:
            return True
        return self.mount()


class LoginScreen(BaseScreen):
    """Email and password sign in."""

    def submit(self, email: str, password: str) -> bool:
        """
        Validate the form, sign in and go to the home tabs.

        Returns:
            bool: True on success.
        """
        try:
            validate_login_form(email, password)
            self.session = self._run(service.login, email, password)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Login failed')
            return False

        self.alert.emit(SUCCESS_TITLE, 'Login successful!')
        self.navigationRequested.emit(ROUTE_TABS)
        return True


class SignupScreen(BaseScreen):
    """
    Account creation, either directly or through an emailed one-time code.

    Attributes:
        otp_sent (bool): True once a code was requested for the pending form.
    """

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        self.otp_sent: bool = False
        self._pending: Optional[dict] = None

    def submit(self, name: str, email: str, password: str, confirm_password: str) -> bool:
        """Create the account without verification and go to the login screen."""
        try:
            validate_signup_form(name, email, password, confirm_password)
            body = self._run(service.sign_up, name, email, password)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Signup failed')
            return False

        self.alert.emit(SUCCESS_TITLE, body.get('message') or 'Sign up successful!')
        self.navigationRequested.emit(ROUTE_LOGIN)
        return True

    def request_otp(self, name: str, email: str, password: str, confirm_password: str) -> bool:
        """Validate the form and ask the server to email a code."""
        try:
            validate_signup_form(name, email, password, confirm_password)
            body = self._run(service.send_otp, name, email, password)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Failed to send OTP')
            return False

        self._pending = {'name': name, 'email': email, 'password': password}
        self.otp_sent = True
        self.alert.emit(SUCCESS_TITLE, body.get('message') or 'OTP sent to your email')
        return True

    def verify_otp(self, otp: str) -> bool:
        """
        Verify the code and finish the signup.

        The user lands on the home tabs when the server signs them in right away and on
        the login screen otherwise.
        """
        if not self._pending:
            self.alert.emit(ERROR_TITLE, 'Please request a verification code first')
            return False

        try:
            otp = validate_otp(otp)
            session = self._run(service.verify_otp_and_signup, otp=otp, **self._pending)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'OTP verification failed')
            return False

        self._pending = None
        self.otp_sent = False
        self.alert.emit(SUCCESS_TITLE, 'Account created successfully!')

        if session is not None:
            self.session = session
            self.navigationRequested.emit(ROUTE_TABS)
        else:
            self.navigationRequested.emit(ROUTE_LOGIN)
        return True

    def resend_otp(self) -> bool:
        if not self._pending:
            self.alert.emit(ERROR_TITLE, 'Please request a verification code first')
            return False

        try:
            body = self._run(service.resend_otp, self._pending['email'])
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Failed to resend OTP')
            return False

        self.alert.emit(SUCCESS_TITLE, body.get('message') or 'OTP resent to your email')
        return True


class HomeScreen(BaseScreen):
    """
    The dashboard: recent expenses, their total, top categories and the last week.

    Attributes:
        expenses (list[Expense]): The last fetched expenses.
        total (Decimal): The total reported by the server.
        top_categories (pd.DataFrame): See :func:`~ExpenseClient.data.data.get_top_categories`.
        weekly_totals (list[float]): Seven daily totals, today last.
    """

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        self.expenses: List[Expense] = []
        self.total: decimal.Decimal = decimal.Decimal(0)
        self.top_categories: pd.DataFrame = pd.DataFrame(columns=data.CATEGORY_DATA_COLUMNS)
        self.weekly_totals: List[float] = [0.0] * 7

    @property
    def first_name(self) -> str:
        if self.session is None:
            return 'User'
        return self.session.user.first_name

    @property
    def total_text(self) -> str:
        return locale.format_currency_value(float(self.total), lib.settings['locale'] or locale.DEFAULT_LOCALE)

    def mount(self) -> bool:
        if not super().mount():
            return False
        return self.refresh()

    def refresh(self) -> bool:
        """Fetch the expenses again."""
        if not self._ensure_session():
            return False

        try:
            result, self.session = self._run(service.fetch_expenses, session=self.session)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Failed to fetch expenses')
            return False

        self.expenses = result.expenses
        self.total = result.total
        self.top_categories = data.get_top_categories(self.expenses)
        self.weekly_totals = data.get_last_seven_days(self.expenses)
        return True


class AddExpenseScreen(BaseScreen):
    """The add-expense form."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        self.reset()

    def reset(self) -> None:
        """Restore the empty form."""
        self.amount: str = ''
        self.description: str = ''
        self.category: Category = Category.parse(lib.settings['default_category'] or DEFAULT_CATEGORY)
        self.date: Optional[datetime.datetime] = None

    def submit(self, amount: str, description: str, category: Any = None,
               date: Optional[datetime.datetime] = None) -> bool:
        """
        Validate the form and post the expense.

        Returns:
            bool: True if the expense was created. The form is reset in that case.
        """
        self.amount = amount
        self.description = description
        if category is not None:
            self.category = Category.parse(category)
        self.date = date

        try:
            draft = validate_expense_form(amount, description, category=self.category, date=date)
        except status.ValidationException as ex:
            self._handle_error(ex)
            return False

        if not self._ensure_session():
            return False

        try:
            _, self.session = self._run(service.add_expense, draft, session=self.session)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Failed to add expense')
            return False

        self.reset()
        self.alert.emit(SUCCESS_TITLE, 'Expense added successfully!')
        self.navigationRequested.emit(ROUTE_TABS)
        return True


class StatsScreen(BaseScreen):
    """
    Spending statistics for a selectable period.

    Attributes:
        period (Period): The selected period.
        stats (Stats): The last fetched stats.
        chart_series (pd.DataFrame): Chart points sorted by date.
        breakdown (pd.DataFrame): Per category amounts and percentages.
    """

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        try:
            self.period: Period = Period(lib.settings['default_period'] or DEFAULT_PERIOD)
        except ValueError:
            self.period = DEFAULT_PERIOD
        self._set_stats(Stats.empty())

    def _set_stats(self, stats: Stats) -> None:
        self.stats = stats
        self.chart_series = data.get_chart_series(stats)
        self.breakdown = data.get_category_breakdown(stats)

    @property
    def total_text(self) -> str:
        return locale.format_currency_value(self.stats.total_amount, lib.settings['locale'] or locale.DEFAULT_LOCALE)

    @property
    def breakdown_rows(self) -> List[Tuple[str, str, str]]:
        """Category, formatted amount and formatted share for each breakdown row."""
        loc = lib.settings['locale'] or locale.DEFAULT_LOCALE
        return [
            (
                row.category,
                locale.format_currency_value(row.amount, loc),
                locale.format_percent(row.percentage, loc, decimals=1),
            )
            for row in self.breakdown.itertuples(index=False)
        ]

    def mount(self) -> bool:
        if not super().mount():
            return False
        return self.refresh()

    def select_period(self, period: Any) -> bool:
        """Switch to another period and fetch its stats."""
        try:
            period = Period(period)
        except ValueError:
            self._handle_error(status.ValidationException(f'Unknown period "{period}"'))
            return False

        self.period = period
        return self.refresh()

    def refresh(self) -> bool:
        if not self._ensure_session():
            return False

        try:
            stats, self.session = self._run(service.fetch_stats, self.period, session=self.session)
        except status.BaseStatusException as ex:
            self._handle_error(ex, 'Failed to fetch stats')
            return False

        self._set_stats(stats)
        return True


class SettingsScreen(BaseScreen):
    """The signed-in user and the app preferences."""

    def __init__(self, parent=None) -> None:
        super().__init__(parent=parent)
        self.user: Optional[User] = None

    def mount(self) -> bool:
        if not super().mount():
            self.user = None
            return False
        self.user = self.session.user
        return True

    def get_preference(self, key: str) -> Any:
        if key not in PREFERENCE_KEYS:
            raise KeyError(f'Invalid preference: {key}, must be one of {PREFERENCE_KEYS}')
        return lib.settings[key]

    def set_preference(self, key: str, value: Any) -> bool:
        """
        Persist a preference.

        Returns:
            bool: False if the value was rejected. The user is alerted in that case.
        """
        if key not in PREFERENCE_KEYS:
            raise KeyError(f'Invalid preference: {key}, must be one of {PREFERENCE_KEYS}')
        try:
            lib.settings[key] = value
        except ValueError as ex:
            self._handle_error(status.ValidationException(str(ex)))
            return False
        return True

    def toggle_notifications(self) -> bool:
        return self.set_preference('notifications_enabled', not lib.settings['notifications_enabled'])

    def toggle_dark_mode(self) -> bool:
        theme = 'light' if lib.settings['theme'] == 'dark' else 'dark'
        return self.set_preference('theme', theme)

    def toggle_biometric(self) -> bool:
        return self.set_preference('biometric_enabled', not lib.settings['biometric_enabled'])

    def logout(self) -> None:
        """Sign out and go to the login screen. A store failure is reported but does not block it."""
        try:
            auth.session_manager.sign_out()
        except status.StorageInvalidException as ex:
            self._handle_error(ex, 'Failed to logout')
        self.session = None
        self.user = None
        self.navigationRequested.emit(ROUTE_LOGIN)
