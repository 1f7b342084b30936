"""Remote expense API integration with asynchronous operations.

Each endpoint has a private synchronous implementation (``_login``, ``_fetch_expenses``...)
and a public wrapper of the same name that runs it on an :class:`AsyncWorker` thread while
a local Qt event loop keeps the application responsive.

Authenticated endpoints go through :data:`ExpenseClient.core.auth.session_manager` and
return the session that signed the final request along with their result, so callers can
keep their session reference current after a token refresh.
"""

import logging
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

import requests
from PySide6 import QtCore

from . import auth
from .auth import Session
from ..data.model import Expense, ExpenseDraft, ExpenseList, Period, Stats
from ..settings import lib
from ..status import status

TOTAL_TIMEOUT: int = 180

# Workers that outlived their caller's timeout. Kept referenced until they finish.
_orphaned_workers: Set['AsyncWorker'] = set()


class AsyncWorker(QtCore.QThread):
    """
    Worker thread running a blocking function exactly once.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception instance on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(result)


def _reap_workers() -> None:
    for worker in [w for w in _orphaned_workers if w.isFinished()]:
        _orphaned_workers.discard(worker)


def start_asynchronous(func: Callable[..., Any], *args: Any, total_timeout: int = TOTAL_TIMEOUT,
                       status_text: str = 'Contacting the server.', **kwargs: Any) -> Any:
    """
    Generic asynchronous operation wrapper.

    Runs func on an AsyncWorker and waits on a local event loop. Without a Qt application
    instance the function is called directly.

    Args:
        func: The blocking function to run.
        *args, **kwargs: Arguments passed to func.
        total_timeout (int): Seconds to wait before giving up on the result. The worker is
            not cancelled; its result is discarded.
        status_text (str): Description used in log messages.

    Returns:
        The result of the function on success.

    Raises:
        status.BaseStatusException: Raised by func, propagated unchanged.
        status.ServiceUnavailableException: If the operation timed out.
        status.UnknownException: For any other error raised by func.
    """
    _reap_workers()

    if QtCore.QCoreApplication.instance() is None:
        logging.debug(f'No Qt application instance; running "{status_text}" synchronously.')
        return func(*args, **kwargs)

    logging.debug(status_text)
    worker: AsyncWorker = AsyncWorker(func, *args, **kwargs)

    result: Dict[str, Any] = {'data': None, 'error': None}
    loop: QtCore.QEventLoop = QtCore.QEventLoop()

    worker.resultReady.connect(lambda d: result.update({'data': d}), QtCore.Qt.DirectConnection)
    worker.errorOccurred.connect(lambda err: result.update({'error': err}), QtCore.Qt.DirectConnection)
    worker.finished.connect(loop.quit, QtCore.Qt.QueuedConnection)

    timer: QtCore.QTimer = QtCore.QTimer()
    timer.setSingleShot(True)
    timer.setInterval(total_timeout * 1000)
    timer.timeout.connect(loop.quit)

    worker.start()
    timer.start()
    loop.exec()
    timer.stop()

    if worker.isRunning():
        _orphaned_workers.add(worker)
        raise status.ServiceUnavailableException(f'{status_text} Operation timed out.')
    worker.wait()

    err = result['error']
    if err is None:
        return result['data']

    # Propagate known status exceptions directly
    if isinstance(err, status.BaseStatusException):
        raise err
    raise status.UnknownException(str(err)) from err


def _is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def _error_message(response: requests.Response) -> Optional[str]:
    """The server's 'message' field of an error body, if any."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get('message'), str):
        return data['message']
    return None


def _raise_for_status(response: requests.Response, fallback: str) -> None:
    """
    Raise an ApiException carrying the server's message for a non-success response.
    """
    if _is_success(response):
        return
    message = _error_message(response)
    logging.debug(f'HTTP {response.status_code}: {message or fallback}')
    raise status.ApiException(message or fallback, status_code=response.status_code)


def _json_body(response: requests.Response) -> Dict[str, Any]:
    """
    Decode the JSON object of a successful response.

    Raises:
        status.ApiException: If the body is not a JSON object.
    """
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as ex:
        raise status.ApiException('The server returned an invalid response.',
                                  status_code=response.status_code) from ex
    if not isinstance(data, dict):
        raise status.ApiException('The server returned an unexpected response.',
                                  status_code=response.status_code)
    return data


def _post(path: str, payload: Dict[str, Any]) -> requests.Response:
    """
    Send an unauthenticated JSON POST.

    Raises:
        status.ServiceUnavailableException: If the API could not be reached.
    """
    url = auth.session_manager.url(path)
    logging.debug(f'POST {url}')
    try:
        return auth.session_manager.http.post(url, json=payload, timeout=lib.settings.timeout)
    except requests.exceptions.RequestException as ex:
        raise status.ServiceUnavailableException(f'POST {url} failed: {ex}') from ex


def _session_from_body(data: Dict[str, Any], status_code: int) -> Session:
    token = data.get('token')
    user = data.get('user')
    if not token or not isinstance(token, str) or not isinstance(user, dict):
        raise status.ApiException('The server response is missing the session.', status_code=status_code)
    try:
        session = auth.session_manager.save_session(token, user)
    except ValueError as ex:
        raise status.ApiException(f'The server returned an invalid user: {ex}', status_code=status_code) from ex

    from ..ui.actions import signals
    signals.loggedIn.emit(session)
    return session


def _login(email: str, password: str) -> Session:
    """
    Sign in with email and password and persist the returned session.

    Returns:
        Session: The new session.

    Raises:
        status.ApiException: Wrong credentials or a malformed response.
        status.ServiceUnavailableException: Network error.
    """
    response = _post('login', {'email': email.strip(), 'password': password})
    _raise_for_status(response, 'Login failed')
    session = _session_from_body(_json_body(response), response.status_code)
    logging.info(f'Signed in as {session.user.email}.')
    return session


def login(email: str, password: str, total_timeout: int = TOTAL_TIMEOUT) -> Session:
    """
    Asynchronously signs in.
    """
    return start_asynchronous(_login, email, password, total_timeout=total_timeout,
                              status_text='Signing in.')


def _sign_up(name: str, email: str, password: str) -> Dict[str, Any]:
    """
    Create an account without email verification.

    Returns:
        dict: The response body.
    """
    response = _post('signUp', {'name': name.strip(), 'email': email.strip(), 'password': password})
    _raise_for_status(response, 'Signup failed')
    return _json_body(response)


def sign_up(name: str, email: str, password: str, total_timeout: int = TOTAL_TIMEOUT) -> Dict[str, Any]:
    """
    Asynchronously creates an account.
    """
    return start_asynchronous(_sign_up, name, email, password, total_timeout=total_timeout,
                              status_text='Creating account.')


def _send_otp(name: str, email: str, password: str) -> Dict[str, Any]:
    """
    Ask the server to email a one-time code for a pending signup.
    """
    response = _post('sendOTP', {'name': name.strip(), 'email': email.strip(), 'password': password})
    _raise_for_status(response, 'Failed to send OTP')
    return _json_body(response)


def send_otp(name: str, email: str, password: str, total_timeout: int = TOTAL_TIMEOUT) -> Dict[str, Any]:
    """
    Asynchronously requests a signup code.
    """
    return start_asynchronous(_send_otp, name, email, password, total_timeout=total_timeout,
                              status_text='Sending verification code.')


def _verify_otp_and_signup(name: str, email: str, password: str, otp: str) -> Optional[Session]:
    """
    Verify the emailed code and complete the signup.

    Returns:
        Session or None: The new session when the server signs the user in right away,
        None when it only confirms the account.
    """
    response = _post('verifyOTPAndSignup', {
        'name': name.strip(),
        'email': email.strip(),
        'password': password,
        'otp': otp,
    })
    _raise_for_status(response, 'OTP verification failed')
    data = _json_body(response)
    if data.get('token') and data.get('user'):
        return _session_from_body(data, response.status_code)
    return None


def verify_otp_and_signup(name: str, email: str, password: str, otp: str,
                          total_timeout: int = TOTAL_TIMEOUT) -> Optional[Session]:
    """
    Asynchronously verifies the signup code.
    """
    return start_asynchronous(_verify_otp_and_signup, name, email, password, otp,
                              total_timeout=total_timeout, status_text='Verifying code.')


def _resend_otp(email: str) -> Dict[str, Any]:
    """
    Ask the server to send the signup code again.
    """
    response = _post('resendOTP', {'email': email.strip()})
    _raise_for_status(response, 'Failed to resend OTP')
    return _json_body(response)


def resend_otp(email: str, total_timeout: int = TOTAL_TIMEOUT) -> Dict[str, Any]:
    """
    Asynchronously resends the signup code.
    """
    return start_asynchronous(_resend_otp, email, total_timeout=total_timeout,
                              status_text='Resending verification code.')


def _fetch_expenses(session: Optional[Session] = None) -> Tuple[ExpenseList, Session]:
    """
    Fetch the signed-in user's expenses.

    Returns:
        tuple: The expenses and the session that signed the request.

    Raises:
        status.ReauthenticationRequiredException: The session is gone.
        status.ApiException: The server rejected the request.
        status.ServiceUnavailableException: Network error.
    """
    response, session = auth.session_manager.authorized_request('GET', 'expenses', session=session)
    _raise_for_status(response, 'Failed to fetch expenses')
    expenses = ExpenseList.from_dict(_json_body(response))
    logging.debug(f'Fetched {len(expenses.expenses)} expenses.')

    from ..ui.actions import signals
    signals.expensesFetched.emit(expenses)
    return expenses, session


def fetch_expenses(session: Optional[Session] = None,
                   total_timeout: int = TOTAL_TIMEOUT) -> Tuple[ExpenseList, Session]:
    """
    Asynchronously fetches expenses.
    """
    return start_asynchronous(_fetch_expenses, session=session, total_timeout=total_timeout,
                              status_text='Fetching expenses.')


def _add_expense(draft: ExpenseDraft, session: Optional[Session] = None) -> Tuple[Optional[Expense], Session]:
    """
    Create an expense.

    Returns:
        tuple: The created expense (None if the server did not echo it) and the session
        that signed the request.
    """
    response, session = auth.session_manager.authorized_request(
        'POST', 'expenses', body=draft.to_payload(), session=session)
    _raise_for_status(response, 'Failed to add expense')

    data = _json_body(response)
    item = data.get('expense', data)
    expense = Expense.from_dict(item) if isinstance(item, dict) and 'amount' in item else None
    logging.info(f'Added expense: {draft.amount} {draft.category}.')

    from ..ui.actions import signals
    signals.expenseAdded.emit(expense)
    return expense, session


def add_expense(draft: ExpenseDraft, session: Optional[Session] = None,
                total_timeout: int = TOTAL_TIMEOUT) -> Tuple[Optional[Expense], Session]:
    """
    Asynchronously creates an expense.
    """
    return start_asynchronous(_add_expense, draft, session=session, total_timeout=total_timeout,
                              status_text='Adding expense.')


def _fetch_stats(period: Union[Period, str], session: Optional[Session] = None) -> Tuple[Stats, Session]:
    """
    Fetch aggregated spending for a period.

    Raises:
        status.ValidationException: If period is not one of the supported periods.
    """
    try:
        period = Period(period)
    except ValueError:
        raise status.ValidationException(f'Unknown period "{period}"')

    response, session = auth.session_manager.authorized_request(
        'GET', 'expenses/stats', params={'period': period.value}, session=session)
    _raise_for_status(response, 'Failed to fetch stats')
    stats = Stats.from_dict(_json_body(response).get('stats'))

    from ..ui.actions import signals
    signals.statsFetched.emit(period.value, stats)
    return stats, session


def fetch_stats(period: Union[Period, str], session: Optional[Session] = None,
                total_timeout: int = TOTAL_TIMEOUT) -> Tuple[Stats, Session]:
    """
    Asynchronously fetches stats for a period.
    """
    return start_asynchronous(_fetch_stats, period, session=session, total_timeout=total_timeout,
                              status_text='Fetching stats.')
