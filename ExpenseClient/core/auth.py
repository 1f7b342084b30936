"""
Bearer-token session management.

Provides the Session type, bearer credentials that know how to exchange a stale token
for a new one, and the SessionManager every screen uses to sign its API requests.

A logical request moves through ``UNSENT -> SENT -> {OK, AUTH_FAILED}`` and an
``AUTH_FAILED`` request through ``REFRESHING -> {RETRIED, LOGGED_OUT}``. There is at most
one refresh and one retry per call; a second 401 is returned to the caller as is.
"""

import dataclasses
import enum
import json
import logging
from typing import Any, Dict, Optional, Tuple, Union

import google.auth.credentials
import google.auth.exceptions
import google.auth.transport.requests
import requests

from . import storage as storage_module
from .storage import AUTH_TOKEN_KEY, USER_KEY
from ..settings import lib
from ..status import status

REFRESH_PATH: str = 'refresh-token'
UNAUTHORIZED: int = 401


class RequestState(enum.StrEnum):
    """States of one authorized request."""
    Unsent = 'UNSENT'
    Sent = 'SENT'
    Ok = 'OK'
    AuthFailed = 'AUTH_FAILED'
    Refreshing = 'REFRESHING'
    Retried = 'RETRIED'
    LoggedOut = 'LOGGED_OUT'


def _redact(token: Optional[str]) -> str:
    if not token:
        return '<none>'
    return f'{token[:6]}...'


@dataclasses.dataclass(frozen=True)
class User:
    """The signed-in user's identity."""
    id: Optional[str]
    name: str
    email: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        """Build a user from the API or store representation.

        Raises:
            ValueError: If data is not a dict or lacks a string name or email.
        """
        if not isinstance(data, dict):
            raise ValueError(f'User data must be an object, got {type(data)}.')
        name = data.get('name')
        email = data.get('email')
        if not isinstance(name, str) or not isinstance(email, str):
            raise ValueError('User data must contain "name" and "email".')
        _id = data.get('_id', data.get('id'))
        return cls(id=str(_id) if _id is not None else None, name=name, email=email)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'name': self.name, 'email': self.email}
        if self.id is not None:
            data['id'] = self.id
        return data

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else 'User'


@dataclasses.dataclass(frozen=True)
class Session:
    """An authenticated identity: the bearer token and the user it belongs to."""
    token: str
    user: User

    def with_token(self, token: str) -> 'Session':
        """Return a copy carrying a new token. The user is unchanged."""
        return dataclasses.replace(self, token=token)


class BearerCredentials(google.auth.credentials.Credentials):
    """Opaque bearer token credentials refreshed through the API's refresh endpoint."""

    def __init__(self, token: str, refresh_url: Optional[str] = None, timeout: Optional[int] = None):
        super().__init__()
        self.token = token
        self._refresh_url = refresh_url
        self._timeout = timeout

    @property
    def refresh_url(self) -> str:
        return self._refresh_url or f'{lib.settings.base_url}/{REFRESH_PATH}'

    def apply(self, headers, token=None):
        """Write the Authorization header for the current (or given) token."""
        headers['Authorization'] = f'Bearer {token or self.token}'

    def refresh(self, request):
        """Exchange the current token for a new one.

        Args:
            request (google.auth.transport.Request): The transport callable used for the call.

        Raises:
            google.auth.exceptions.RefreshError: On a transport error, a non-success
                response or a response without a token.
        """
        headers = {'Content-Type': 'application/json'}
        self.apply(headers)
        try:
            response = request(
                url=self.refresh_url,
                method='POST',
                headers=headers,
                timeout=self._timeout or lib.settings.timeout,
            )
        except google.auth.exceptions.TransportError as ex:
            raise google.auth.exceptions.RefreshError(f'Token refresh failed: {ex}') from ex

        if not 200 <= response.status < 300:
            raise google.auth.exceptions.RefreshError(
                f'Token refresh was rejected (HTTP {response.status}).'
            )

        try:
            data = json.loads(response.data or b'{}')
        except ValueError as ex:
            raise google.auth.exceptions.RefreshError('Token refresh returned invalid JSON.') from ex

        token = data.get('token') if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise google.auth.exceptions.RefreshError('Token refresh response has no token.')

        self.token = token


class SessionManager:
    """Owns the stored session and signs requests with it.

    Args:
        store: The key-value store to use. Defaults to the module-level store.
        http: The requests session used for all calls. Created on first use.
    """

    def __init__(self, store: Optional[storage_module.StorageAPI] = None,
                 http: Optional[requests.Session] = None) -> None:
        self._store = store
        self._http = http
        self._refresh_transport: Optional[google.auth.transport.requests.Request] = None

    @property
    def store(self) -> storage_module.StorageAPI:
        return self._store or storage_module.storage

    @property
    def http(self) -> requests.Session:
        if self._http is None:
            self._http = requests.Session()
        return self._http

    @property
    def refresh_transport(self) -> google.auth.transport.requests.Request:
        """The google-auth transport used for token refreshes, bound to :attr:`http`.

        Kept for the manager's lifetime. google-auth closes the wrapped session when a
        transport is collected, and the session is shared by every request.
        """
        if self._refresh_transport is None:
            self._refresh_transport = google.auth.transport.requests.Request(session=self.http)
        return self._refresh_transport

    @staticmethod
    def url(path: str) -> str:
        """Resolve an endpoint path against the configured base URL. Absolute URLs pass through."""
        if path.startswith(('http://', 'https://')):
            return path
        return f'{lib.settings.base_url}/{path.lstrip("/")}'

    def load_session(self) -> Optional[Session]:
        """Read the session from the store.

        Returns:
            Session or None: None when the token or the user is missing or unreadable.
            Callers treat None as not authenticated.
        """
        try:
            token = self.store.get(AUTH_TOKEN_KEY)
            user_raw = self.store.get(USER_KEY)
        except Exception as ex:
            logging.error(f'Could not read the session from the store: {ex}')
            return None

        if not token or not user_raw:
            logging.debug(f'No session: token={bool(token)}, user={bool(user_raw)}.')
            return None

        try:
            user = User.from_dict(json.loads(user_raw))
        except ValueError as ex:
            logging.warning(f'Stored user is unreadable, treating the session as absent: {ex}')
            return None

        return Session(token=token, user=user)

    def save_session(self, token: str, user: Union[User, Dict[str, Any]]) -> Session:
        """Persist a new session. The token and the user are written together.

        Raises:
            ValueError: If the token is empty or the user data is invalid.
        """
        if not token or not isinstance(token, str):
            raise ValueError('Cannot save a session without a token.')
        if not isinstance(user, User):
            user = User.from_dict(user)

        self.store.set_many({
            AUTH_TOKEN_KEY: token,
            USER_KEY: json.dumps(user.to_dict()),
        })
        logging.debug(f'Session saved for {user.email} (token {_redact(token)}).')
        return Session(token=token, user=user)

    def clear_session(self) -> None:
        """Remove both the token and the user from the store."""
        self.store.remove_many([AUTH_TOKEN_KEY, USER_KEY])
        logging.debug('Session cleared.')

    def sign_out(self) -> None:
        """Clear the stored session and notify listeners, even when the store fails."""
        from ..ui.actions import signals
        try:
            self.clear_session()
        finally:
            signals.loggedOut.emit()

    def refresh(self, session: Session) -> Optional[Session]:
        """Exchange the session's token for a new one.

        Returns:
            Session or None: The same user with the new token, or None if the refresh
            endpoint rejected the token or could not be reached.
        """
        credentials = BearerCredentials(session.token)
        try:
            credentials.refresh(self.refresh_transport)
        except google.auth.exceptions.RefreshError as ex:
            logging.warning(f'Token refresh failed: {ex}')
            return None

        logging.debug(f'Token refreshed: {_redact(session.token)} -> {_redact(credentials.token)}.')
        return session.with_token(credentials.token)

    def _send(self, method: str, url: str, session: Session, body: Optional[Dict[str, Any]],
              params: Optional[Dict[str, Any]]) -> requests.Response:
        headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        BearerCredentials(session.token).apply(headers)
        try:
            return self.http.request(
                method,
                url,
                headers=headers,
                json=body,
                params=params,
                timeout=lib.settings.timeout,
            )
        except requests.exceptions.RequestException as ex:
            raise status.ServiceUnavailableException(f'{method} {url} failed: {ex}') from ex

    def authorized_request(
            self,
            method: str,
            path: str,
            body: Optional[Dict[str, Any]] = None,
            session: Optional[Session] = None,
            params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[requests.Response, Session]:
        """Send a request signed with the session's bearer token.

        A 401 triggers exactly one refresh. On success the new token is stored and the
        request is sent once more with it; the second response is returned whatever its
        status. Network errors are never retried.

        Args:
            method: HTTP method.
            path: Endpoint path relative to the base URL, or an absolute URL.
            body: JSON body.
            session: The session to sign with. Loaded from the store when omitted.
            params: Query string parameters.

        Returns:
            tuple: The response and the session that signed it (the refreshed session
            after a successful refresh).

        Raises:
            status.ReauthenticationRequiredException: No session, or the refresh failed.
                The stored session is cleared in the latter case.
            status.ServiceUnavailableException: The API could not be reached.
        """
        from ..ui.actions import signals

        if session is None:
            session = self.load_session()
        if session is None:
            raise status.ReauthenticationRequiredException('No stored session.')

        method = method.upper()
        url = self.url(path)
        logging.debug(f'{method} {url} [{RequestState.Unsent}]')

        response = self._send(method, url, session, body, params)
        logging.debug(f'{method} {url} [{RequestState.Sent}] -> HTTP {response.status_code}')

        if response.status_code != UNAUTHORIZED:
            logging.debug(f'{method} {url} [{RequestState.Ok}]')
            return response, session

        logging.debug(f'{method} {url} [{RequestState.AuthFailed}] -> [{RequestState.Refreshing}]')
        refreshed = self.refresh(session)

        if refreshed is None:
            logging.debug(f'{method} {url} [{RequestState.LoggedOut}]')
            try:
                self.clear_session()
            except status.StorageInvalidException as ex:
                logging.error(f'Could not clear the stored session: {ex}')
            signals.sessionExpired.emit()
            raise status.ReauthenticationRequiredException('Token refresh failed.')

        try:
            self.store.set(AUTH_TOKEN_KEY, refreshed.token)
        except status.StorageInvalidException as ex:
            logging.error(f'Could not store the refreshed token, retrying with it anyway: {ex}')
        signals.sessionRefreshed.emit(refreshed)

        response = self._send(method, url, refreshed, body, params)
        logging.debug(f'{method} {url} [{RequestState.Retried}] -> HTTP {response.status_code}')
        return response, refreshed


session_manager: SessionManager = SessionManager()
