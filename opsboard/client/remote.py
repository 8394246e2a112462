"""
Remote table client.

Request/response and subscribe interface over the backend's tables:
- select with optional filters, ordering and limit
- insert one row (returns the inserted row)
- update the given fields of one row
- delete by identifier, or by equality filters
- subscribe to the table's change feed (Server-Sent Events)

Transport and backend-reported failures are translated at this
boundary: reads raise FetchError, writes raise WriteError, and 401/403
raise AuthorizationError. Nothing above this module sees a requests
exception.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, Tuple

import requests

from opsboard.config import config
from opsboard.errors import AuthorizationError, FetchError, OpsBoardError, WriteError
from opsboard.realtime import ChangeEvent

logger = logging.getLogger(__name__)

# (column, operator, value); operator one of eq, gte, lte
Filter = Tuple[str, str, Any]

# Read timeout for change streams; the server sends keepalives every 15s
STREAM_READ_TIMEOUT = 60.0


class ApiClient:
    """
    Thin HTTP layer shared by table, auth and admin clients.

    Holds the bearer token of the current session; the AuthClient sets
    and clears it.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or config.client.api_url).rstrip('/')
        self.timeout = timeout or config.client.request_timeout
        self.access_token: Optional[str] = None
        self.session = requests.Session()

    def headers(self) -> dict:
        if self.access_token:
            return {'Authorization': f'Bearer {self.access_token}'}
        return {}

    def request(
        self,
        method: str,
        path: str,
        error_cls=FetchError,
        **kwargs,
    ) -> Optional[dict]:
        """
        Issue a request and return the decoded JSON body (None when empty).

        Raises:
            AuthorizationError on 401/403
            error_cls on any other failure
        """
        url = f'{self.base_url}{path}'
        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.Timeout:
            logger.error(f'{method} {path} timed out')
            raise error_cls(f'Request timed out: {method} {path}')
        except requests.exceptions.RequestException as e:
            logger.error(f'{method} {path} failed: {e}')
            raise error_cls(f'Request failed: {e}')

        if response.status_code in (401, 403):
            message = _error_message(response) or 'Unauthorized'
            logger.warning(f'{method} {path} rejected ({response.status_code}): {message}')
            raise AuthorizationError(message, status_code=response.status_code)

        if response.status_code >= 400:
            message = _error_message(response) or f'HTTP {response.status_code}'
            logger.error(f'{method} {path} error {response.status_code}: {message}')
            raise error_cls(message)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError:
            raise error_cls(f'Invalid JSON from {method} {path}')


def _error_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get('error')
    return None


def _filter_params(filters: Optional[Iterable[Filter]]) -> dict:
    params = {}
    for column, op, value in filters or ():
        if hasattr(value, 'isoformat'):
            value = value.isoformat()
        elif isinstance(value, bool):
            value = 'true' if value else 'false'
        params[column] = f'{op}.{value}'
    return params


class Subscription(ABC):
    """Handle for a change-feed subscription."""

    @property
    @abstractmethod
    def alive(self) -> bool:
        """False once the feed has dropped or been unsubscribed."""

    @abstractmethod
    def unsubscribe(self) -> None:
        ...


class RemoteTable(ABC):
    """Operations on one named remote table."""

    name: str

    @abstractmethod
    def select(
        self,
        filters: Optional[List[Filter]] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ...

    @abstractmethod
    def insert(self, row: dict) -> dict:
        ...

    @abstractmethod
    def update(self, record_id: str, fields: dict) -> dict:
        ...

    @abstractmethod
    def delete(self, record_id: str) -> None:
        ...

    @abstractmethod
    def delete_where(self, filters: List[Filter]) -> int:
        ...

    @abstractmethod
    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Subscription:
        ...


class StreamSubscription(Subscription):
    """
    Background listener on a table's SSE change stream.

    The listener thread exits when the stream drops; it does not
    reconnect by itself. Owners poll `alive` and resubscribe.
    """

    def __init__(self, api: ApiClient, table: str, callback: Callable[[ChangeEvent], None]):
        self.api = api
        self.table = table
        self.callback = callback
        self.connected = threading.Event()
        self._stopped = threading.Event()
        self._response: Optional[requests.Response] = None
        self._thread = threading.Thread(
            target=self._listen,
            name=f'changes-{table}',
            daemon=True,
        )

    def start(self) -> 'StreamSubscription':
        self._thread.start()
        return self

    @property
    def alive(self) -> bool:
        return not self._stopped.is_set() and self._thread.is_alive()

    def unsubscribe(self) -> None:
        self._stopped.set()
        response = self._response
        if response is not None:
            response.close()
        logger.debug(f'Unsubscribed from {self.table} changes')

    def _listen(self) -> None:
        url = f'{self.api.base_url}/api/tables/{self.table}/changes'
        try:
            with self.api.session.get(
                url,
                headers={**self.api.headers(), 'Accept': 'text/event-stream'},
                stream=True,
                timeout=(self.api.timeout, STREAM_READ_TIMEOUT),
            ) as response:
                self._response = response
                response.raise_for_status()
                self._consume(response.iter_lines(decode_unicode=True))
        except requests.exceptions.RequestException as e:
            if not self._stopped.is_set():
                logger.warning(f'Change stream for {self.table} dropped: {e}')
        finally:
            self._response = None
            self.connected.clear()

    def _consume(self, lines: Iterable[str]) -> None:
        data: List[str] = []
        for line in lines:
            if self._stopped.is_set():
                return
            if line is None:
                continue
            if line.startswith(':'):
                self.connected.set()
            elif line.startswith('data:'):
                data.append(line[5:].strip())
            elif line == '' and data:
                self._dispatch('\n'.join(data))
                data = []

    def _dispatch(self, payload: str) -> None:
        try:
            change = ChangeEvent.from_dict(json.loads(payload))
        except (ValueError, KeyError) as e:
            logger.warning(f'Malformed change event on {self.table}: {e}')
            return
        try:
            self.callback(change)
        except OpsBoardError as e:
            logger.error(f'Change handler failed on {self.table}: {e}')


class HttpTableClient(RemoteTable):
    """RemoteTable over the backend's REST API."""

    def __init__(self, name: str, api: ApiClient):
        self.name = name
        self.api = api

    def __repr__(self) -> str:
        return f'<HttpTableClient {self.name}>'

    def select(
        self,
        filters: Optional[List[Filter]] = None,
        order: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        params = _filter_params(filters)
        if order:
            params['order'] = order
            params['desc'] = 'true' if descending else 'false'
        if limit is not None:
            params['limit'] = limit

        body = self.api.request('GET', f'/api/tables/{self.name}', params=params)
        rows = (body or {}).get('rows') or []
        logger.debug(f'Selected {len(rows)} rows from {self.name}')
        return rows

    def insert(self, row: dict) -> dict:
        body = self.api.request('POST', f'/api/tables/{self.name}', error_cls=WriteError, json=row)
        return (body or {}).get('row') or {}

    def update(self, record_id: str, fields: dict) -> dict:
        body = self.api.request(
            'PATCH',
            f'/api/tables/{self.name}/{record_id}',
            error_cls=WriteError,
            json=fields,
        )
        return (body or {}).get('row') or {}

    def delete(self, record_id: str) -> None:
        self.api.request('DELETE', f'/api/tables/{self.name}/{record_id}', error_cls=WriteError)

    def delete_where(self, filters: List[Filter]) -> int:
        body = self.api.request(
            'DELETE',
            f'/api/tables/{self.name}',
            error_cls=WriteError,
            params=_filter_params(filters),
        )
        return (body or {}).get('deleted', 0)

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Subscription:
        logger.info(f'Subscribing to {self.name} changes')
        return StreamSubscription(self.api, self.name, callback).start()
