"""HTTP client for the task API.

``AuthSession`` carries the bearer token explicitly instead of keeping it in
ambient global state; ``TaskApi`` turns responses into ``TaskOut`` objects and
error responses into the exceptions from ``errors``.
"""

import logging
from typing import Callable, Iterable, List, Optional, Tuple

import requests

import config
from errors import AuthenticationError, TaskManagerError, error_for_status
from schemas import TaskOut

logger = logging.getLogger(__name__)


class AuthSession:
    """Holds the token for one signed-in user.

    ``expire()`` clears the token and notifies listeners, which is where a UI
    sends the user back to the login screen.
    """

    def __init__(self, token: Optional[str] = None, on_expired: Iterable[Callable[[], None]] = ()):
        self.token = token
        self._listeners = list(on_expired)

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    def add_expired_listener(self, listener: Callable[[], None]):
        self._listeners.append(listener)

    def headers(self) -> dict:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def expire(self):
        self.token = None
        for listener in self._listeners:
            listener()


class TaskApi:
    """Thin wrapper over the REST endpoints.

    ``http`` is anything with a requests-style ``request`` method; a
    ``requests.Session`` in production, FastAPI's ``TestClient`` in tests.
    """

    def __init__(self, session: AuthSession, base_url: str = "", http=None, timeout: float = config.HTTP_TIMEOUT):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, *, auth: bool = True, **kwargs) -> dict:
        headers = self.session.headers() if auth else {}
        if auth and not headers:
            raise AuthenticationError("Authentication token required")
        if self.timeout and isinstance(self.http, requests.Session):
            kwargs.setdefault("timeout", self.timeout)

        try:
            resp = self.http.request(method, self.base_url + path, headers=headers, **kwargs)
        except requests.RequestException as exc:
            logger.error("%s %s failed: %r", method, path, exc)
            raise TaskManagerError(f"Network error: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}

        if resp.status_code >= 400:
            error = error_for_status(resp.status_code, data.get("error"), data.get("details"))
            if resp.status_code == 401 and auth:
                logger.info("Session rejected by server, signing out")
                self.session.expire()
            raise error
        return data

    # auth
    def login(self, email: str, password: str) -> str:
        data = self._request("POST", "/api/auth/login", auth=False, json={"email": email, "password": password})
        self.session.token = data["token"]
        return self.session.token

    def signup(self, name: str, email: str, password: str) -> str:
        data = self._request(
            "POST", "/api/auth/signup", auth=False, json={"name": name, "email": email, "password": password}
        )
        self.session.token = data["token"]
        return self.session.token

    # tasks
    def list_tasks(self, **params) -> Tuple[List[TaskOut], dict]:
        params = {k: v for k, v in params.items() if v is not None}
        data = self._request("GET", "/api/tasks", params=params)
        return [TaskOut.model_validate(t) for t in data["tasks"]], data["pagination"]

    def list_all_tasks(self, page_size: int = 100) -> List[TaskOut]:
        """Every task of the user, oldest first."""
        tasks: List[TaskOut] = []
        page = 1
        while True:
            batch, pagination = self.list_tasks(sortBy="createdAt", sortOrder="asc", page=page, limit=page_size)
            tasks.extend(batch)
            if not pagination["hasNextPage"]:
                return tasks
            page += 1

    def create_task(self, draft: dict) -> TaskOut:
        data = self._request("POST", "/api/tasks", json=draft)
        return TaskOut.model_validate(data["task"])

    def get_task(self, task_id: int) -> TaskOut:
        data = self._request("GET", f"/api/tasks/{task_id}")
        return TaskOut.model_validate(data["task"])

    def update_task(self, task_id: int, fields: dict) -> TaskOut:
        data = self._request("PUT", f"/api/tasks/{task_id}", json=fields)
        return TaskOut.model_validate(data["task"])

    def delete_task(self, task_id: int) -> TaskOut:
        data = self._request("DELETE", f"/api/tasks/{task_id}")
        return TaskOut.model_validate(data["task"])

    # profile
    def get_profile(self) -> dict:
        return self._request("GET", "/api/user/profile")
