"""Store IP address middleware — remember the authenticated user's last IP.

Learn: runs after the response. If ``request.user`` is authenticated and
its stored IP differs from the request IP, the user's ``ip`` field is
updated, the IP is appended to ``last_ips``, and ``user.save()`` (sync or
async) runs as a background task once the response has been sent.
Save failures are logged, never raised.
"""

import inspect

import structlog
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ladapi.middleware.request_logging import client_ip


class StoreIPAddressMiddleware(BaseHTTPMiddleware):
    """Persist the last seen IP on the authenticated user."""

    def __init__(self, app, logger=None, ip: str = "ip", last_ips: str = "last_ips"):
        super().__init__(app)
        self.logger = logger or structlog.get_logger()
        self.ip_field = ip
        self.last_ips_field = last_ips

    def update(self, user, ip: str) -> bool:
        """Apply the IP to the user. Returns True if anything changed."""
        if getattr(user, self.ip_field, None) == ip:
            return False
        setattr(user, self.ip_field, ip)
        last_ips = list(getattr(user, self.last_ips_field, None) or [])
        if ip not in last_ips:
            last_ips.append(ip)
        setattr(user, self.last_ips_field, last_ips)
        return True

    async def save(self, user) -> None:
        save = getattr(user, "save", None)
        if save is None:
            return
        try:
            result = save()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error("store_ip.save_failed", error=str(e), exc_info=True)

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)

        user = request.scope.get("user")
        if user is None or not getattr(user, "is_authenticated", False):
            return response

        if self.update(user, client_ip(request)):
            task = BackgroundTask(self.save, user)
            if response.background is None:
                response.background = task
            else:
                tasks = BackgroundTasks()
                tasks.tasks = [response.background, task]
                response.background = tasks
        return response
