"""HTTP ingress for probe events and the admin surface."""

import time
from typing import Callable

from aiohttp import web

from probe import __version__
from probe.ingest import IngestionHandler, MalformedRequest, ProbeRequest, Response, ResultCode
from probe.registry import ClientRegistry, RegistryError
from probe.shared.logger import get_logger


def _error(status: int, message: str) -> web.Response:
    return web.json_response(Response(status=status, message=message).to_dict(), status=status)


class ProbeWebApp:
    """aiohttp routes in front of the ingestion handler.

    ``POST /`` takes probe events, ``POST /admin`` (only when an admin
    token is configured) lists online clients. Both require
    ``Authorization: Bearer <token>``.
    """

    def __init__(
        self,
        handler: IngestionHandler,
        registry: ClientRegistry,
        token: str,
        admin_token: str | None = None,
        timeout_seconds: int = 1200,
        clock: Callable[[], float] = time.time,
    ):
        self._handler = handler
        self._registry = registry
        self._token = token
        self._admin_token = admin_token
        self._timeout = timeout_seconds
        self._clock = clock
        self.logger = get_logger("web")

    @property
    def token_configured(self) -> bool:
        return bool(self._token)

    def build(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.index)
        app.router.add_post("/", self.probe)
        if self._admin_token:
            app.router.add_post("/admin", self.admin)
        return app

    @staticmethod
    def _authorized(request: web.Request, token: str | None) -> bool:
        if not token:
            return False
        return request.headers.get("Authorization", "") == f"Bearer {token}"

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text=f"probe-server {__version__}")

    async def probe(self, request: web.Request) -> web.Response:
        if not self._authorized(request, self._token):
            return _error(403, "Forbidden")
        try:
            event = ProbeRequest.from_dict(await request.json())
        except (ValueError, MalformedRequest) as e:
            self.logger.info(f"Malformed request from {request.remote}: {e}")
            return _error(400, "Malformed request")

        try:
            response = await self._handler.ingest(event)
        except RegistryError:
            self.logger.exception(f"Registry failure handling {event.action} from {event.uuid}")
            return _error(500, "Internal server error")
        return web.json_response(response.to_dict(), status=response.status)

    async def admin(self, request: web.Request) -> web.Response:
        if not self._authorized(request, self._admin_token):
            return _error(403, "Forbidden")
        try:
            data = await request.json()
        except ValueError:
            return _error(400, "Malformed request")
        action = data.get("action") if isinstance(data, dict) else None
        if action != "list":
            response = Response.from_code(ResultCode.UNSUPPORTED_METHOD)
            return web.json_response(response.to_dict(), status=response.status)

        threshold = int(self._clock()) - self._timeout
        try:
            records = await self._registry.list_active_since(threshold)
        except RegistryError:
            self.logger.exception("Registry failure listing clients")
            return _error(500, "Internal server error")
        return web.json_response({"result": [r.to_dict() for r in records]})
