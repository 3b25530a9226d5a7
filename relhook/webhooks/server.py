"""Webhook HTTP server using aiohttp."""

from __future__ import annotations

from typing import Awaitable, Callable

from aiohttp import web

from relhook.config import ServerConfig, WebhookConfig
from relhook.deploy.runner import DeployRunner, DeployStatus
from relhook.utils.audit import AuditLog
from relhook.utils.logging import get_logger
from relhook.webhooks.handlers import parse_release_payload, verify_signature

log = get_logger(__name__)

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


class WebhookServer:
    """Receives release webhooks and hands verified tags to the runner."""

    def __init__(
        self,
        server_config: ServerConfig,
        webhook_config: WebhookConfig,
        runner: DeployRunner,
        audit: AuditLog,
    ) -> None:
        self._config = server_config
        self._webhook = webhook_config
        self._runner = runner
        self._audit = audit
        self._app_runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if not self._webhook.secret:
            log.warning(
                "webhook_no_secret",
                msg="No webhook secret configured, all requests will be rejected. Set RELHOOK_WEBHOOK__SECRET.",
            )
        app = self._build_app()
        self._app_runner = web.AppRunner(app)
        await self._app_runner.setup()
        site = web.TCPSite(self._app_runner, self._config.bind, self._config.port)
        try:
            await site.start()
        except OSError:
            await self._app_runner.cleanup()
            self._app_runner = None
            raise
        log.info(
            "webhook_server_started",
            bind=self._config.bind,
            port=self._config.port,
            path=self._config.path,
        )

    async def stop(self) -> None:
        if self._app_runner is not None:
            await self._app_runner.cleanup()
            self._app_runner = None
        # Deployments already started run to completion.
        await self._runner.wait_idle()
        log.info("webhook_server_stopped")

    # ------------------------------------------------------------------
    # App construction
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        app = web.Application(
            middlewares=[self._error_middleware],
            client_max_size=self._config.max_body_size,
        )
        app.router.add_post(_route(self._config.path), self._handle_webhook)
        app.router.add_get(_route(self._config.status_path), self._handle_status)
        app.router.add_get(_route(self._config.health_path), self._handle_health)
        return app

    @web.middleware
    async def _error_middleware(
        self, request: web.Request, handler: _Handler
    ) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPRequestEntityTooLarge as e:
            self._audit.write(f"Webhook payload too large: {e.text}")
            log.warning("webhook_payload_too_large", path=request.path, limit=self._config.max_body_size)
            return self._respond(413)
        except web.HTTPException:
            raise
        except Exception as e:
            log.exception("webhook_handler_error", path=request.path)
            self._audit.write(str(e))
            return self._respond(500)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        # Read the whole body; the digest covers every chunk.
        body = await request.read()

        signature = request.headers.get(self._webhook.signature_header, "")
        if not verify_signature(body, signature, self._webhook.secret, self._webhook.algorithm):
            self._audit.write("Webhook authentication failed")
            log.warning("webhook_auth_failed", remote=request.remote)
            return self._respond(401)

        result = parse_release_payload(body)
        if not result.ok:
            self._audit.write(f"Invalid webhook payload: {result.error}")
            log.warning("webhook_invalid_payload", error=result.error)
            return self._respond(400)

        event_type = request.headers.get("X-GitHub-Event", "unknown")
        if not result.is_release:
            self._audit.write("No release tag in payload, ignoring")
            log.info("webhook_ignored", event_type=event_type)
            return self._respond(200)

        record = self._runner.submit(result.tag)
        log.info(
            "webhook_received",
            event_type=event_type,
            tag=result.tag,
            deployment=record.id,
            status=record.status.value,
        )

        if record.status == DeployStatus.SKIPPED:
            return self._respond(409)
        if record.status == DeployStatus.FAILED:
            return self._respond(400)
        return self._respond(202)

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response({
            "busy": self._runner.busy,
            "deployments": [r.to_dict() for r in self._runner.history()],
        })

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _respond(self, status: int) -> web.Response:
        # Senders get an empty 200 unless differentiated codes are enabled.
        if self._config.strict_responses:
            return web.Response(status=status)
        return web.Response(status=200)


def _route(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"
