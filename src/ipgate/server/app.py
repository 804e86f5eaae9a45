"""Gate server: an aiohttp application guarded by the IP guard middleware."""

from __future__ import annotations

import asyncio

import structlog
from aiohttp import web

from ipgate.core.config import GuardSettings, ServerConfig, get_settings
from ipgate.guard.engine import GuardResult, IpGuard
from ipgate.guard.ruleset import CachedRuleSetProvider, RuleSource, create_ruleset_provider
from ipgate.guard.validation import assert_valid_rules
from ipgate.observability.metrics import generate_metrics, get_content_type
from ipgate.server.middleware import RESULT_KEY, create_ip_guard_middleware

logger = structlog.get_logger()


class GateServer:
    """HTTP server that reports (and optionally enforces) IP guard decisions."""

    def __init__(self, config: ServerConfig, settings: GuardSettings | None = None):
        self.config = config
        settings = settings or get_settings()
        self.settings = settings.model_copy(
            update={
                "cache_rules": config.cache_rules or settings.cache_rules,
                "cache_ttl": config.cache_ttl if config.cache_ttl is not None else settings.cache_ttl,
            }
        )
        self.source = RuleSource(self.settings)
        self.guard = IpGuard(create_ruleset_provider(self.settings))
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

    def check_rules(self) -> None:
        """Validate default and file rules.

        Raises:
            RuleValidationError: On the first invalid token of either half.
        """
        ruleset = self.source.load()
        assert_valid_rules(ruleset.default_rules)
        assert_valid_rules(ruleset.file_rules)
        logger.info(
            "Rules validated",
            rule_file=str(ruleset.source_path) if ruleset.source_path else None,
        )

    def create_app(self) -> web.Application:
        """Build the guarded application."""
        app = web.Application(
            middlewares=[
                create_ip_guard_middleware(
                    self.guard,
                    enforce=self.config.enforce,
                    trust_proxy_headers=self.config.trust_proxy_headers,
                )
            ]
        )
        app.router.add_get("/", self._handle_index)
        app.router.add_get("/guard", self._handle_guard)
        app.router.add_get("/health", self._handle_health_check)
        app.router.add_get("/metrics", self._handle_metrics)
        app.router.add_post("/rules/refresh", self._handle_refresh)
        return app

    async def start(self) -> None:
        """Start serving on the configured host and port."""
        if self.config.strict_rules:
            self.check_rules()

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        await site.start()
        logger.info(
            "Gate server started",
            host=self.config.host,
            port=self.config.port,
            enforce=self.config.enforce,
            trust_proxy_headers=self.config.trust_proxy_headers,
            cache_rules=self.settings.cache_rules,
        )

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Stopping gate server...")
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self._app = None
        logger.info("Gate server stopped")

    def _rules_file(self) -> str | None:
        path = self.guard.ruleset.source_path
        return str(path) if path else None

    async def _handle_index(self, request: web.Request) -> web.Response:
        result: GuardResult = request[RESULT_KEY]
        verdict = "allowed" if result.allowed else "denied"
        lines = [
            f"Client: {result.client_ip or 'unknown'}",
            f"Access: {verdict}",
            f"Reason: {result.reason_text}",
        ]
        return web.Response(text="\n".join(lines) + "\n", content_type="text/plain")

    async def _handle_guard(self, request: web.Request) -> web.Response:
        result: GuardResult = request[RESULT_KEY]
        data = result.to_dict()
        data["rules_file"] = await asyncio.to_thread(self._rules_file)
        return web.json_response(data)

    async def _handle_health_check(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "healthy"})

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Prometheus metrics endpoint."""
        return web.Response(
            body=generate_metrics(),
            headers={"Content-Type": get_content_type()},
        )

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        """Reload a cached rule set; a fresh provider has nothing to reload."""
        provider = self.guard.provider
        if not isinstance(provider, CachedRuleSetProvider):
            return web.json_response({"refreshed": False, "cached": False})
        ruleset = await asyncio.to_thread(provider.refresh)
        return web.json_response(
            {
                "refreshed": True,
                "cached": True,
                "rules_file": str(ruleset.source_path) if ruleset.source_path else None,
            }
        )
