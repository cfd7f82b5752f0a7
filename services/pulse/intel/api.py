"""
Pulse API Routes - HTTP endpoints for the alert and insight engine.

Endpoints:
- GET  /api/pulse/health                       - Liveness
- POST /api/pulse/run                          - Evaluate a records document
- GET  /api/pulse/alerts                       - Active stored alerts + counts
- POST /api/pulse/alerts/{alert_id}/dismiss    - Dismiss (7-day cooldown)
- POST /api/pulse/alerts/{alert_id}/resolve    - Mark as acted upon
"""

import asyncio
import json
from datetime import datetime
from typing import Optional

from aiohttp import web

from shared.logutil import LogUtil

from .engine import PulseEngine
from .models import RecordBundle


class PulseAPIHandler:
    """
    HTTP handlers for the Pulse engine.

    Thin layer that delegates to PulseEngine.
    """

    def __init__(self, engine: PulseEngine, logger: Optional[LogUtil] = None):
        self.engine = engine
        self.logger = logger or LogUtil("pulse", component="api")

    def register_routes(self, app: web.Application) -> None:
        """Register all Pulse routes on the application."""
        app.router.add_get("/api/pulse/health", self.health)
        app.router.add_post("/api/pulse/run", self.run)
        app.router.add_get("/api/pulse/alerts", self.get_alerts)
        app.router.add_post("/api/pulse/alerts/{alert_id}/dismiss", self.dismiss)
        app.router.add_post("/api/pulse/alerts/{alert_id}/resolve", self.resolve)

    @staticmethod
    def _parse_now(request: web.Request) -> Optional[datetime]:
        raw = request.query.get("now")
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            raise web.HTTPBadRequest(
                text=json.dumps({"error": f"invalid now parameter: {raw}"}),
                content_type="application/json",
            )

    # ========== HTTP Handlers ==========

    async def health(self, request: web.Request) -> web.Response:
        """GET /api/pulse/health"""
        return web.json_response({
            "status": "ok",
            "service": "pulse",
            "timestamp": datetime.now().isoformat(timespec="seconds"),
        })

    async def run(self, request: web.Request) -> web.Response:
        """POST /api/pulse/run - body is a records document. Accepts ?now=ISO."""
        now = self._parse_now(request)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "body must be a JSON object"}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "body must be a JSON object"}, status=400)

        bundle = RecordBundle.from_dict(body, logger=self.logger)
        # The engine's store does blocking I/O; keep it off the event loop.
        result = await asyncio.to_thread(self.engine.run, bundle, now)
        return web.json_response(result.to_dict())

    async def get_alerts(self, request: web.Request) -> web.Response:
        """GET /api/pulse/alerts - stored alerts not under dismissal."""
        now = self._parse_now(request)
        alerts = await asyncio.to_thread(self.engine.active_alerts, now)
        counts = await asyncio.to_thread(self.engine.store.counts, now)
        return web.json_response({"alerts": alerts, "counts": counts})

    async def dismiss(self, request: web.Request) -> web.Response:
        """POST /api/pulse/alerts/{alert_id}/dismiss"""
        alert_id = request.match_info["alert_id"]
        now = self._parse_now(request)
        await asyncio.to_thread(self.engine.dismiss, alert_id, now)
        return web.json_response({"id": alert_id, "dismissed": True})

    async def resolve(self, request: web.Request) -> web.Response:
        """POST /api/pulse/alerts/{alert_id}/resolve"""
        alert_id = request.match_info["alert_id"]
        resolved = await asyncio.to_thread(self.engine.resolve, alert_id)
        return web.json_response({"id": alert_id, "resolved": resolved})
