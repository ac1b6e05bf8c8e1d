"""HTTP drop callback, served from the bot's own event loop with aiohttp."""

import functools
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone

from aiohttp import web

from . import settings
from .errors import PersistenceError

log = logging.getLogger("bingo.webhook")


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """HMAC-SHA256 hex digest of the raw body. Always passes when no secret is set."""
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


class DropWebhook:
    def __init__(self, service, notify=None, *, password=None, secret=None, start_time=None, clock=None):
        self.service = service
        self.notify = notify
        self.password = settings.PASSWORD if password is None else password
        self.secret = settings.BINGO_WEBHOOK_SECRET if secret is None else secret
        self.start_time = start_time or settings.START_TIME
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    async def drops(self, request: web.Request) -> web.Response:
        if self.clock() < self.start_time:
            return web.json_response({"error": "Bingo not started yet."}, status=403)

        raw = await request.read()
        if not verify_signature(raw, request.headers.get("X-Bingo-Signature"), self.secret):
            log.warning("[webhook] Bad signature from %s", request.remote)
            return web.json_response({"error": "Bad signature"}, status=401)

        try:
            body = json.loads(raw or b"{}")
        except ValueError:
            return web.json_response({"error": "Body must be JSON."}, status=400)
        if not isinstance(body, dict):
            return web.json_response({"error": "Body must be a JSON object."}, status=400)

        if body.get("password") != self.password:
            return web.json_response({"error": "Invalid password."}, status=403)
        if self.service.state.channel_id is None:
            return web.json_response({"error": "No bingo channel set."}, status=400)

        player = str(body.get("player") or "").strip()
        item_name = str(body.get("itemName") or "").strip()
        if not player or not item_name:
            return web.json_response({"error": "Missing itemName/player"}, status=400)

        team = body.get("team")
        log.info("[webhook] Drop from %s: %r (id=%s, team=%s)", player, item_name, body.get("itemId"), team)
        notify = functools.partial(self.notify, source="webhook") if self.notify else None
        try:
            outcome = await self.service.handle_drop(
                player, item_name, team=str(team) if team else None, notify=notify
            )
        except PersistenceError:
            log.exception("[webhook] Failed to save drop from %s", player)
            return web.json_response({"error": "Failed to save progress."}, status=500)

        return web.json_response({"ok": True, **outcome.to_dict()})


def create_app(service, notify=None, **kwargs) -> web.Application:
    hook = DropWebhook(service, notify, **kwargs)
    app = web.Application()
    app.router.add_get("/", hook.health)
    app.router.add_post("/drops", hook.drops)
    return app


async def start_webhook(app: web.Application, port: int = None) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host="0.0.0.0", port=port or settings.PORT)
    await site.start()
    log.info("[webhook] HTTP listening on %s", port or settings.PORT)
    return runner
