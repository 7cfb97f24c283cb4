from __future__ import annotations

import asyncio
import json
import logging
import os
from http.server import BaseHTTPRequestHandler

from fitness_coach.server import send_due_notifications_once

logger = logging.getLogger(__name__)


def _authorized(headers) -> bool:
    cron_secret = os.getenv("CRON_SECRET", "").strip()
    if not cron_secret:
        return headers.get("x-vercel-cron") == "1"
    auth_header = headers.get("authorization", "")
    return auth_header == f"Bearer {cron_secret}"


class handler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:
        if not _authorized(self.headers):
            self.send_response(401)
            self.end_headers()
            self.wfile.write(b"unauthorized")
            return

        try:
            reports = asyncio.run(send_due_notifications_once())
        except Exception:
            logger.exception("Scheduled notification run failed")
            self.send_response(500)
            self.end_headers()
            self.wfile.write(b"failed")
            return

        summary = [
            {
                "trigger": report.trigger,
                "period": report.period_key,
                "sent": report.sent,
                "skipped": report.skipped,
                "failed": len(report.failed),
            }
            for report in reports
        ]
        self.send_response(200)
        self.send_header("content-type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(summary).encode("utf-8"))

    def do_POST(self) -> None:
        self.do_GET()
