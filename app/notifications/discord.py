"""Discord webhook notifications for new and decided dispensations."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from app.core.enums import Decision
from app.dispensations.records import DispensationRecord

logger = logging.getLogger(__name__)

COLOR_NEW = 0xF59E0B
COLOR_APPROVED = 0x22C55E
COLOR_REJECTED = 0xEF4444


def format_datetime(value: datetime) -> str:
    return value.strftime("%d %b %Y %H:%M")


def _field(name: str, value: str, inline: bool = True) -> Dict[str, Any]:
    return {"name": name, "value": value or "-", "inline": inline}


def build_created_embed(record: DispensationRecord) -> Dict[str, Any]:
    return {
        "title": "New dispensation request",
        "color": COLOR_NEW,
        "fields": [
            _field("Student", record.student_name),
            _field("Class", record.student_class),
            _field("Reason", record.reason, inline=False),
            _field("Destination", record.destination),
            _field("Departure", format_datetime(record.departure_time)),
            _field("Return", format_datetime(record.return_time)),
            _field("Tracking code", f"`{record.tracking_code}`"),
        ],
        "footer": {"text": "Waiting for approval"},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def build_decision_embed(record: DispensationRecord, decision: Decision, approver: str) -> Dict[str, Any]:
    approved = decision == Decision.approved
    return {
        "title": "Dispensation APPROVED" if approved else "Dispensation REJECTED",
        "color": COLOR_APPROVED if approved else COLOR_REJECTED,
        "fields": [
            _field("Student", record.student_name),
            _field("Class", record.student_class),
            _field("Reason", record.reason, inline=False),
            _field("Tracking code", f"`{record.tracking_code}`"),
            _field("Processed by", approver),
        ],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class NullNotifier:
    """Used when no webhook is configured."""

    def notify_created(self, record: DispensationRecord) -> None:
        logger.debug("No webhook configured; skipping notification for %s", record.tracking_code)

    def notify_decision(self, record: DispensationRecord, decision: Decision, approver: str) -> None:
        logger.debug("No webhook configured; skipping decision notification for %s", record.tracking_code)

    async def aclose(self) -> None:
        return None


class DiscordNotifier:
    """
    Posts embeds to a Discord webhook off the request path.

    notify_* schedule a task and return immediately; failures are logged and never
    reach the caller. aclose() waits for in-flight posts and closes the client.
    """

    def __init__(
        self,
        webhook_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.webhook_url = webhook_url
        self._transport = transport
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._tasks: Set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=self._timeout)
        return self._client

    async def send(self, embed: Dict[str, Any]) -> bool:
        """Post one embed. Returns False on any failure."""
        try:
            response = await self._get_client().post(self.webhook_url, json={"content": None, "embeds": [embed]})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Discord webhook failed: %s", e)
            return False
        except Exception:
            logger.exception("Unexpected error posting Discord webhook")
            return False
        return True

    def _dispatch(self, embed: Dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self.send(embed))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def notify_created(self, record: DispensationRecord) -> None:
        self._dispatch(build_created_embed(record))

    def notify_decision(self, record: DispensationRecord, decision: Decision, approver: str) -> None:
        self._dispatch(build_decision_embed(record, decision, approver))

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_notifier(webhook_url: Optional[str]):
    if not webhook_url:
        logger.info("DISCORD_WEBHOOK_URL not set; notifications disabled")
        return NullNotifier()
    return DiscordNotifier(webhook_url)
