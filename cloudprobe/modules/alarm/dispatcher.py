"""
Alarm dispatchers.

Failures and periodic reports leave the probe through notify(). Delivery is
best effort: a broken notification path is logged and never interrupts the
deployment or its cleanup.
"""

import asyncio
import logging
import socket
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from ...config.provider import AlarmConfig

logger = logging.getLogger("cloudprobe.alarm")


class Severity(str, Enum):
    """Alarm severity."""

    NOTE = "note"
    ALARM = "alarm"
    TIMEOUT = "timeout"


def format_subject(
    severity: Severity, title: str, code: int = 0, timeout: float = 0, origin: str = ""
) -> str:
    """Build the one-line subject, e.g. 'ALARM 1 on APIMon: openstack network create'."""
    if severity == Severity.NOTE:
        head = "Note"
    elif severity == Severity.TIMEOUT:
        head = f"TIMEOUT {timeout:g}"
    else:
        head = f"ALARM {code}"
    where = f" on {origin}" if origin else ""
    return f"{head}{where}: {title}"


class AlarmDispatcher(Protocol):
    """Protocol for alarm receivers."""

    async def notify(
        self,
        severity: Severity,
        title: str,
        body: str = "",
        timeout: float = 0,
        code: int = 0,
    ) -> None:
        """Deliver one event. Must not raise."""
        ...


class LogAlarmDispatcher:
    """Writes alarms to the log."""

    def __init__(self, origin: str = ""):
        self.origin = origin

    async def notify(
        self,
        severity: Severity,
        title: str,
        body: str = "",
        timeout: float = 0,
        code: int = 0,
    ) -> None:
        subject = format_subject(severity, title, code, timeout, self.origin)
        if severity == Severity.NOTE:
            logger.info(f"{subject}\n{body}" if body else subject)
        else:
            extra = f" (Timeout: {timeout:g}s)" if timeout else ""
            logger.error(f"{subject}{extra}\n{body}" if body else f"{subject}{extra}")


class WebhookAlarmDispatcher:
    """
    Posts alarms as JSON to webhook receivers.

    Notes go to the note receivers, alarms and timeouts to the alarm
    receivers. Each receiver is tried once.
    """

    def __init__(
        self,
        config: AlarmConfig,
        origin: str = "",
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize webhook dispatcher.

        Args:
            config: Receiver URLs and request timeout
            origin: Name of the probe instance sending the alarms
            client: Optional preconfigured client (owned by the caller)
        """
        self.config = config
        self.origin = origin
        self._client = client
        self._owns_client = client is None
        self.host = socket.gethostname()

    def _receivers(self, severity: Severity) -> List[str]:
        if severity == Severity.NOTE:
            return list(self.config.note_webhooks)
        return list(self.config.alarm_webhooks)

    def _payload(
        self, severity: Severity, title: str, body: str, timeout: float, code: int
    ) -> Dict[str, Any]:
        return {
            "severity": severity.value,
            "subject": format_subject(severity, title, code, timeout, self.origin),
            "title": title,
            "body": body,
            "timeout": timeout,
            "code": code,
            "origin": self.origin,
            "host": self.host,
            "date": datetime.now(UTC).isoformat(),
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client

    async def notify(
        self,
        severity: Severity,
        title: str,
        body: str = "",
        timeout: float = 0,
        code: int = 0,
    ) -> None:
        receivers = self._receivers(severity)
        if not receivers:
            return
        payload = self._payload(severity, title, body, timeout, code)
        client = await self._get_client()
        for url in receivers:
            try:
                response = await client.post(url, json=payload)
                if response.status_code >= 400:
                    logger.error(f"Alarm receiver {url} answered {response.status_code}")
            except Exception as e:
                logger.error(f"Failed to deliver alarm to {url}: {e}")

    async def close(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class FanoutAlarmDispatcher:
    """Forwards every event to several dispatchers."""

    def __init__(self, dispatchers: Sequence[AlarmDispatcher]):
        self.dispatchers = list(dispatchers)

    async def notify(
        self,
        severity: Severity,
        title: str,
        body: str = "",
        timeout: float = 0,
        code: int = 0,
    ) -> None:
        results = await asyncio.gather(
            *(d.notify(severity, title, body, timeout, code) for d in self.dispatchers),
            return_exceptions=True,
        )
        for dispatcher, result in zip(self.dispatchers, results):
            if isinstance(result, Exception):
                logger.error(f"{type(dispatcher).__name__} failed: {result}")

    async def close(self) -> None:
        for dispatcher in self.dispatchers:
            close = getattr(dispatcher, "close", None)
            if close is not None:
                await close()


def build_dispatcher(config: AlarmConfig, origin: str = "") -> AlarmDispatcher:
    """Log dispatcher, plus webhooks when receivers are configured."""
    log_dispatcher = LogAlarmDispatcher(origin)
    if not config.is_configured:
        return log_dispatcher
    return FanoutAlarmDispatcher([log_dispatcher, WebhookAlarmDispatcher(config, origin)])
