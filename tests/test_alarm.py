"""
Tests for alarm dispatchers.

Uses httpx.MockTransport to verify webhook delivery without real receivers.
"""

import json
import os
import sys
from typing import Any, Dict, List

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import RecordingDispatcher

from cloudprobe.config import AlarmConfig
from cloudprobe.modules.alarm import (
    FanoutAlarmDispatcher,
    LogAlarmDispatcher,
    Severity,
    WebhookAlarmDispatcher,
    build_dispatcher,
    format_subject,
)

CONFIG = AlarmConfig(
    note_webhooks=["https://hooks.test/notes"],
    alarm_webhooks=["https://hooks.test/alarms", "https://hooks.test/pager"],
)


def make_dispatcher(handler, config: AlarmConfig = CONFIG) -> WebhookAlarmDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookAlarmDispatcher(config, origin="APIMon", client=client)


class TestFormatSubject:
    """Test subject lines."""

    def test_alarm(self):
        assert format_subject(Severity.ALARM, "openstack network create x", code=1, origin="APIMon") == \
            "ALARM 1 on APIMon: openstack network create x"

    def test_timeout(self):
        assert format_subject(Severity.TIMEOUT, "server create", timeout=24) == "TIMEOUT 24: server create"

    def test_note(self):
        assert format_subject(Severity.NOTE, "Statistics", origin="APIMon") == "Note on APIMon: Statistics"


class TestWebhookAlarmDispatcher:
    """Test webhook delivery."""

    @pytest.mark.asyncio
    async def test_alarm_goes_to_alarm_receivers(self):
        seen: List[Dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append({"url": str(request.url), "body": json.loads(request.content)})
            return httpx.Response(200)

        dispatcher = make_dispatcher(handler)
        await dispatcher.notify(Severity.TIMEOUT, "openstack server create vm", "killed", timeout=24, code=137)

        assert [s["url"] for s in seen] == ["https://hooks.test/alarms", "https://hooks.test/pager"]
        body = seen[0]["body"]
        assert body["severity"] == "timeout"
        assert body["subject"] == "TIMEOUT 24 on APIMon: openstack server create vm"
        assert body["body"] == "killed"
        assert body["code"] == 137
        assert body["origin"] == "APIMon"

    @pytest.mark.asyncio
    async def test_note_goes_to_note_receivers(self):
        urls: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(204)

        dispatcher = make_dispatcher(handler)
        await dispatcher.notify(Severity.NOTE, "Statistics for today", "#RUN: 1|1|2|2|40")

        assert urls == ["https://hooks.test/notes"]

    @pytest.mark.asyncio
    async def test_no_receivers_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("unexpected request")

        dispatcher = make_dispatcher(handler, AlarmConfig(alarm_webhooks=["https://hooks.test/a"]))
        await dispatcher.notify(Severity.NOTE, "quiet")

    @pytest.mark.asyncio
    async def test_receiver_errors_are_swallowed(self, caplog):
        calls: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if request.url.path == "/alarms":
                raise httpx.ConnectError("connection refused")
            return httpx.Response(500)

        dispatcher = make_dispatcher(handler)
        await dispatcher.notify(Severity.ALARM, "router create", code=1)

        # Second receiver still tried after the first failed
        assert len(calls) == 2
        assert "answered 500" in caplog.text

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda _: httpx.Response(200)))
        dispatcher = WebhookAlarmDispatcher(CONFIG, client=client)

        await dispatcher.close()

        assert not client.is_closed
        await client.aclose()


class TestFanout:
    """Test fan-out to several dispatchers."""

    @pytest.mark.asyncio
    async def test_every_dispatcher_notified(self):
        first, second = RecordingDispatcher(), RecordingDispatcher()
        fanout = FanoutAlarmDispatcher([first, second])

        await fanout.notify(Severity.ALARM, "volume create", "quota", 20, 1)

        assert first.events == second.events
        assert first.events[0]["code"] == 1

    @pytest.mark.asyncio
    async def test_failing_dispatcher_isolated(self):
        class Broken:
            async def notify(self, *args, **kwargs):
                raise RuntimeError("down")

        recorder = RecordingDispatcher()
        fanout = FanoutAlarmDispatcher([Broken(), recorder])

        await fanout.notify(Severity.NOTE, "hello")

        assert len(recorder.events) == 1

    def test_build_dispatcher(self):
        assert isinstance(build_dispatcher(AlarmConfig(), "APIMon"), LogAlarmDispatcher)
        assert isinstance(build_dispatcher(CONFIG, "APIMon"), FanoutAlarmDispatcher)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
