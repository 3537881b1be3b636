"""
Alarm Module - Black Box Interface

Purpose: Deliver failure alarms and statistics notes
Interface: AlarmDispatcher.notify(severity, title, body, timeout, code)
Hidden: Webhook payload format, receiver selection, HTTP client lifecycle

Can be replaced with email, a message bus or any other transport.
"""

from .dispatcher import (
    AlarmDispatcher,
    FanoutAlarmDispatcher,
    LogAlarmDispatcher,
    Severity,
    WebhookAlarmDispatcher,
    build_dispatcher,
    format_subject,
)

__all__ = [
    "AlarmDispatcher",
    "FanoutAlarmDispatcher",
    "LogAlarmDispatcher",
    "Severity",
    "WebhookAlarmDispatcher",
    "build_dispatcher",
    "format_subject",
]
