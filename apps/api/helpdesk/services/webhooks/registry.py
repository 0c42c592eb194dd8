"""Webhook handler registry."""

from __future__ import annotations

from helpdesk.services.webhooks.base import WebhookHandler
from helpdesk.services.webhooks.inbound_email import EmailWebhookHandler
from helpdesk.services.webhooks.slack import SlackWebhookHandler
from helpdesk.services.webhooks.sms import SmsStatusWebhookHandler, SmsWebhookHandler
from helpdesk.services.webhooks.widget import WidgetWebhookHandler

_HANDLERS: dict[str, WebhookHandler] = {
    "sms": SmsWebhookHandler(),
    "sms_status": SmsStatusWebhookHandler(),
    "slack": SlackWebhookHandler(),
    "email": EmailWebhookHandler(),
    "widget": WidgetWebhookHandler(),
}


def get_handler(name: str) -> WebhookHandler:
    handler = _HANDLERS.get(name)
    if not handler:
        raise KeyError(f"Unknown webhook handler: {name}")
    return handler
