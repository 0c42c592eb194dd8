"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    ticket_id: str | None = None,
    customer_id: str | None = None,
    message_id: str | None = None,
    channel: str | None = None,
    rule_id: str | None = None,
    job_id: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if ticket_id:
        context["ticket_id"] = str(ticket_id)
    if customer_id:
        context["customer_id"] = str(customer_id)
    if message_id:
        context["message_id"] = str(message_id)
    if channel:
        context["channel"] = channel
    if rule_id:
        context["rule_id"] = str(rule_id)
    if job_id:
        context["job_id"] = str(job_id)
    if request_id:
        context["request_id"] = request_id
    return context


def mask_identifier(identifier: str | None) -> str:
    """Mask an email, phone number or provider id for log output."""
    if not identifier:
        return ""
    if "@" in identifier:
        local, _, domain = identifier.partition("@")
        return f"{local[:3]}...@{domain}"
    if len(identifier) <= 4:
        return "***"
    return f"***{identifier[-4:]}"
