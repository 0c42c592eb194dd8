"""Ticketing and channel-ingest enums."""

from enum import Enum


class ChannelType(str, Enum):
    """Medium a message arrives on or is sent over."""

    DASHBOARD = "dashboard"
    PORTAL = "portal"
    WIDGET = "widget"
    EMAIL = "email"
    API = "api"
    SMS = "sms"
    SLACK = "slack"


class PreferredChannel(str, Enum):
    """Channel a customer prefers to be contacted on."""

    EMAIL = "email"
    SMS = "sms"
    WIDGET = "widget"
    SLACK = "slack"
    PORTAL = "portal"


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class TicketPriority(str, Enum):
    """Ticket priority level."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class QueueType(str, Enum):
    """Whether a ticket is routed for AI or human handling."""

    AI = "ai"
    HUMAN = "human"


class SenderType(str, Enum):
    CUSTOMER = "customer"
    AGENT = "agent"
    AI = "ai"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class AgentStatus(str, Enum):
    ONLINE = "online"
    AWAY = "away"
    OFFLINE = "offline"


class InboundLogStatus(str, Enum):
    """Outcome recorded for each inbound channel event."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


# Ordered low → urgent; index is the rank used for relational comparisons.
PRIORITY_ORDER: tuple[str, ...] = tuple(p.value for p in TicketPriority)

TERMINAL_TICKET_STATUSES = frozenset({TicketStatus.RESOLVED.value})
ACTIVE_TICKET_STATUSES = frozenset(
    {TicketStatus.OPEN.value, TicketStatus.PENDING.value, TicketStatus.ESCALATED.value}
)
