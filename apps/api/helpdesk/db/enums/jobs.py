"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    WORKFLOW_EVENT = "workflow_event"
    PRIORITY_CLASSIFICATION = "priority_classification"
    CHANNEL_DELIVERY = "channel_delivery"
    WEBHOOK_DELIVERY = "webhook_delivery"
    AGENT_NOTIFICATION_EMAIL = "agent_notification_email"


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookDeliveryStatus(str, Enum):
    """Outbound webhook delivery state."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
