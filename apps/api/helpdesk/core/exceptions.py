"""Typed errors raised by the ingest pipeline and its collaborators."""


class HelpdeskError(Exception):
    """Base class for helpdesk service errors."""


class IngestValidationError(HelpdeskError, ValueError):
    """Inbound envelope failed validation before any side effect."""


class IdentityResolutionError(HelpdeskError):
    """Customer could not be found or persisted."""


class ThreadResolutionError(HelpdeskError):
    """Ticket could not be resolved or created for an inbound message."""


class MessageAppendError(HelpdeskError):
    """Message insert failed; the ticket was left untouched."""


class TicketNotFoundError(HelpdeskError, LookupError):
    """Referenced ticket does not exist."""


class CustomerNotFoundError(HelpdeskError, LookupError):
    """Referenced customer does not exist."""
