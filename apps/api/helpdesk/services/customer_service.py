"""Customer identity resolution - find or create customers from channel identifiers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from helpdesk.core.exceptions import CustomerNotFoundError, IdentityResolutionError
from helpdesk.core.structured_logging import build_log_context, mask_identifier
from helpdesk.db.enums import ChannelType, PreferredChannel
from helpdesk.db.models import Customer
from helpdesk.db.types import utcnow
from helpdesk.utils.normalization import is_email, normalize_email, normalize_name, normalize_phone

logger = logging.getLogger(__name__)

_PREFERRED_CHANNELS = {c.value for c in PreferredChannel}


@dataclass
class CustomerResolution:
    customer: Customer
    created: bool


def channel_identity_key(channel: ChannelType | str) -> str:
    """Metadata key holding a customer's id on a channel (e.g. `slack_id`)."""
    return f"{ChannelType(channel).value}_id"


def resolve_customer(
    db: Session,
    identifier: str,
    channel: ChannelType | str,
    name: str | None = None,
) -> CustomerResolution:
    """
    Find or create the customer behind a channel identifier.

    Email-shaped identifiers resolve by normalized email on any channel;
    everything else resolves by the channel-scoped id in customer metadata.

    Raises:
        IdentityResolutionError: on empty identifiers or persistence failures
    """
    channel = ChannelType(channel)
    identifier = (identifier or "").strip()
    if not identifier:
        raise IdentityResolutionError("customer identifier is required")

    clean_name = normalize_name(name)
    try:
        if is_email(identifier):
            return _resolve_by_email(db, normalize_email(identifier), clean_name)
        return _resolve_by_channel_id(db, identifier, channel, clean_name)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Customer resolution failed for %s (%s)",
            mask_identifier(identifier),
            type(exc).__name__,
            extra=build_log_context(channel=channel.value),
        )
        raise IdentityResolutionError("customer could not be resolved") from exc


def _resolve_by_email(db: Session, email: str, name: str | None) -> CustomerResolution:
    customer = db.query(Customer).filter(Customer.email == email).first()
    if customer:
        if name and not customer.name:
            customer.name = name
            customer.updated_at = utcnow()
            db.commit()
        return CustomerResolution(customer=customer, created=False)

    customer = Customer(
        email=email,
        name=name,
        preferred_channel=PreferredChannel.EMAIL.value,
        metadata_={},
    )
    db.add(customer)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first contact created the row first.
        db.rollback()
        existing = db.query(Customer).filter(Customer.email == email).first()
        if existing is None:
            raise
        return CustomerResolution(customer=existing, created=False)

    db.refresh(customer)
    logger.info("Created customer %s via email", customer.id)
    return CustomerResolution(customer=customer, created=True)


def _resolve_by_channel_id(
    db: Session,
    identifier: str,
    channel: ChannelType,
    name: str | None,
) -> CustomerResolution:
    key = channel_identity_key(channel)
    phone = None
    if channel == ChannelType.SMS:
        try:
            phone = normalize_phone(identifier)
        except ValueError:
            phone = None
        if phone:
            identifier = phone

    customer = (
        db.query(Customer)
        .filter(Customer.metadata_[key].as_string() == identifier)
        .order_by(Customer.created_at)
        .first()
    )
    if customer is None and phone:
        customer = (
            db.query(Customer)
            .filter(Customer.phone_number == phone)
            .order_by(Customer.created_at)
            .first()
        )

    if customer:
        changed = False
        metadata = dict(customer.metadata_ or {})
        if metadata.get(key) != identifier:
            metadata[key] = identifier
            customer.metadata_ = metadata
            changed = True
        # Placeholder names default to the identifier itself
        if name and (not customer.name or customer.name == identifier):
            customer.name = name
            changed = True
        if changed:
            customer.updated_at = utcnow()
            db.commit()
        return CustomerResolution(customer=customer, created=False)

    customer = Customer(
        name=name or identifier,
        phone_number=phone,
        preferred_channel=channel.value if channel.value in _PREFERRED_CHANNELS else None,
        metadata_={key: identifier},
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    logger.info("Created customer %s via %s", customer.id, channel.value)
    return CustomerResolution(customer=customer, created=True)


def get_customer(db: Session, customer_id: UUID) -> Customer | None:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def merge_customers(db: Session, primary_id: UUID, secondary_id: UUID) -> Customer:
    """
    Merge a duplicate identity into the primary customer.

    Re-points the secondary's tickets, merges metadata (primary keys win),
    fills empty email/phone/name fields on the primary, then deletes the
    secondary.
    """
    if primary_id == secondary_id:
        raise ValueError("Cannot merge a customer into itself")

    primary = get_customer(db, primary_id)
    if not primary:
        raise CustomerNotFoundError(f"Customer {primary_id} not found")
    secondary = get_customer(db, secondary_id)
    if not secondary:
        raise CustomerNotFoundError(f"Customer {secondary_id} not found")

    for ticket in list(secondary.tickets):
        ticket.customer = primary

    primary.metadata_ = {**(secondary.metadata_ or {}), **(primary.metadata_ or {})}

    secondary_email = secondary.email
    if not primary.email and secondary_email:
        # Release the unique email before moving it
        secondary.email = None
        db.flush()
        primary.email = secondary_email
    if not primary.phone_number and secondary.phone_number:
        primary.phone_number = secondary.phone_number
    if not primary.name and secondary.name:
        primary.name = secondary.name
    if not primary.preferred_channel and secondary.preferred_channel:
        primary.preferred_channel = secondary.preferred_channel
    primary.updated_at = utcnow()

    db.delete(secondary)
    db.commit()
    db.refresh(primary)
    logger.info(
        "Merged customer %s into %s",
        secondary_id,
        primary_id,
        extra=build_log_context(customer_id=str(primary_id)),
    )
    return primary
