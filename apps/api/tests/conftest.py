"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, tables created and dropped per test
- Customer/ticket factories
- Fake completion provider and knowledge search
- HTTPX AsyncClient against the app (plain and bearer-authenticated)
"""
import os
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["AI_API_KEY"] = ""
os.environ["BRAVE_SEARCH_API_KEY"] = ""

from helpdesk.core.deps import get_db
from helpdesk.db import models  # noqa: F401  (register tables)
from helpdesk.db.base import Base
from helpdesk.db.enums import ChannelType
from helpdesk.db.models import Customer, Ticket
from helpdesk.db.session import SessionLocal, engine
from helpdesk.main import app
from helpdesk.services import ticket_service
from helpdesk.services.ai_provider import AIProvider, ChatMessage, ChatResponse

INTERNAL_API_KEY = "test-internal-key"
INTERNAL_SECRET = "test-internal-secret"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits freely; isolation comes from dropping every table
    afterwards.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_customer(db: Session):
    def _make(**fields) -> Customer:
        fields.setdefault("metadata_", {})
        customer = Customer(**fields)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    return _make


@pytest.fixture
def make_ticket(db: Session, make_customer):
    def _make(
        customer: Customer | None = None,
        channel: ChannelType | str = ChannelType.EMAIL,
        subject: str = "Help needed",
        **fields,
    ) -> Ticket:
        if customer is None:
            customer = db.query(Customer).filter(Customer.email == "owner@example.com").first()
            customer = customer or make_customer(email="owner@example.com")
        ticket = ticket_service.create_ticket(db, customer, channel, subject=subject)
        if fields:
            for key, value in fields.items():
                setattr(ticket, key, value)
            db.commit()
            db.refresh(ticket)
        return ticket

    return _make


# =============================================================================
# Collaborator fakes
# =============================================================================

class FakeProvider(AIProvider):
    """Completion provider returning canned content, or raising."""

    def __init__(self, content: str = "", error: Exception | None = None, delay: float = 0.0):
        self.content = content
        self.error = error
        self.delay = delay
        self.calls: list[list[ChatMessage]] = []

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        json_mode: bool = False,
    ) -> ChatResponse:
        import anyio

        self.calls.append(messages)
        if self.delay:
            await anyio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ChatResponse(
            content=self.content,
            prompt_tokens=10,
            completion_tokens=10,
            total_tokens=20,
            model="fake",
        )


@pytest.fixture
def fake_provider():
    """Factory: `fake_provider('{"reply": "...", "confidence": 0.9}')`."""
    return FakeProvider


@pytest.fixture
def no_knowledge():
    def _search(query: str) -> list:
        return []

    return _search


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """
    Create AsyncClient carrying the internal bearer token.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {INTERNAL_API_KEY}"},
    ) as c:
        yield c

    app.dependency_overrides.clear()
