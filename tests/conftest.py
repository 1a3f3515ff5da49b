"""Pytest configuration and fixtures."""

import itertools
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk.core.config import Settings
from helpdesk.models import Base, Department, Ticket, TicketCategory, User
from helpdesk.services.approval.workflow import ApprovalWorkflowService

_ticket_numbers = itertools.count(1)


class RecordingNotifier:
    """Notification sink that remembers every call."""

    def __init__(self):
        self.sent: list[tuple[str, int, dict[str, Any]]] = []

    async def notify(self, event_type: str, recipient_id: int, payload: dict[str, Any]) -> None:
        self.sent.append((event_type, recipient_id, payload))

    def events(self, event_type: str) -> list[tuple[str, int, dict[str, Any]]]:
        return [n for n in self.sent if n[0] == event_type]


class FailingNotifier:
    """Notification sink whose delivery always fails."""

    def __init__(self):
        self.attempts = 0

    async def notify(self, event_type: str, recipient_id: int, payload: dict[str, Any]) -> None:
        self.attempts += 1
        raise ConnectionError("notification backend unavailable")


@dataclass
class Org:
    """IDs of the seeded organisation."""

    it: int
    finance: int
    requester: int
    orphan_requester: int
    lm: int
    finance_head: int
    it_head: int
    admin: int
    director: int
    agent: int
    spare_manager: int
    lm_only: int
    hod_threshold: int
    no_approval: int
    hod_always: int
    threshold_only: int


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    return Settings(environment="testing", approval_resubmission_ceiling=3)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def org(session_factory) -> Org:
    """Seed departments, users and categories."""
    async with session_factory() as session:
        it = Department(name="Information Technology", code="ITD")
        finance = Department(name="Finance", code="FIN")
        session.add_all([it, finance])
        await session.flush()

        finance_head = User(
            name="Fiona Head", email="fiona@example.com",
            department_id=finance.id, roles=["Head of Department"],
        )
        it_head = User(
            name="Ian Head", email="ian@example.com",
            department_id=it.id, roles=["Head of Department"],
        )
        session.add_all([finance_head, it_head])
        await session.flush()

        lm = User(
            name="Lena Manager", email="lena@example.com",
            department_id=finance.id, manager_id=finance_head.id, roles=["Line Manager"],
        )
        session.add(lm)
        await session.flush()

        requester = User(
            name="Rita Requester", email="rita@example.com",
            department_id=finance.id, manager_id=lm.id, roles=["User"],
        )
        orphan_requester = User(
            name="Otto Orphan", email="otto@example.com",
            department_id=finance.id, roles=["User"],
        )
        admin = User(name="Ada Admin", email="ada@example.com", roles=["Admin"])
        director = User(
            name="Dora Director", email="dora@example.com",
            department_id=finance.id, roles=["Director"],
        )
        agent = User(name="Alan Agent", email="alan@example.com", roles=["Agent"])
        spare_manager = User(
            name="Sam Spare", email="sam@example.com",
            department_id=it.id, roles=["Line Manager"],
        )
        session.add_all([requester, orphan_requester, admin, director, agent, spare_manager])
        await session.flush()

        finance.head_id = finance_head.id
        it.head_id = it_head.id

        lm_only = TicketCategory(
            name="Software request", default_team_id=it.id,
            requires_approval=True, requires_hod_approval=False,
        )
        hod_threshold = TicketCategory(
            name="Hardware purchase", default_team_id=it.id,
            requires_approval=True, requires_hod_approval=True,
            hod_approval_threshold=Decimal("1000.00"),
        )
        no_approval = TicketCategory(
            name="Password reset", default_team_id=it.id, requires_approval=False,
        )
        hod_always = TicketCategory(
            name="Access to finance systems", default_team_id=None,
            requires_approval=True, requires_hod_approval=True,
        )
        threshold_only = TicketCategory(
            name="Consumables", default_team_id=it.id, requires_approval=False,
            hod_approval_threshold=Decimal("500.00"),
        )
        session.add_all([lm_only, hod_threshold, no_approval, hod_always, threshold_only])
        await session.commit()

        return Org(
            it=it.id,
            finance=finance.id,
            requester=requester.id,
            orphan_requester=orphan_requester.id,
            lm=lm.id,
            finance_head=finance_head.id,
            it_head=it_head.id,
            admin=admin.id,
            director=director.id,
            agent=agent.id,
            spare_manager=spare_manager.id,
            lm_only=lm_only.id,
            hod_threshold=hod_threshold.id,
            no_approval=no_approval.id,
            hod_always=hod_always.id,
            threshold_only=threshold_only.id,
        )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(session_factory, notifier, settings):
    """Workflow service bound to the test database."""
    return ApprovalWorkflowService(
        session_factory=session_factory,
        notifier=notifier,
        settings=settings,
    )


@pytest.fixture
def make_ticket(session_factory, org):
    """Factory creating a ticket; returns its ID."""

    async def _make_ticket(
        category_id: int | None = None,
        requester_id: int | None = None,
        estimated_cost: Decimal | None = None,
        priority: str = "medium",
    ) -> int:
        number = next(_ticket_numbers)
        async with session_factory() as session:
            ticket = Ticket(
                ticket_number=f"TKT-{number:06d}",
                subject=f"Test ticket {number}",
                category_id=category_id,
                requester_id=requester_id or org.requester,
                estimated_cost=estimated_cost,
                priority=priority,
            )
            session.add(ticket)
            await session.commit()
            return ticket.id

    return _make_ticket


@pytest.fixture
def load_ticket(session_factory):
    """Read a ticket straight from the database."""

    async def _load_ticket(ticket_id: int) -> Ticket:
        async with session_factory() as session:
            return await session.get(Ticket, ticket_id)

    return _load_ticket


@pytest.fixture
def set_ticket_status(session_factory):
    """Change a ticket's status outside the workflow."""

    async def _set_ticket_status(ticket_id: int, status: str) -> None:
        async with session_factory() as session:
            await session.execute(
                update(Ticket).where(Ticket.id == ticket_id).values(status=status)
            )
            await session.commit()

    return _set_ticket_status


@pytest.fixture
def failing_notifier():
    return FailingNotifier()
