from datetime import date, time, timedelta
from typing import AsyncIterator, Callable

import pytest
import pytest_asyncio
from app.config import get_settings
from app.database import build_engine
from app.deps import get_dispatcher, get_session, get_settings_store
from app.infrastructure.transaction import SqlAlchemyUnitOfWork
from app.main import create_app
from app.models import Base, Event, Slot, SlotStatus, Staff
from app.notifications.dispatcher import NotificationDispatcher
from app.notifications.messages import EmailMessage
from app.settings_store import SettingsStore
from app.utils.auth import create_access_token
from app.utils.time import utc_now_naive
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


class Seeder:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions
        self._emails = 0

    async def staff(self, *, is_admin: bool = False, is_active: bool = True, first_name: str = "Anna") -> Staff:
        self._emails += 1
        now = utc_now_naive()
        staff = Staff(
            email=f"staff{self._emails}@example.org",
            first_name=first_name,
            last_name="Lehmann",
            room=f"R{self._emails}",
            is_admin=is_admin,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        async with self.sessions() as session, session.begin():
            session.add(staff)
        return staff

    async def slot(
        self,
        staff: Staff,
        *,
        slot_date: date | None = None,
        start: time = time(10, 0),
        end: time = time(10, 20),
        status: SlotStatus = SlotStatus.AVAILABLE,
    ) -> Slot:
        now = utc_now_naive()
        slot = Slot(
            staff_id=staff.id,
            date=slot_date or (date.today() + timedelta(days=14)),
            start_time=start,
            end_time=end,
            status=status,
            created_at=now,
            updated_at=now,
        )
        async with self.sessions() as session, session.begin():
            session.add(slot)
        return slot

    async def event(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        is_active: bool = True,
        name: str = "Elternsprechtag",
    ) -> Event:
        now = utc_now_naive()
        today = date.today()
        event = Event(
            name=name,
            start_date=start_date or today - timedelta(days=30),
            end_date=end_date or today + timedelta(days=90),
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        async with self.sessions() as session, session.begin():
            session.add(event)
        return event


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}", connect_args={"timeout": 15})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def make_uow() -> Callable[[AsyncSession], SqlAlchemyUnitOfWork]:
    def _make(session: AsyncSession) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(session, max_attempts=3, backoff_seconds=0.01)

    return _make


@pytest.fixture
def store() -> SettingsStore:
    return SettingsStore(ttl_seconds=60)


@pytest.fixture
def seed(sessions: async_sessionmaker[AsyncSession]) -> Seeder:
    return Seeder(sessions)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture
async def client(
    sessions: async_sessionmaker[AsyncSession],
    store: SettingsStore,
    sender: RecordingSender,
) -> AsyncIterator[AsyncClient]:
    app = create_app()

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with sessions() as session:
            yield session

    dispatcher = NotificationDispatcher(sender)
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


def bearer(staff: Staff) -> dict[str, str]:
    settings = get_settings()
    token = create_access_token(
        staff_id=staff.id,
        secret=settings.auth_secret,
        algorithm=settings.auth_algorithm,
        is_admin=staff.is_admin,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[[Staff], dict[str, str]]:
    return bearer
