import itertools
import json
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_ai_client, get_rate_limiter
from app.core.database import Base, get_db
from app.core.rate_limit import RateLimiter
from app.models.goal import Goal, GoalProgress, GoalStatus

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# Fixture goals get deterministic, increasing creation times well in the past
BASE_CREATED_AT = datetime(2020, 1, 1, 12, 0, 0)


class FakeAIClient:
    def __init__(self, summary: str = "You kept a steady pace. Next, aim a little higher."):
        self.summary = summary
        self.error = None
        self.calls = []

    async def generate_completion(self, messages, **kwargs):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return json.dumps({"summary": self.summary})


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def make_goal(db):
    counter = itertools.count()

    async def _make(
        user_id: str = USER_ID,
        name: str = "Run 100 km",
        target: str = "100",
        deadline: date = None,
        status: GoalStatus = GoalStatus.active,
        parent: Goal = None,
        progress=(),
        ai_summary: str = None,
    ) -> Goal:
        created_at = BASE_CREATED_AT + timedelta(hours=next(counter))
        goal = Goal(
            user_id=user_id,
            name=name,
            target_value=Decimal(target),
            deadline=deadline or date.today() + timedelta(days=30),
            status=status,
            parent_goal_id=parent.id if parent else None,
            ai_summary=ai_summary,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(goal)
        await db.flush()
        for i, value in enumerate(progress):
            db.add(GoalProgress(
                goal_id=goal.id,
                value=Decimal(str(value)),
                notes=f"entry {i + 1}",
                created_at=created_at + timedelta(minutes=i + 1),
            ))
        await db.commit()
        await db.refresh(goal)
        return goal

    return _make


@pytest.fixture
async def client(session_factory, fake_ai) -> AsyncGenerator[AsyncClient, None]:
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    limiter = RateLimiter()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ai_client] = lambda: fake_ai
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": USER_ID},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
