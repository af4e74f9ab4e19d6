import os

os.environ.setdefault("AUTH_TOKEN_SECRET", "test-signing-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import StaticPool, create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from app.core.auth_token import TOKEN_COOKIE_NAME, issue_auth_token  # noqa: E402
from app.core.config import get_settings  # noqa: E402
from app.core.database import Base, get_db  # noqa: E402
from app.core.redis import get_redis  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.main import app  # noqa: E402
from app.models.communities import Community, CommunityMember  # noqa: E402
from app.models.users import User  # noqa: E402
from app.schemas.communities import MemberRole, MemberStatus, Visibility  # noqa: E402
from app.schemas.users import UserRole  # noqa: E402

DEFAULT_PASSWORD = "correct-horse-battery"


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value
        self.ttls[key] = ttl

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return 1 if self.store.pop(key, None) is not None else 0


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session]:
    connection = engine.connect()
    trans = connection.begin()

    TestingSessionLocal = sessionmaker(
        bind=connection, autoflush=False, expire_on_commit=False, future=True
    )
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        connection.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client(db_session, fake_redis) -> Generator[TestClient]:
    # Override FastAPI's get_db to use our testing session
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(
        email: str | None = None,
        *,
        name: str | None = None,
        password: str | None = DEFAULT_PASSWORD,
        role: UserRole = UserRole.user,
        **fields,
    ) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            name=name or f"User {counter['n']}",
            password_hash=hash_password(password) if password else None,
            role=role,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_community(db_session):
    def _make_community(
        owner: User,
        *,
        name: str = "Sunday Football",
        visibility: Visibility = Visibility.public,
        max_members: int | None = None,
    ) -> Community:
        community = Community(
            creator_id=owner.id,
            name=name,
            visibility=visibility,
            max_members=max_members,
        )
        db_session.add(community)
        db_session.flush()
        db_session.add(
            CommunityMember(
                community_id=community.id,
                user_id=owner.id,
                role=MemberRole.owner,
                status=MemberStatus.approved,
                approved_by=owner.id,
            )
        )
        db_session.commit()
        db_session.refresh(community)
        return community

    return _make_community


@pytest.fixture
def add_member(db_session):
    def _add_member(
        community: Community,
        user: User,
        *,
        role: MemberRole = MemberRole.member,
        status: MemberStatus = MemberStatus.approved,
    ) -> CommunityMember:
        member = CommunityMember(
            community_id=community.id,
            user_id=user.id,
            role=role,
            status=status,
        )
        db_session.add(member)
        db_session.commit()
        db_session.refresh(member)
        return member

    return _add_member


def _sign_in(client: TestClient, user: User | None) -> TestClient:
    client.cookies.clear()
    if user is not None:
        settings = get_settings()
        token = issue_auth_token(
            user.id, secret=settings.signing_secret, ttl=settings.auth_token_ttl
        )
        client.cookies.set(TOKEN_COOKIE_NAME, token)
    return client


@pytest.fixture
def login_as(client):
    """Swap the client's session cookie to ``user`` (or drop it for ``None``)."""

    def _login_as(user: User | None) -> TestClient:
        return _sign_in(client, user)

    return _login_as


@pytest.fixture
def auth_client(client, make_user) -> tuple[TestClient, User]:
    user = make_user("owner@example.com", name="Owner")
    return _sign_in(client, user), user
