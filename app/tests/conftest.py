import os

# must be in place before anything imports app.db.session / get_settings()
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYMENT_WATCHER_TOKEN", "watcher-test-token")

import itertools
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import app.models  # noqa

from app.core.config import Settings
from app.db.base import Base
from app.models.enums import UserRole
from app.models.unit_inventory import InventoryUnit
from app.models.user import User
from app.services.minting_client import MintResponse


def _make_engine():
    url = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url)


@pytest.fixture(scope="function")
def db():
    engine = _make_engine()
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite+pysqlite:///:memory:",
        jwt_secret_key="test-secret-key",
        unit_price_usdt="50.000000",
        required_confirmations=3,
        order_ttl_minutes=15,
        referral_commission_rate="0.25",
        usdt_receive_address="TTestReceiveAddress",
        nft_contract_address="0x1111111111111111111111111111111111111111",
        mint_on_settlement=True,
    )


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name="Asha Rao", wallet="0x" + "ab" * 20, referred_by=None, role=UserRole.USER.value):
        n = next(counter)
        u = User(
            id=uuid.uuid4(),
            name=name,
            email=f"user{n}-{uuid.uuid4().hex[:6]}@example.com",
            password_hash="not-a-real-hash",
            wallet_address=wallet,
            role=role,
            referral_code=f"WT-TEST{n % 10}{chr(65 + n % 26)}",
            referred_by=referred_by,
        )
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture
def make_units(db):
    def _make(state_key="karnataka", area_key="whitefield", count=3, start=1):
        units = []
        for slot in range(start, start + count):
            u = InventoryUnit(
                unit_id=f"{state_key}_{area_key}_{slot:03d}",
                state_key=state_key,
                state_name=state_key.title(),
                area_key=area_key,
                area_name=area_key.title(),
                slot_number=slot,
                latitude=12.97,
                longitude=77.75,
            )
            db.add(u)
            units.append(u)
        db.commit()
        return [u.unit_id for u in units]

    return _make


class FakeMintingClient:
    """Counts calls; hands out sequential token ids unless told to fail."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []
        self._ids = itertools.count(100)

    def mint(self, *, to_address, metadata):
        self.calls.append((to_address, metadata))
        if self.fail:
            raise RuntimeError("engine down")
        token = next(self._ids)
        return MintResponse(token_id=str(token), transaction_hash=f"0xmint{token}")


@pytest.fixture
def fake_minter():
    return FakeMintingClient()


@pytest.fixture
def client(db, fake_minter):
    from fastapi.testclient import TestClient

    from app.db.session import get_db
    from app.main import create_app

    api = create_app(minting_client=fake_minter)

    def _override_db():
        yield db

    api.dependency_overrides[get_db] = _override_db
    with TestClient(api) as c:
        yield c
    api.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from app.core.security import create_access_token

    def _headers(user):
        token = create_access_token(
            subject=str(user.id),
            claims={"user_id": str(user.id), "role": user.role, "name": user.name},
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
