import socket
from collections.abc import AsyncGenerator, Iterator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ridepool.api.deps import get_issuer
from ridepool.core.config import settings
from ridepool.core.rate_limiting import limiter
from ridepool.core.tokens import JWTTokenIssuer, reset_token_issuer
from ridepool.main import create_app
from ridepool.models import Base
from ridepool.repositories.inventory import reset_inventory
from ridepool.repositories.memory_inventory import MemoryRideInventory
from ridepool.repositories.sql_inventory import SQLRideInventory
from ridepool.services.booking_engine import (
    BookingEngine,
    get_booking_engine,
    reset_booking_engine,
)
from ridepool.services.notifier import Notifier
from ridepool.services.otp_manager import (
    OTPManager,
    get_otp_manager,
    reset_otp_manager,
)
from ridepool.services.otp_store import OTPStore

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow
TEST_ISSUER = "ridepool"
TEST_AUDIENCE = "ridepool-api"

# Use separate test database
TEST_DATABASE_URL = (
    f"{settings.database_url.rsplit('/', 1)[0]}/{settings.database_name}_test"
)

# Fixed "now" for deterministic expiry and departure checks
T0 = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

DRIVER_ID = "+919800000001"
PASSENGER_ID = "+919800000002"
OTHER_PASSENGER_ID = "rider@example.com"


class FakeClock:
    """Manually advanced clock.

    Usage:
        clock = FakeClock(T0)
        clock.advance(minutes=10)
    """

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


class RecordingNotifier(Notifier):
    """Notifier that records every send and returns a configurable result."""

    def __init__(self, *, delivered: bool = True) -> None:
        self.delivered = delivered
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, key: str, code: str, purpose: str) -> bool:
        self.sent.append((key, code, purpose))
        return self.delivered

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Reset application-wide singletons before and after each test.

    Yields:
        None (autouse fixture).
    """
    resets = (
        reset_otp_manager,
        reset_booking_engine,
        reset_inventory,
        reset_token_issuer,
    )
    for reset in resets:
        reset()
    yield
    for reset in resets:
        reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(clock: FakeClock) -> JWTTokenIssuer:
    return JWTTokenIssuer(
        secret=TEST_AUTH_SECRET,
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        clock=clock,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def otp_store(clock: FakeClock) -> OTPStore:
    return OTPStore(clock=clock)


@pytest.fixture
def otp_manager(
    otp_store: OTPStore,
    issuer: JWTTokenIssuer,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> OTPManager:
    return OTPManager(
        store=otp_store,
        issuer=issuer,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
def inventory() -> MemoryRideInventory:
    return MemoryRideInventory()


@pytest.fixture
def engine(inventory: MemoryRideInventory, clock: FakeClock) -> BookingEngine:
    return BookingEngine(inventory, clock=clock)


def bearer(issuer: JWTTokenIssuer, subject: str) -> dict[str, str]:
    """Authorization header for ``subject``."""
    token = issuer.mint(subject, {"purpose": "login"}, timedelta(hours=1))
    return {"Authorization": f"Bearer {token.token}"}


# =============================================================================
# API client
# =============================================================================


@pytest_asyncio.fixture
async def client(
    otp_manager: OTPManager,
    engine: BookingEngine,
    issuer: JWTTokenIssuer,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against a fresh app wired to the test collaborators.

    Rate limiting is disabled; tests that exercise it re-enable the limiter.
    """
    app = create_app()
    app.dependency_overrides[get_otp_manager] = lambda: otp_manager
    app.dependency_overrides[get_booking_engine] = lambda: engine
    app.dependency_overrides[get_issuer] = lambda: issuer

    original_enabled = limiter.enabled
    limiter.enabled = False
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    limiter.enabled = original_enabled
    limiter.reset()
    app.dependency_overrides.clear()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine with a fresh schema.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def sql_inventory(db_engine: AsyncEngine) -> SQLRideInventory:
    return SQLRideInventory(
        async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    )
