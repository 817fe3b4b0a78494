import os
import tempfile

# Point the collector at throwaway storage before any collector module loads
_DATA_DIR = tempfile.mkdtemp(prefix="collector-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DATA_DIR, 'monitor.db')}"
os.environ["BALANCE_HISTORY_PATH"] = os.path.join(_DATA_DIR, "balance_history.json")
os.environ["BALANCE_POLL_INTERVAL_SECONDS"] = "0"
os.environ["MOONSHOT_API_KEY"] = ""

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from collector.core.database import Base, SessionLocal, engine  # noqa: E402
from collector.main import app  # noqa: E402
from collector.services.balance import BalanceHistory, BalanceService, get_balance_service  # noqa: E402
from collector.services.broadcaster import Broadcaster, get_broadcaster  # noqa: E402
from collector.services.status import AgentStatusTracker, get_status_tracker  # noqa: E402


@pytest.fixture(autouse=True)
def clean_tables():
    """Every test starts with empty telemetry tables."""
    import collector.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def broadcaster():
    return Broadcaster(queue_size=10)


@pytest.fixture()
def status_tracker():
    return AgentStatusTracker()


@pytest.fixture()
def balance_client():
    client = AsyncMock()
    client.configured = True
    client.fetch_balance.return_value = {
        "available_balance": 100.0,
        "cash_balance": 80.0,
        "voucher_balance": 20.0,
    }
    return client


@pytest.fixture()
def balance_service(tmp_path, balance_client):
    history = BalanceHistory(str(tmp_path / "balance_history.json"))
    return BalanceService(client=balance_client, history=history)


@pytest.fixture()
def client(broadcaster, status_tracker, balance_service):
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_status_tracker] = lambda: status_tracker
    app.dependency_overrides[get_balance_service] = lambda: balance_service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
