# tests/conftest.py
import pytest

from notifier import create_app
from notifier.delivery.dispatcher import QueueDispatcher
from notifier.delivery.optout import OptOutRegistry
from notifier.delivery.templates import TemplateResolver
from notifier.flows.ingest import WebhookIngestor
from notifier.models import ensure_db
from notifier.tenants.credentials import ConfigCredentialStore
from notifier.tenants.registry import TenantRouter
from tests.factories.records import (
    ACCESS_TOKEN,
    PHONE_NUMBER_ID,
    TENANT_ID,
    VERIFY_TOKEN,
    WEBHOOK_SECRET,
    FakeClock,
    FakeProvider,
    RecordingFallback,
)


# ---------------- app (integração) ----------------
@pytest.fixture
def app(tmp_path):
    app = create_app(
        "test",
        overrides={
            "TESTING": True,
            "DRY_RUN": True,
            "PORT": 5001,
            "SQLITE_PATH": str(tmp_path / "app.db"),
            "VERIFY_TOKEN": VERIFY_TOKEN,
            "WEBHOOK_APP_SECRET": WEBHOOK_SECRET,
            "INTERNAL_API_TOKEN": None,
            "QUEUE_PROCESSING_ENABLED": True,
            "QUEUE_ITEM_DELAY_MS": 0,
            "TENANT_REGISTRY": {PHONE_NUMBER_ID: TENANT_ID},
            "TENANT_CREDENTIALS": {
                TENANT_ID: {"phone_number_id": PHONE_NUMBER_ID, "access_token": ACCESS_TOKEN},
            },
        },
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_db(app):
    return app.config["SQLITE_PATH"]


# ---------------- serviços (unit) ----------------
@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "unit.db")
    ensure_db(path)
    return path


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fallback():
    return RecordingFallback()


@pytest.fixture
def credentials(db_path):
    return ConfigCredentialStore(
        db_path, {TENANT_ID: {"phone_number_id": PHONE_NUMBER_ID, "access_token": ACCESS_TOKEN}}
    )


@pytest.fixture
def opt_outs(db_path):
    return OptOutRegistry(db_path)


@pytest.fixture
def make_dispatcher(db_path, provider, credentials, opt_outs, fallback, clock):
    def _make(**overrides):
        kwargs = dict(
            provider=provider,
            credentials=credentials,
            resolver=TemplateResolver(db_path),
            opt_outs=opt_outs,
            fallback=fallback,
            item_delay=0,
            sleep=lambda s: None,
            clock=clock,
        )
        kwargs.update(overrides)
        return QueueDispatcher(db_path, **kwargs)

    return _make


@pytest.fixture
def dispatcher(make_dispatcher):
    return make_dispatcher()


@pytest.fixture
def ingestor(db_path, credentials, opt_outs, clock):
    # credentials já gravou o mapeamento phone_number_id -> tenant
    return WebhookIngestor(db_path, tenants=TenantRouter(db_path), opt_outs=opt_outs, clock=clock)
