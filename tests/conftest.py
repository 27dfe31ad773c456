"""
Pytest configuration and fixtures for Monitoring Service tests.
"""

import os
import shutil
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
import pytest
from fastapi.testclient import TestClient

TEST_SECRET = "monitoring-test-jwt-secret-0123456789"

# Set test environment variables before importing the app
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="monitoring_test_data_")
os.environ["MONITORING_DB_PATH"] = str(Path(_TEST_DATA_DIR) / "monitoring.db")
os.environ["MONITORING_JWT_SECRET"] = TEST_SECRET
os.environ.pop("MONITORING_JWT_ISSUER", None)

from monitoring_service import main  # noqa: E402
from monitoring_service.batch_service import BatchService  # noqa: E402
from monitoring_service.database import Database  # noqa: E402
from monitoring_service.document_configuration_service import DocumentConfigurationService  # noqa: E402
from monitoring_service.document_request_service import DocumentRequestService  # noqa: E402
from monitoring_service.reference_data_service import ReferenceDataService  # noqa: E402
from monitoring_service.search import CriteriaQueryBuilder  # noqa: E402
from monitoring_service.temporal_store import (  # noqa: E402
    DOCUMENT_CONFIGURATION,
    REFERENCE_DATA,
    TemporalRecordStore,
)

BASE_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for deterministic effective windows."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class Seeder:
    """Writes rows that the upstream pipeline would normally produce."""

    def __init__(self, database: Database):
        self.database = database

    def _insert(self, table, **values):
        with self.database.session() as session:
            return session.insert(table, values)

    def reference(self, ref_data_type, value, description=None, at=BASE_TIME):
        return self._insert(
            "reference_data",
            ref_data_type=ref_data_type,
            ref_data_value=value,
            description=description,
            editable=True,
            effective_from=at,
            effective_to=None,
            created_at=at,
            last_updated_at=at,
        )

    def request(
        self,
        created_at=BASE_TIME,
        source_system_id=None,
        document_type_id=None,
        document_name_id=None,
        status_id=None,
    ):
        return self._insert(
            "document_requests",
            source_system_id=source_system_id,
            document_type_id=document_type_id,
            document_name_id=document_name_id,
            status_id=status_id,
            created_at=created_at,
            last_updated_at=created_at,
        )

    def batch(self, request_id, created_at=BASE_TIME, batch_name=None, status_id=None):
        return self._insert(
            "batches",
            request_id=request_id,
            batch_name=batch_name,
            status_id=status_id,
            created_at=created_at,
            last_updated_at=created_at,
        )

    def metadata(self, request_id, key_id, value):
        return self._insert(
            "request_metadata_values",
            request_id=request_id,
            key_id=key_id,
            metadata_value=value,
            created_at=BASE_TIME,
        )

    def blob(self, request_id, json_content=None, xml_content=None):
        return self._insert(
            "document_request_blobs",
            request_id=request_id,
            json_content=json_content,
            xml_content=xml_content,
        )

    def error(self, batch_id, error_code, error_message=None):
        return self._insert(
            "error_details",
            batch_id=batch_id,
            error_code=error_code,
            error_message=error_message,
            created_at=BASE_TIME,
        )


@pytest.fixture(scope="session", autouse=True)
def test_data_dir():
    """Cleanup the app's default database directory after all tests."""
    yield _TEST_DATA_DIR
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)


@pytest.fixture
def database(tmp_path):
    """A fresh, empty database per test."""
    return Database(tmp_path / "monitoring.db")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seed(database):
    return Seeder(database)


@pytest.fixture
def reference_store(database, clock):
    return TemporalRecordStore(database, REFERENCE_DATA, clock=clock)


@pytest.fixture
def configuration_store(database, clock):
    return TemporalRecordStore(database, DOCUMENT_CONFIGURATION, clock=clock)


@pytest.fixture
def document_request_service(database):
    return DocumentRequestService(database, CriteriaQueryBuilder())


@pytest.fixture
def client(database):
    """Test client whose services all point at the per-test database."""
    app = main.app
    reference_service = ReferenceDataService(TemporalRecordStore(database, REFERENCE_DATA))
    configuration_service = DocumentConfigurationService(TemporalRecordStore(database, DOCUMENT_CONFIGURATION))
    request_service = DocumentRequestService(database, CriteriaQueryBuilder(main.search_limits))
    batch_service = BatchService(database)

    app.dependency_overrides[main.get_reference_data_service] = lambda: reference_service
    app.dependency_overrides[main.get_document_configuration_service] = lambda: configuration_service
    app.dependency_overrides[main.get_document_request_service] = lambda: request_service
    app.dependency_overrides[main.get_batch_service] = lambda: batch_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def make_token(subject="alice", user_role="USER", expires_in=3600, secret=TEST_SECRET, **claims):
    """Sign a bearer token the way the identity service does."""
    payload = {"sub": subject, "exp": int(time.time()) + expires_in, **claims}
    if user_role is not None:
        payload["userRole"] = user_role
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token(subject='admin', user_role='ADMIN:USER')}"}


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {make_token(subject='viewer', user_role='USER')}"}


@pytest.fixture
def token_factory():
    return make_token
