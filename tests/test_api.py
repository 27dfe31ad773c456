"""
Tests for Monitoring Service API endpoints.

Tests cover:
- Health check
- Authentication and write roles
- Reference data (create, update, delete, get, list, by type)
- Document configuration (CRUD, search)
- Document request search, summary and detail views
- Batch error details
- Error response body
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from monitoring_service import main
from monitoring_service.exceptions import BusinessValidationError

API = "/api/v1"
T0 = datetime(2024, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


def _create_reference(client, headers, ref_type="CHANNEL", value="WEB", description="Web"):
    response = client.post(
        f"{API}/reference-data",
        json={"refDataType": ref_type, "refDataValue": value, "description": description},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        """Health check should be public and report the database."""
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "up"}


class TestAuthentication:
    """Tests for bearer token handling."""

    def test_missing_token_is_rejected(self, client):
        response = client.get(f"{API}/reference-data")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_token_with_wrong_signature_is_rejected(self, client, token_factory):
        token = token_factory(secret="another-signing-secret-entirely-0123456789")
        response = client.get(f"{API}/reference-data", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_token_is_rejected(self, client, token_factory):
        token = token_factory(expires_in=-60)
        response = client.get(f"{API}/reference-data", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Token has expired"

    def test_reader_can_read(self, client, user_headers):
        response = client.get(f"{API}/reference-data", headers=user_headers)
        assert response.status_code == 200
        assert response.json() == []

    def test_reader_cannot_write(self, client, user_headers):
        response = client.post(
            f"{API}/reference-data",
            json={"refDataType": "CHANNEL", "refDataValue": "WEB"},
            headers=user_headers,
        )
        assert response.status_code == 403

    def test_roles_list_claim_grants_write(self, client, token_factory):
        token = token_factory(user_role=None, roles=["ROLE_ADMIN"])
        response = client.post(
            f"{API}/reference-data",
            json={"refDataType": "CHANNEL", "refDataValue": "WEB"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 201


class TestReferenceData:
    """Tests for the /api/v1/reference-data endpoints."""

    def test_create_returns_camel_case_record(self, client, admin_headers):
        data = _create_reference(client, admin_headers)

        assert data["refDataType"] == "CHANNEL"
        assert data["refDataValue"] == "WEB"
        assert data["editable"] is True
        assert data["effectiveTo"] is None
        assert "effectiveFrom" in data

    def test_create_validates_payload(self, client, admin_headers):
        response = client.post(f"{API}/reference-data", json={"refDataType": "CHANNEL"}, headers=admin_headers)
        assert response.status_code == 422

    def test_get_by_id(self, client, admin_headers, user_headers):
        created = _create_reference(client, admin_headers)

        response = client.get(f"{API}/reference-data/{created['id']}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_get_missing_returns_404_body(self, client, user_headers):
        response = client.get(f"{API}/reference-data/999", headers=user_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == 404
        assert body["error"] == "Not Found"
        assert body["message"] == "Reference data not found with ID: 999"
        assert body["path"] == f"{API}/reference-data/999"
        assert "errorDescription" in body
        assert "timestamp" in body

    def test_update_returns_new_version(self, client, admin_headers, user_headers):
        created = _create_reference(client, admin_headers)

        response = client.put(
            f"{API}/reference-data/{created['id']}",
            json={"refDataType": "CHANNEL", "refDataValue": "WEB2", "description": "Web v2"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        updated = response.json()
        assert updated["id"] != created["id"]
        assert updated["refDataValue"] == "WEB2"

        old = client.get(f"{API}/reference-data/{created['id']}", headers=user_headers).json()
        assert old["effectiveTo"] is not None

    def test_delete_is_logical(self, client, admin_headers, user_headers):
        created = _create_reference(client, admin_headers)

        response = client.delete(f"{API}/reference-data/{created['id']}", headers=admin_headers)
        assert response.status_code == 204

        active = client.get(f"{API}/reference-data", headers=user_headers).json()
        historic = client.get(f"{API}/reference-data", params={"historic": True}, headers=user_headers).json()
        assert active == []
        assert [r["id"] for r in historic] == [created["id"]]

        again = client.delete(f"{API}/reference-data/{created['id']}", headers=admin_headers)
        assert again.status_code == 204

    def test_list_by_type(self, client, admin_headers, user_headers):
        _create_reference(client, admin_headers, "CHANNEL", "WEB")
        _create_reference(client, admin_headers, "CHANNEL", "MAIL")
        _create_reference(client, admin_headers, "STATUS", "DONE")

        response = client.get(f"{API}/reference-data/type/CHANNEL", headers=user_headers)

        assert response.status_code == 200
        assert sorted(r["refDataValue"] for r in response.json()) == ["MAIL", "WEB"]

    def test_list_by_unknown_type_is_404(self, client, user_headers):
        response = client.get(f"{API}/reference-data/type/NOPE", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "No active reference data found for type: NOPE"


class TestDocumentConfiguration:
    """Tests for the /api/v1/document-configurations endpoints."""

    @pytest.fixture
    def refs(self, client, admin_headers):
        return {
            "footerId": _create_reference(client, admin_headers, "FOOTER", "FOOT_A")["id"],
            "appDocSpecId": _create_reference(client, admin_headers, "DOCUMENT_NAME", "INVOICE")["id"],
            "codeId": _create_reference(client, admin_headers, "CODE", "C01")["id"],
        }

    def _create(self, client, headers, refs, value="v1"):
        response = client.post(
            f"{API}/document-configurations",
            json={**refs, "value": value, "description": "Footer text"},
            headers=headers,
        )
        assert response.status_code == 201
        return response.json()

    def test_create_and_get(self, client, admin_headers, user_headers, refs):
        created = self._create(client, admin_headers, refs)

        response = client.get(f"{API}/document-configurations/{created['id']}", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["footerId"] == refs["footerId"]
        assert response.json()["value"] == "v1"

    def test_create_with_unknown_reference_is_404(self, client, admin_headers, refs):
        response = client.post(
            f"{API}/document-configurations",
            json={**refs, "codeId": 9999, "value": "v1"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    def test_search_by_reference_values(self, client, admin_headers, user_headers, refs):
        created = self._create(client, admin_headers, refs)

        response = client.get(
            f"{API}/document-configurations/search",
            params={"footer": "FOOT_A", "documentName": "INVOICE", "code": "C01"},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [created["id"]]

    def test_search_without_match_is_empty_list(self, client, user_headers, refs):
        response = client.get(
            f"{API}/document-configurations/search",
            params={"footer": "NONE", "documentName": "INVOICE", "code": "C01"},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json() == []

    def test_update_and_delete(self, client, admin_headers, user_headers, refs):
        created = self._create(client, admin_headers, refs)

        updated = client.put(
            f"{API}/document-configurations/{created['id']}",
            json={**refs, "value": "v2"},
            headers=admin_headers,
        ).json()
        assert updated["value"] == "v2"
        assert updated["id"] != created["id"]

        assert client.delete(f"{API}/document-configurations/{updated['id']}", headers=admin_headers).status_code == 204
        assert client.get(f"{API}/document-configurations", headers=user_headers).json() == []


class TestDocumentRequests:
    """Tests for the /api/v1/document-requests endpoints."""

    def test_search_envelope(self, client, user_headers, seed):
        for i in range(3):
            seed.request(created_at=T0 + timedelta(minutes=i))

        response = client.post(
            f"{API}/document-requests/search", params={"page": 1, "size": 2}, json={}, headers=user_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["totalElements"] == 3
        assert data["totalPages"] == 2
        assert data["page"] == 1
        assert data["size"] == 2
        assert data["first"] is True
        assert data["last"] is False
        assert len(data["content"]) == 2
        assert data["links"]["self"] == f"{API}/document-requests/search?page=1&size=2"
        assert data["links"]["next"] == f"{API}/document-requests/search?page=2&size=2"
        assert data["links"]["previous"] is None

    def test_search_without_body_uses_defaults(self, client, user_headers, seed):
        seed.request()

        response = client.post(f"{API}/document-requests/search", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["size"] == 10

    def test_search_rejects_invalid_sort(self, client, user_headers):
        response = client.post(
            f"{API}/document-requests/search",
            json={"sorts": [{"property": "secretField", "direction": "ASC"}]},
            headers=user_headers,
        )

        assert response.status_code == 400
        assert "secretField" in response.json()["message"]

    def test_search_rejects_page_zero(self, client, user_headers):
        response = client.post(f"{API}/document-requests/search", params={"page": 0}, json={}, headers=user_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Page number must be >= 1"

    def test_search_rejects_too_many_request_ids(self, client, user_headers):
        response = client.post(
            f"{API}/document-requests/search",
            json={"requestIds": list(range(1, 102))},
            headers=user_headers,
        )

        assert response.status_code == 400

    def test_summary(self, client, user_headers, seed):
        status = seed.reference("STATUS", "COMPLETED", "Completed")
        seed.request(status_id=status, created_at=T0)
        seed.request(status_id=status, created_at=T0 - timedelta(days=10))

        response = client.get(
            f"{API}/document-requests/summary",
            params={"fromDate": T0.isoformat(), "toDate": (T0 + timedelta(days=1)).isoformat()},
            headers=user_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["totalCount"] == 1
        assert data["statusCounts"] == [
            {"statusId": status, "statusName": "COMPLETED", "statusDescription": "Completed", "count": 1}
        ]

    def test_metadata(self, client, user_headers, seed):
        key = seed.reference("METADATA_KEY", "CUSTOMER")
        request_id = seed.request()
        seed.metadata(request_id, key, "ACME")

        response = client.get(f"{API}/document-requests/{request_id}/metadata", headers=user_headers)

        assert response.status_code == 200
        [value] = response.json()
        assert value["keyId"] == key
        assert value["value"] == "ACME"

    def test_detail_of_missing_request_is_404(self, client, user_headers):
        response = client.get(f"{API}/document-requests/77/batches", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Document request not found with ID: 77"

    def test_json_and_xml_content(self, client, user_headers, seed):
        request_id = seed.request()
        seed.blob(request_id, json_content='{"a": 1}')

        json_response = client.get(f"{API}/document-requests/{request_id}/json-content", headers=user_headers)
        xml_response = client.get(f"{API}/document-requests/{request_id}/xml-content", headers=user_headers)

        assert json_response.status_code == 200
        assert json_response.json() == {"requestId": request_id, "contentType": "JSON", "content": '{"a": 1}'}
        assert xml_response.status_code == 404
        assert xml_response.json()["message"] == f"XML content not available for document request ID: {request_id}"

    def test_content_without_blob_is_404(self, client, user_headers, seed):
        request_id = seed.request()

        response = client.get(f"{API}/document-requests/{request_id}/json-content", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == f"No content available for document request ID: {request_id}"

    def test_batches_newest_first(self, client, user_headers, seed):
        request_id = seed.request()
        older = seed.batch(request_id, created_at=T0)
        newer = seed.batch(request_id, created_at=T0 + timedelta(hours=1))

        response = client.get(f"{API}/document-requests/{request_id}/batches", headers=user_headers)

        assert response.status_code == 200
        assert [b["id"] for b in response.json()] == [newer, older]


class TestBatches:
    """Tests for the /api/v1/batches endpoints."""

    def test_batch_errors(self, client, user_headers, seed):
        batch_id = seed.batch(seed.request())
        seed.error(batch_id, "E001", "Template missing")
        seed.error(batch_id, "E002", "Render failed")

        response = client.get(f"{API}/batches/{batch_id}/errors", headers=user_headers)

        assert response.status_code == 200
        assert [e["errorCode"] for e in response.json()] == ["E001", "E002"]

    def test_batch_without_errors_is_empty(self, client, user_headers, seed):
        batch_id = seed.batch(seed.request())

        response = client.get(f"{API}/batches/{batch_id}/errors", headers=user_headers)

        assert response.status_code == 200
        assert response.json() == []

    def test_missing_batch_is_404(self, client, user_headers):
        response = client.get(f"{API}/batches/5/errors", headers=user_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Batch not found with ID: 5"


class _FailingReferenceDataService:
    def __init__(self, error):
        self.error = error

    def list_all(self, historic=False):
        raise self.error


class TestErrorResponses:
    """Every failure carries the same JSON error body."""

    ERROR_FIELDS = {"timestamp", "status", "error", "errorDescription", "message", "path"}

    def test_missing_token_body(self, client):
        response = client.get(f"{API}/reference-data")

        assert response.status_code == 401
        body = response.json()
        assert set(body) == self.ERROR_FIELDS
        assert body["status"] == 401
        assert body["error"] == "Unauthorized"
        assert body["message"] == "Authentication required"
        assert body["path"] == f"{API}/reference-data"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_wrong_role_body(self, client, user_headers):
        response = client.delete(f"{API}/reference-data/1", headers=user_headers)

        assert response.status_code == 403
        body = response.json()
        assert set(body) == self.ERROR_FIELDS
        assert body["error"] == "Forbidden"
        assert "ADMIN" in body["message"]

    def test_malformed_query_parameter_body(self, client, user_headers):
        response = client.post(
            f"{API}/document-requests/search", params={"page": "abc"}, json={}, headers=user_headers
        )

        assert response.status_code == 422
        body = response.json()
        assert set(body) == self.ERROR_FIELDS
        assert body["errorDescription"] == "Request validation failed"
        assert "page" in body["message"]

    def test_unknown_route_body(self, client):
        response = client.get(f"{API}/nothing-here")

        assert response.status_code == 404
        assert set(response.json()) == self.ERROR_FIELDS

    def test_business_validation_maps_to_400(self, client, user_headers):
        main.app.dependency_overrides[main.get_reference_data_service] = lambda: _FailingReferenceDataService(
            BusinessValidationError("Record is not editable")
        )

        response = client.get(f"{API}/reference-data", headers=user_headers)

        assert response.status_code == 400
        assert response.json()["errorDescription"] == "Business validation failed"
        assert response.json()["message"] == "Record is not editable"

    def test_unexpected_error_maps_to_500(self, client, user_headers):
        main.app.dependency_overrides[main.get_reference_data_service] = lambda: _FailingReferenceDataService(
            RuntimeError("boom")
        )
        quiet_client = TestClient(main.app, raise_server_exceptions=False)

        response = quiet_client.get(f"{API}/reference-data", headers=user_headers)

        assert response.status_code == 500
        body = response.json()
        assert set(body) == self.ERROR_FIELDS
        assert body["error"] == "Internal Server Error"
        assert body["message"] == "boom"
