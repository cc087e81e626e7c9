"""Unit tests for registry_audit/registry_client.py"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_response, schema1_manifest
from registry_audit.error_utils import (
    ErrorCategory,
    RegistryAuthError,
    RegistryConnectionError,
    RegistryHTTPError,
    RegistryResponseError,
)
from registry_audit.registry_client import MANIFEST_V2_MEDIA_TYPE, RegistryClient, parse_rfc3339


@pytest.fixture
def session():
    session = MagicMock()
    session.get.return_value = make_response(200, {"token": "secret-token"})
    return session


@pytest.fixture
def client(audit_config, session):
    return RegistryClient(audit_config, session=session)


class TestParseRfc3339:
    """Tests for parse_rfc3339"""

    def test_parses_zulu_with_nanoseconds(self):
        ts = parse_rfc3339("2017-05-03T10:20:30.123456789Z")
        assert ts == datetime(2017, 5, 3, 10, 20, 30, 123456, tzinfo=timezone.utc)

    def test_normalizes_offset_to_utc(self):
        ts = parse_rfc3339("2024-01-15T10:30:00+02:00")
        assert ts == datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc)
        assert ts.tzinfo == timezone.utc

    def test_offset_without_colon(self):
        assert parse_rfc3339("2024-01-15T10:30:00-0100") == datetime(2024, 1, 15, 11, 30, tzinfo=timezone.utc)

    def test_missing_offset_is_utc(self):
        assert parse_rfc3339("2024-01-15T10:30:00") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_short_fraction_is_padded(self):
        assert parse_rfc3339("2024-01-15T10:30:00.5Z").microsecond == 500000

    @pytest.mark.parametrize("value", ["", "yesterday", "2024-01-15", None, 1700000000])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_rfc3339(value)


class TestAuthenticate:
    """Tests for the GitLab JWT exchange"""

    def test_requests_token_with_basic_auth(self, client, session):
        token = client.authenticate()

        assert token == "secret-token"
        url = session.get.call_args.args[0]
        assert url == (
            "https://gitlab.example.com/jwt/auth?client_id=docker&offline_token=true"
            "&service=container_registry&scope=repository:group/app:*"
        )
        assert session.get.call_args.kwargs["auth"] == ("bot", "s3cret")
        assert session.get.call_args.kwargs["timeout"] == 30.0

    def test_wrong_credentials_raise_auth_error(self, client, session):
        session.get.return_value = make_response(401, text="HTTP Basic: Access denied")

        with pytest.raises(RegistryAuthError) as exc_info:
            client.authenticate()

        assert exc_info.value.status_code == 401
        assert "Access denied" in exc_info.value.format_message()
        assert "wrong username/password or repository combination" in str(exc_info.value)

    def test_malformed_token_body_is_fatal(self, client, session):
        session.get.return_value = make_response(200, text="<html>")

        with pytest.raises(RegistryResponseError):
            client.authenticate()

    def test_missing_token_field_is_fatal(self, client, session):
        session.get.return_value = make_response(200, {"expires_in": 300})

        with pytest.raises(RegistryResponseError):
            client.authenticate()

    def test_transport_error_becomes_connection_error(self, client, session):
        session.get.side_effect = requests.exceptions.ConnectionError("Name resolution failed")

        with pytest.raises(RegistryConnectionError):
            client.authenticate()


class TestListTags:
    """Tests for RegistryClient.list_tags"""

    def test_returns_tags_and_sends_bearer(self, client, session):
        session.request.return_value = make_response(200, {"name": "group/app", "tags": ["v1", "v2"]})

        assert client.list_tags() == ["v1", "v2"]

        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://registry.example.com/v2/group/app/tags/list"
        assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer secret-token"}

    def test_authenticates_once(self, client, session):
        session.request.return_value = make_response(200, {"tags": ["v1"]})

        client.list_tags()
        client.list_tags()

        assert session.get.call_count == 1

    def test_null_tags_is_empty(self, client, session):
        session.request.return_value = make_response(200, {"name": "group/app", "tags": None})
        assert client.list_tags() == []

    def test_not_found_is_no_data(self, client, session):
        session.request.return_value = make_response(404, text="repository unknown")
        assert client.list_tags() == []

    def test_server_error_is_fatal_with_status_and_body(self, client, session):
        session.request.return_value = make_response(500, text="boom")

        with pytest.raises(RegistryHTTPError) as exc_info:
            client.list_tags()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "boom"
        assert "Return code: 500" in exc_info.value.format_message()

    def test_malformed_json_is_fatal(self, client, session):
        session.request.return_value = make_response(200, text="not json")

        with pytest.raises(RegistryResponseError):
            client.list_tags()

    def test_timeout_is_connection_error(self, client, session):
        session.request.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(RegistryConnectionError) as exc_info:
            client.list_tags()

        assert exc_info.value.category == ErrorCategory.TIMEOUT

    def test_http_errors_are_categorized(self, client, session):
        session.request.return_value = make_response(403, text="insufficient_scope")

        with pytest.raises(RegistryHTTPError) as exc_info:
            client.list_tags()

        assert exc_info.value.category == ErrorCategory.PERMISSION
        assert {c.name for c in ErrorCategory} == {
            "CONNECTION", "AUTHENTICATION", "CONFIGURATION", "PERMISSION", "RESOURCE", "TIMEOUT",
        }


class TestManifests:
    """Tests for creation dates, digests and deletes"""

    def test_created_at_from_first_history_entry(self, client, session):
        session.request.return_value = make_response(200, schema1_manifest("2024-05-01T08:00:00.987654321Z"))

        created = client.get_created_at("v1")

        assert created == datetime(2024, 5, 1, 8, 0, 0, 987654, tzinfo=timezone.utc)
        assert session.request.call_args.args[1] == "https://registry.example.com/v2/group/app/manifests/v1"
        assert "Accept" not in session.request.call_args.kwargs["headers"]

    def test_created_at_missing_tag_is_none(self, client, session):
        session.request.return_value = make_response(404, text="manifest unknown")
        assert client.get_created_at("gone") is None

    @pytest.mark.parametrize("manifest", [
        {"schemaVersion": 2, "layers": []},
        {"history": []},
        {"history": [{"v1Compatibility": "{not json"}]},
        {"history": [{"v1Compatibility": "{\"id\": \"x\"}"}]},
        {"history": [{"v1Compatibility": "{\"created\": \"last tuesday\"}"}]},
    ])
    def test_created_at_malformed_manifest_is_fatal(self, client, session, manifest):
        session.request.return_value = make_response(200, manifest)

        with pytest.raises(RegistryResponseError):
            client.get_created_at("v1")

    def test_digest_from_header_with_v2_accept(self, client, session):
        session.request.return_value = make_response(
            200, {"schemaVersion": 2}, headers={"Docker-Content-Digest": "sha256:abc"}
        )

        assert client.get_digest("v1") == "sha256:abc"
        assert session.request.call_args.kwargs["headers"]["Accept"] == MANIFEST_V2_MEDIA_TYPE

    def test_digest_missing_tag_is_none(self, client, session):
        session.request.return_value = make_response(404, text="manifest unknown")
        assert client.get_digest("gone") is None

    def test_delete_by_digest_accepts_202(self, client, session):
        session.request.return_value = make_response(202, text="")

        assert client.delete_manifest("sha256:abc") is True
        method, url = session.request.call_args.args
        assert method == "DELETE"
        assert url == "https://registry.example.com/v2/group/app/manifests/sha256:abc"

    def test_delete_not_allowed_is_fatal(self, client, session):
        session.request.return_value = make_response(405, text="The operation is unsupported.")

        with pytest.raises(RegistryHTTPError) as exc_info:
            client.delete_manifest("sha256:abc")
        assert exc_info.value.status_code == 405
