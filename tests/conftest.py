"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides fakes for the registry HTTP API and Kubernetes clusters.
"""
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from registry_audit.cluster_client import PodImages  # noqa: E402
from registry_audit.config_manager import AuditConfig  # noqa: E402

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_response(status_code=200, json_body=None, text=None, headers=None):
    """Build a Mock that quacks like requests.Response"""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    if json_body is not None:
        response.json.return_value = json_body
        response.text = text if text is not None else json.dumps(json_body)
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
        response.text = text or ""
    return response


def schema1_manifest(created: str) -> dict:
    return {
        "schemaVersion": 1,
        "history": [
            {"v1Compatibility": json.dumps({"id": "newest", "created": created})},
            {"v1Compatibility": json.dumps({"id": "older", "created": "2001-01-01T00:00:00Z"})},
        ],
    }


class FakeRegistrySession:
    """In-memory stand-in for requests.Session talking to a GitLab registry.

    tags maps tag -> (created RFC3339 string, digest).
    """

    def __init__(self, registry_url, repository, tags, token_status=200):
        self.registry_url = registry_url
        self.repository = repository
        self.tags = dict(tags)
        self.token_status = token_status
        self.calls = []
        self.deleted = []

    def get(self, url, auth=None, timeout=None):
        self.calls.append(("GET", url, None))
        if "/jwt/auth" not in url:
            raise AssertionError(f"unexpected plain GET {url}")
        if self.token_status != 200:
            return make_response(self.token_status, text="access forbidden")
        return make_response(200, {"token": "secret-token"})

    def request(self, method, url, headers=None, timeout=None):
        headers = headers or {}
        self.calls.append((method, url, headers.get("Accept")))
        assert headers.get("Authorization") == "Bearer secret-token"

        base = f"{self.registry_url}/v2/{self.repository}"
        if method == "GET" and url == f"{base}/tags/list":
            return make_response(200, {"name": self.repository, "tags": list(self.tags)})

        reference = url[len(f"{base}/manifests/"):]
        if method == "GET":
            if reference not in self.tags:
                return make_response(404, text="manifest unknown")
            created, digest = self.tags[reference]
            if headers.get("Accept"):
                return make_response(200, {"schemaVersion": 2}, headers={"Docker-Content-Digest": digest})
            return make_response(200, schema1_manifest(created))
        if method == "DELETE":
            self.deleted.append(reference)
            return make_response(202, text="")
        raise AssertionError(f"unexpected request {method} {url}")

    def delete_calls(self):
        return [c for c in self.calls if c[0] == "DELETE"]


class FakeCluster:
    """Cluster client fake: namespace -> list of (pod name, [images])"""

    def __init__(self, name, namespaces):
        self.name = name
        self.namespaces = namespaces

    def list_namespaces(self):
        return list(self.namespaces)

    def list_pods(self, namespace):
        return [PodImages(namespace=namespace, name=pod, images=list(images))
                for pod, images in self.namespaces[namespace]]


def cluster_factory_for(clusters):
    """cluster_factory that resolves kubeconfig paths to FakeCluster objects (or raises)"""
    def factory(kubeconfig):
        cluster = clusters[kubeconfig]
        if isinstance(cluster, Exception):
            raise cluster
        return cluster
    return factory


def k8s_pod(name, images):
    """Pod shaped like kubernetes.client.V1Pod"""
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name),
        spec=SimpleNamespace(containers=[SimpleNamespace(image=i) for i in images]),
    )


def days_ago(days, now=NOW):
    return (now - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def audit_config():
    return AuditConfig(
        git_url="https://gitlab.example.com",
        registry_url="https://registry.example.com",
        repository="group/app",
        username="bot",
        password="s3cret",
        kubeconfigs=("/kube/prod",),
        min_expiry_days=7,
    )
