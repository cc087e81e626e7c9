"""
Registry client for the Docker Registry HTTP API V2 behind GitLab.

This module provides the few registry calls the audit needs:
- exchanging username/password for a repository scoped JWT at GitLab
- listing the tags of a repository
- reading the creation date of a tag from its schema 1 manifest
- resolving the content digest of a tag
- deleting a manifest by digest

Every call is attempted once. 200 and 202 are success, 404 is logged and
reported as "no data", anything else raises RegistryHTTPError.
"""

import json
import re
from datetime import datetime, timezone
from typing import List, Optional

import requests

from registry_audit.config_manager import AuditConfig
from registry_audit.error_utils import (
    RegistryAuthError,
    RegistryHTTPError,
    RegistryResponseError,
    create_registry_connection_error,
)
from registry_audit.logging_utils import get_logger

logger = get_logger(__name__)

REGISTRY_TOKEN_URL = (
    "{git_url}/jwt/auth?client_id=docker&offline_token=true"
    "&service=container_registry&scope=repository:{repository}:*"
)
IMAGE_TAGS_URL = "{registry_url}/v2/{repository}/tags/list"
MANIFEST_URL = "{registry_url}/v2/{repository}/manifests/{reference}"

MANIFEST_V2_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v2+json"
DIGEST_HEADER = "Docker-Content-Digest"

_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:?\d{2})?$"
)


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware UTC datetime.

    Docker writes nanosecond fractions ("2017-05-03T10:20:30.123456789Z");
    the fraction is truncated to microseconds. Timestamps without an offset
    are taken as UTC.

    Raises:
        ValueError: If the value is not an RFC3339 timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    match = _RFC3339_RE.match(value.strip())
    if not match:
        raise ValueError(f"not an RFC3339 timestamp: {value!r}")

    text = match.group("base").replace("t", "T").replace(" ", "T")
    fraction = match.group("fraction")
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    offset = match.group("offset")
    if not offset or offset in ("Z", "z"):
        text += "+00:00"
    elif ":" not in offset:
        text += f"{offset[:3]}:{offset[3:]}"
    else:
        text += offset

    return datetime.fromisoformat(text).astimezone(timezone.utc)


class RegistryClient:
    """Thin requests based client for one repository of the registry"""

    def __init__(self, config: AuditConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.registry_url = config.registry_url
        self.repository = config.repository
        self.timeout = config.http_timeout
        self.session = session or requests.Session()
        self.token: Optional[str] = None

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> str:
        """Fetch a bearer token for the repository from the GitLab JWT endpoint"""
        url = REGISTRY_TOKEN_URL.format(git_url=self.config.git_url, repository=self.repository)
        try:
            response = self.session.get(
                url,
                auth=(self.config.username, self.config.password),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise create_registry_connection_error(self.config.git_url, e)

        if response.status_code != 200:
            logger.error(f"Return code: {response.status_code}")
            logger.error(f"Message: {response.text}")
            raise RegistryAuthError(url, response.status_code, response.text)

        data = self._decode_json(url, response)
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise RegistryResponseError(url, "token response has no 'token' field")

        self.token = token
        logger.info(f"Obtained registry token for repository {self.repository}")
        return token

    # ------------------------------------------------------------------
    # Low level request helper
    # ------------------------------------------------------------------

    def _request(self, method: str, url: str, manifest_v2: bool = False) -> Optional[requests.Response]:
        """Send one authenticated request.

        Returns:
            The response for 200/202, None for 404

        Raises:
            RegistryHTTPError: For any other status code
            RegistryConnectionError: On transport failures and timeouts
        """
        if self.token is None:
            self.authenticate()

        headers = {"Authorization": f"Bearer {self.token}"}
        if manifest_v2:
            headers["Accept"] = MANIFEST_V2_MEDIA_TYPE

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise create_registry_connection_error(self.registry_url, e)

        if response.status_code in (200, 202):
            return response
        if response.status_code == 404:
            logger.warning(f"Return code: {response.status_code} for {method} {url}")
            return None

        logger.error(f"Return code: {response.status_code}")
        logger.error(f"Message: {response.text}")
        raise RegistryHTTPError(method, url, response.status_code, response.text)

    @staticmethod
    def _decode_json(url: str, response: requests.Response):
        try:
            return response.json()
        except ValueError as e:
            raise RegistryResponseError(url, f"invalid JSON body ({e})")

    def _manifest_url(self, reference: str) -> str:
        return MANIFEST_URL.format(
            registry_url=self.registry_url, repository=self.repository, reference=reference
        )

    # ------------------------------------------------------------------
    # Registry operations
    # ------------------------------------------------------------------

    def list_tags(self) -> List[str]:
        """List every tag of the repository (empty when the repository is unknown)"""
        url = IMAGE_TAGS_URL.format(registry_url=self.registry_url, repository=self.repository)
        response = self._request("GET", url)
        if response is None:
            return []

        data = self._decode_json(url, response)
        if not isinstance(data, dict):
            raise RegistryResponseError(url, "tag list is not a JSON object")
        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise RegistryResponseError(url, "'tags' is not a list of strings")

        logger.info(f"Found {len(tags)} tags in {self.repository}")
        return tags

    def get_created_at(self, tag: str) -> Optional[datetime]:
        """Creation time of the newest layer of a tag, None if the tag is gone.

        Reads the schema 1 manifest: the first history entry is the newest
        layer and its v1Compatibility JSON carries the 'created' timestamp.
        """
        url = self._manifest_url(tag)
        response = self._request("GET", url)
        if response is None:
            return None

        data = self._decode_json(url, response)
        try:
            compatibility = data["history"][0]["v1Compatibility"]
            created = json.loads(compatibility)["created"]
            return parse_rfc3339(created)
        except (KeyError, IndexError, TypeError) as e:
            raise RegistryResponseError(url, f"manifest has no history[0].v1Compatibility.created ({e!r})")
        except ValueError as e:
            raise RegistryResponseError(url, f"cannot read creation date ({e})")

    def get_digest(self, tag: str) -> Optional[str]:
        """Content digest of the v2 manifest of a tag, None if the tag is gone"""
        url = self._manifest_url(tag)
        response = self._request("GET", url, manifest_v2=True)
        if response is None:
            return None

        digest = response.headers.get(DIGEST_HEADER)
        if not digest:
            raise RegistryResponseError(url, f"response has no {DIGEST_HEADER} header")
        return digest

    def delete_manifest(self, digest: str) -> bool:
        """Delete a manifest by digest. Returns False when the registry answers 404."""
        url = self._manifest_url(digest)
        response = self._request("DELETE", url, manifest_v2=True)
        return response is not None
