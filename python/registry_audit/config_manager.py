#!/usr/bin/env python3
"""
Configuration Manager for the registry tag auditor

This module loads settings from config.yaml and environment variables and
turns them, together with command line overrides, into one immutable
AuditConfig that is handed to every component.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from registry_audit.error_utils import ConfigValidationError


@dataclass(frozen=True)
class AuditConfig:
    """Settings for one audit run"""

    git_url: str
    registry_url: str
    repository: str
    username: str = ""
    password: str = field(default="", repr=False)
    kubeconfigs: Tuple[str, ...] = ()
    min_expiry_days: int = 7
    exclude_pattern: Optional[str] = None
    delete_images: bool = False
    http_timeout: Optional[float] = 30.0
    fail_fast_clusters: bool = True
    report_path: Optional[str] = None

    @property
    def registry_host(self) -> str:
        """Registry URL without protocol, as it appears in image references"""
        return strip_protocol(self.registry_url)


def strip_protocol(url: str) -> str:
    """Remove a leading https:// or http:// from a URL"""
    for prefix in ("https://", "http://"):
        if url.startswith(prefix):
            return url[len(prefix):]
    return url


class ConfigManager:
    """Manages configuration for the registry tag auditor"""

    def __init__(self, config_file: str = None):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "registry": {"url": "", "git_url": "", "repository": "", "username": ""},
            "kubernetes": {"kubeconfigs": []},
            "filters": {"min_expiry_days": 7, "exclude_pattern": ""},
            "http": {"timeout": 30},
            "clusters": {"fail_fast": True},
        }

        if not os.path.exists(self.config_file):
            logging.debug(f"Config file {self.config_file} not found, using defaults")
            return default_config

        with open(self.config_file, "r") as f:
            user_config = yaml.safe_load(f) or {}
        if not isinstance(user_config, dict):
            raise ConfigValidationError([f"{self.config_file} must contain a mapping at the top level"])
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    # Registry configuration
    def get_registry_url(self) -> str:
        """Get registry URL from environment or config"""
        return os.environ.get("REGISTRY_URL") or self.config["registry"]["url"] or ""

    def get_git_url(self) -> str:
        """Get the URL of the GitLab instance that issues registry tokens"""
        return os.environ.get("GIT_URL") or self.config["registry"]["git_url"] or ""

    def get_repository(self) -> str:
        return os.environ.get("REPOSITORY") or self.config["registry"]["repository"] or ""

    def get_registry_username(self) -> str:
        return os.environ.get("REGISTRY_USERNAME") or self.config["registry"]["username"] or ""

    def get_registry_password(self) -> str:
        """Password is only read from the environment, never from config.yaml"""
        return os.environ.get("REGISTRY_PASSWORD", "")

    # Kubernetes configuration
    def get_kubeconfigs(self) -> List[str]:
        """Get kubeconfig paths, KUBECONFIGS env var is os.pathsep separated"""
        env_value = os.environ.get("KUBECONFIGS")
        if env_value:
            return [p for p in env_value.split(os.pathsep) if p]
        configured = self.config["kubernetes"]["kubeconfigs"] or []
        if isinstance(configured, str):
            return [configured]
        return list(configured)

    # Filter configuration
    def get_min_expiry_days(self) -> Any:
        return os.environ.get("MIN_EXPIRY_DAYS") or self.config["filters"]["min_expiry_days"]

    def get_exclude_pattern(self) -> Optional[str]:
        return os.environ.get("EXCLUDE_PATTERN") or self.config["filters"]["exclude_pattern"] or None

    # HTTP / cluster behaviour
    def get_http_timeout(self) -> Any:
        return self.config["http"]["timeout"]

    def get_fail_fast_clusters(self) -> bool:
        return bool(self.config["clusters"]["fail_fast"])

    def build_audit_config(self, overrides: Optional[Dict[str, Any]] = None) -> AuditConfig:
        """Combine config file, environment and command line values into an AuditConfig.

        Args:
            overrides: Command line values; None entries fall through to env/config

        Returns:
            Validated AuditConfig

        Raises:
            ConfigValidationError: If any value is missing or invalid
        """
        overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        errors = []

        git_url = overrides.get("git_url", self.get_git_url()).rstrip("/")
        registry_url = overrides.get("registry_url", self.get_registry_url()).rstrip("/")
        repository = overrides.get("repository", self.get_repository()).strip("/")
        kubeconfigs = [os.path.expanduser(p) for p in (overrides.get("kubeconfigs") or self.get_kubeconfigs())]

        if not git_url:
            errors.append("Git URL is required (--giturl, GIT_URL or registry.git_url)")
        elif not self._is_valid_http_url(git_url):
            errors.append(f"Git URL '{git_url}' must start with http:// or https://")

        if not registry_url:
            errors.append("Registry URL is required (--registryurl, REGISTRY_URL or registry.url)")
        elif not self._is_valid_http_url(registry_url):
            errors.append(f"Registry URL '{registry_url}' must start with http:// or https://")

        if not repository:
            errors.append("Repository is required (--repository, REPOSITORY or registry.repository)")
        elif not self._is_valid_repository_name(repository):
            errors.append(
                f"Repository name '{repository}' contains invalid characters "
                "(lowercase alphanumeric, '.', '_', '-' and '/' only)"
            )

        min_expiry_days = overrides.get("min_expiry_days", self.get_min_expiry_days())
        try:
            min_expiry_days = int(min_expiry_days)
            if min_expiry_days < 0:
                errors.append(f"Minimum expiry must be a non-negative number of days, got: {min_expiry_days}")
        except (ValueError, TypeError):
            errors.append(f"Minimum expiry must be an integer, got: {min_expiry_days!r}")

        exclude_pattern = overrides.get("exclude_pattern", self.get_exclude_pattern()) or None
        if exclude_pattern is not None:
            try:
                re.compile(exclude_pattern)
            except re.error as e:
                errors.append(f"Regular expression '{exclude_pattern}' is invalid: {e}")

        http_timeout = overrides.get("http_timeout", self.get_http_timeout())
        try:
            http_timeout = float(http_timeout) if http_timeout else None
            if http_timeout is not None and http_timeout < 0:
                errors.append(f"http.timeout must be a non-negative number, got: {http_timeout}")
        except (ValueError, TypeError):
            errors.append(f"http.timeout must be a number, got: {http_timeout!r}")

        for path in kubeconfigs:
            if not os.path.isfile(path):
                errors.append(f"Kubeconfig file not found: {path}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(errors)

        if not kubeconfigs:
            logging.warning(
                "No kubeconfig given: no cluster will be scanned and every old tag is reported as unused"
            )

        fail_fast = overrides.get("fail_fast_clusters", self.get_fail_fast_clusters())

        return AuditConfig(
            git_url=git_url,
            registry_url=registry_url,
            repository=repository,
            username=overrides.get("username", self.get_registry_username()),
            password=overrides.get("password", self.get_registry_password()),
            kubeconfigs=tuple(kubeconfigs),
            min_expiry_days=min_expiry_days,
            exclude_pattern=exclude_pattern,
            delete_images=bool(overrides.get("delete_images", False)),
            http_timeout=http_timeout,
            fail_fast_clusters=bool(fail_fast),
            report_path=overrides.get("report_path"),
        )

    def _is_valid_http_url(self, url: str) -> bool:
        return url.startswith("http://") or url.startswith("https://")

    def _is_valid_repository_name(self, name: str) -> bool:
        """Validate repository path, e.g. group/subgroup/project"""
        pattern = r"^[a-z0-9]+(?:(?:[._/]|__|-+)[a-z0-9]+)*$"
        return bool(re.match(pattern, name))
