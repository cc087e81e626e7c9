"""
Error types for the registry tag auditor.

Every failure that ends a run is an ActionableError: a message, a category,
suggested fixes and details the operator can act on. The CLI prints the
formatted message and exits non-zero.
"""

from typing import List, Optional, Dict, Any
from enum import Enum


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    RESOURCE = "resource"
    TIMEOUT = "timeout"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class ConfigValidationError(ActionableError):
    """Raised when configuration validation fails"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(
            message="Configuration validation failed:\n  " + "\n  ".join(self.errors),
            category=ErrorCategory.CONFIGURATION,
            suggestions=[
                "Pass the missing values as command line flags",
                "Or set them in config.yaml / the matching environment variables",
            ],
        )


class RegistryHTTPError(ActionableError):
    """The registry answered with a status code other than 200, 202 or 404"""

    def __init__(self, method: str, url: str, status_code: int, body: str):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(
            message=f"Registry request {method} {url} failed",
            category=ErrorCategory.PERMISSION if status_code in (401, 403) else ErrorCategory.RESOURCE,
            suggestions=_http_suggestions(status_code),
            details={
                "Return code": status_code,
                "Message": body,
            },
        )


class RegistryAuthError(ActionableError):
    """The token endpoint rejected the credentials"""

    def __init__(self, url: str, status_code: int, body: str):
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(
            message="wrong username/password or repository combination",
            category=ErrorCategory.AUTHENTICATION,
            suggestions=[
                "Verify --user and --password (or REGISTRY_USERNAME / REGISTRY_PASSWORD)",
                "Check that --repository includes the group, e.g. group/project",
                "Verify the account can read the repository's container registry",
            ],
            details={
                "Return code": status_code,
                "Message": body,
            },
        )


class RegistryResponseError(ActionableError):
    """The registry answered 200 but the payload could not be understood"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(
            message=f"Unexpected response from {url}: {reason}",
            category=ErrorCategory.RESOURCE,
            suggestions=[
                "Check that the registry speaks the Docker Registry HTTP API V2",
                "Verify the manifest is available in schema 1 form (v1Compatibility history)",
            ],
        )


class RegistryConnectionError(ActionableError):
    """Transport level failure talking to the registry or the token endpoint"""


class ClusterScanError(ActionableError):
    """A cluster could not be loaded or listed"""

    def __init__(self, cluster: str, error: Exception):
        self.cluster = cluster
        self.error = error
        source = create_kubernetes_error(f"scan cluster {cluster}", error)
        super().__init__(
            message=f"Failed to scan cluster {cluster}",
            category=source.category,
            suggestions=source.suggestions,
            details=source.details,
        )


def _http_suggestions(status_code: int) -> List[str]:
    if status_code in (401, 403):
        return [
            "The registry token may lack pull/delete scope for this repository",
            "Verify the account has maintainer rights when deleting images",
        ]
    if status_code == 405:
        return [
            "The registry does not allow deletes; enable storage.delete in the registry configuration",
        ]
    return [
        "Check the registry logs for the failed request",
        "Verify --registryurl points at the registry, not the GitLab instance",
    ]


def create_registry_connection_error(registry_url: str, error: Exception) -> RegistryConnectionError:
    """Create actionable error for registry connection failures"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the registry URL is correct: {registry_url}",
        "Check network connectivity to the registry",
        "Verify firewall rules allow access to the registry",
    ]

    if "timeout" in error_str or "timed out" in error_str:
        suggestions.insert(1, "Check if the registry is experiencing high load")
        suggestions.insert(2, "Raise http.timeout in config.yaml")

    if "name resolution" in error_str or "dns" in error_str:
        suggestions.insert(1, "Verify DNS resolution for the registry hostname")

    return RegistryConnectionError(
        message=f"Failed to connect to {registry_url}",
        category=ErrorCategory.TIMEOUT if "timed out" in error_str else ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "registry_url": registry_url,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )


def create_kubernetes_error(operation: str, error: Exception) -> ActionableError:
    """Create actionable error for Kubernetes API failures"""
    error_str = str(error).lower()

    suggestions = [
        "Verify Kubernetes cluster access (kubectl --kubeconfig <file> cluster-info)",
        "Check that the kubeconfig file exists and its current context is valid",
        "Verify RBAC permissions to list namespaces and pods",
    ]

    if "403" in error_str or "forbidden" in error_str:
        suggestions.insert(0, "Check Kubernetes RBAC permissions")
        suggestions.insert(1, "Grant list on namespaces and pods cluster-wide")

    return ActionableError(
        message=f"Kubernetes operation failed: {operation}",
        category=ErrorCategory.PERMISSION if "403" in error_str or "forbidden" in error_str else ErrorCategory.CONNECTION,
        suggestions=suggestions,
        details={
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": str(error)
        }
    )
