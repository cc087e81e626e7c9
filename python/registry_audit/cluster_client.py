"""Kubernetes access for one cluster, selected by a kubeconfig file."""

from dataclasses import dataclass
from typing import List

from kubernetes import client, config

from registry_audit.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class PodImages:
    """Container images of one pod"""
    namespace: str
    name: str
    images: List[str]


class ClusterClient:
    """Lists namespaces and pods of the cluster a kubeconfig file points at"""

    def __init__(self, kubeconfig: str):
        self.kubeconfig = kubeconfig
        self.name = kubeconfig
        # One ApiClient per cluster, the global kubernetes configuration stays untouched
        api_client = config.new_client_from_config(config_file=kubeconfig)
        self.core_v1_client = client.CoreV1Api(api_client)
        logger.info(f"Kubernetes client initialized from {kubeconfig}")

    def list_namespaces(self) -> List[str]:
        namespaces = self.core_v1_client.list_namespace()
        return [ns.metadata.name for ns in namespaces.items]

    def list_pods(self, namespace: str) -> List[PodImages]:
        """All pods of a namespace with the images of their regular containers"""
        pods = self.core_v1_client.list_namespaced_pod(namespace=namespace)
        result = []
        for pod in pods.items:
            containers = (pod.spec.containers if pod.spec else None) or []
            result.append(PodImages(
                namespace=namespace,
                name=pod.metadata.name,
                images=[c.image for c in containers],
            ))
        return result
