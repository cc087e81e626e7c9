"""Cluster usage correlation for registry tags.

Scans every pod of every configured cluster and marks catalog entries whose
fully-qualified reference is used by a container.

- One worker per cluster, all clusters in parallel
- Workers only read; each returns its own ClusterScanResult
- Matches are merged into the catalog on the calling thread after all
  workers have finished

Matching is exact, case-sensitive string equality between the container
image and `{registry_host}/{repository}:{tag}`. A tag referenced by digest
or by another tag pointing at the same digest is not detected.
"""

import concurrent.futures
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from registry_audit.cluster_client import ClusterClient
from registry_audit.error_utils import ClusterScanError
from registry_audit.image_catalog import CatalogKey, ImageCatalog
from registry_audit.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class UsageMatch:
    """A pod container running one catalog entry"""
    key: CatalogKey
    cluster: str
    namespace: str
    pod: str
    image: str

    def note(self) -> str:
        return f"cluster {self.cluster}, namespace {self.namespace}, pod {self.pod}"


@dataclass
class ClusterScanResult:
    cluster: str
    matches: List[UsageMatch] = field(default_factory=list)
    namespaces_scanned: int = 0
    pods_scanned: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CorrelationReport:
    results: List[ClusterScanResult] = field(default_factory=list)

    @property
    def failed_clusters(self) -> Dict[str, Exception]:
        return {r.cluster: r.error for r in self.results if not r.ok}

    @property
    def complete(self) -> bool:
        """True when every configured cluster was scanned"""
        return not self.failed_clusters

    @property
    def matches(self) -> List[UsageMatch]:
        return [m for r in self.results for m in r.matches]


def scan_cluster(cluster, references: Dict[str, CatalogKey]) -> ClusterScanResult:
    """Find every pod container in one cluster that runs a catalog reference.

    Args:
        cluster: object with a name and list_namespaces()/list_pods(namespace)
        references: fully-qualified reference -> catalog key
    """
    result = ClusterScanResult(cluster=cluster.name)

    for namespace in cluster.list_namespaces():
        pods = cluster.list_pods(namespace)
        result.namespaces_scanned += 1
        result.pods_scanned += len(pods)

        for reference, key in references.items():
            for pod in pods:
                for image in pod.images:
                    if image == reference:
                        result.matches.append(UsageMatch(
                            key=key,
                            cluster=cluster.name,
                            namespace=namespace,
                            pod=pod.name,
                            image=image,
                        ))
                        # this pod is proof enough for this reference
                        break

    logger.info(
        f"Cluster {cluster.name}: scanned {result.namespaces_scanned} namespaces, "
        f"{result.pods_scanned} pods, {len(result.matches)} matches"
    )
    return result


def _scan_kubeconfig(
    kubeconfig: str,
    references: Dict[str, CatalogKey],
    cluster_factory: Callable[[str], object],
) -> ClusterScanResult:
    try:
        cluster = cluster_factory(kubeconfig)
        return scan_cluster(cluster, references)
    except Exception as e:
        return ClusterScanResult(cluster=kubeconfig, error=e)


def merge_matches(catalog: ImageCatalog, matches: Sequence[UsageMatch]) -> None:
    """Mark the matched entries as used. Must run after all scans finished."""
    for match in matches:
        entry = catalog.get(match.key)
        if entry is None:
            continue
        entry.mark_used(match.note())
        print(f"Image {entry.display_name} is used in namespace {match.namespace} "
              f"and pod {match.pod} (cluster {match.cluster})")


def correlate_usage(
    catalog: ImageCatalog,
    kubeconfigs: Sequence[str],
    registry_host: str,
    fail_fast: bool = True,
    cluster_factory: Callable[[str], object] = ClusterClient,
) -> CorrelationReport:
    """Scan all clusters concurrently and mark used entries in the catalog.

    Args:
        catalog: Filtered catalog; entries are flagged in place
        kubeconfigs: One kubeconfig path per cluster
        registry_host: Registry URL without protocol
        fail_fast: Raise on the first failed cluster instead of skipping it
        cluster_factory: Builds a cluster client from a kubeconfig path

    Returns:
        CorrelationReport with the per-cluster results

    Raises:
        ClusterScanError: When fail_fast is set and any cluster failed
    """
    report = CorrelationReport()
    if not kubeconfigs:
        return report

    references = catalog.references(registry_host)
    logger.info(f"Scanning {len(kubeconfigs)} cluster(s) for {len(references)} image references")

    with concurrent.futures.ThreadPoolExecutor(max_workers=len(kubeconfigs)) as executor:
        futures = [
            executor.submit(_scan_kubeconfig, kubeconfig, references, cluster_factory)
            for kubeconfig in kubeconfigs
        ]
        # keep configuration order in the report
        report.results = [future.result() for future in futures]

    for result in report.results:
        if result.ok:
            continue
        if fail_fast:
            raise ClusterScanError(result.cluster, result.error)
        logger.error(f"Cluster {result.cluster} could not be scanned and is skipped: {result.error}")

    merge_matches(catalog, report.matches)

    if not report.complete:
        logger.warning(
            f"Usage data is incomplete: {len(report.failed_clusters)} of {len(kubeconfigs)} cluster(s) "
            "were not scanned"
        )
    return report
