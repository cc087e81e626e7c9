"""
Audit workflow: registry tags → filters → cluster usage → report → deletion.

run_audit() is the single place that decides what happens after each stage;
the components underneath only raise.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, TextIO

from registry_audit.cluster_client import ClusterClient
from registry_audit.config_manager import AuditConfig
from registry_audit.deletion import DeletionExecutor, DeletionSummary, confirm_deletion
from registry_audit.filters import FilterRejection, resolve_creation_dates, run_filter_pipeline
from registry_audit.image_catalog import ImageCatalog
from registry_audit.logging_utils import get_logger
from registry_audit.registry_client import RegistryClient
from registry_audit.report_utils import build_audit_report, format_candidates_table, save_json
from registry_audit.usage_correlator import CorrelationReport, correlate_usage

logger = get_logger(__name__)


@dataclass
class AuditResult:
    config: AuditConfig
    catalog: ImageCatalog
    total_tags: int = 0
    rejections: List[FilterRejection] = field(default_factory=list)
    correlation: CorrelationReport = field(default_factory=CorrelationReport)
    confirmed: Optional[bool] = None
    deletion: Optional[DeletionSummary] = None
    deletion_refused: bool = False
    report_file: Optional[str] = None

    @property
    def ok(self) -> bool:
        """False when a requested deletion was refused or partly failed"""
        if self.deletion_refused:
            return False
        return self.deletion is None or self.deletion.ok


def run_audit(
    config: AuditConfig,
    registry: Optional[RegistryClient] = None,
    cluster_factory: Callable[[str], object] = ClusterClient,
    input_stream: Optional[TextIO] = None,
    now: Optional[datetime] = None,
) -> AuditResult:
    """Run one audit end to end.

    Args:
        config: Settings for the run
        registry: Registry client (default: built from config)
        cluster_factory: Builds a cluster client from a kubeconfig path
        input_stream: Source of the deletion confirmation (default: stdin)
        now: Reference time for the age filter (default: current UTC time)

    Returns:
        AuditResult describing every stage
    """
    registry = registry or RegistryClient(config)

    # --- Registry token and tags ---
    registry.authenticate()
    catalog = ImageCatalog.from_tags(config.repository, registry.list_tags())
    total_tags = len(catalog)

    # --- Creation dates, age and pattern filters ---
    resolve_creation_dates(catalog, registry)
    outcome = run_filter_pipeline(catalog, config.min_expiry_days, config.exclude_pattern, now)
    result = AuditResult(
        config=config,
        catalog=outcome.catalog,
        total_tags=total_tags,
        rejections=outcome.rejections,
    )

    # --- Cluster usage ---
    result.correlation = correlate_usage(
        result.catalog,
        config.kubeconfigs,
        config.registry_host,
        fail_fast=config.fail_fast_clusters,
        cluster_factory=cluster_factory,
    )

    # --- Report ---
    unused = result.catalog.unused()
    for entry in unused:
        print(f"Image will be deleted: {entry.display_name}")
    if unused:
        print(format_candidates_table(unused, now))
    logger.info(
        f"{len(result.catalog.used())} eligible tag(s) in use, {len(unused)} unused "
        f"(of {total_tags} tags in {config.repository})"
    )

    # --- Deletion ---
    if config.delete_images and unused:
        if not result.correlation.complete:
            result.deletion_refused = True
            logger.error(
                "Refusing to delete: clusters "
                f"{', '.join(result.correlation.failed_clusters)} were not scanned"
            )
        else:
            result.confirmed = confirm_deletion(len(unused), input_stream)
            if result.confirmed:
                result.deletion = DeletionExecutor(registry).delete_unused(
                    result.catalog, retained=[r.entry for r in result.rejections]
                )
            else:
                logger.info("Deletion aborted by operator, nothing was deleted")

    if config.report_path:
        result.report_file = save_json(config.report_path, build_audit_report(result))

    return result
