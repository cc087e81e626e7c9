"""
Deletion of unused tags.

Only entries still unmarked after usage correlation are deleted, and only
after the operator typed exactly "yes". Each entry is deleted by the digest
of its manifest; a failure on one entry is recorded and the batch moves on.
"""

import sys
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, TextIO

from registry_audit.error_utils import ActionableError
from registry_audit.image_catalog import ImageCatalog, ImageEntry
from registry_audit.logging_utils import get_logger
from registry_audit.registry_client import RegistryClient

logger = get_logger(__name__)

CONFIRMATION_ANSWER = "yes\n"

STATUS_DELETED = "deleted"
STATUS_NOT_FOUND = "not_found"
STATUS_SHARED_DIGEST = "skipped_shared_digest"
STATUS_FAILED = "failed"


def confirm_deletion(count: int, input_stream: TextIO = None, output: TextIO = None) -> bool:
    """Ask the operator to confirm; only the exact line "yes" proceeds.

    Args:
        count: Number of images that would be deleted
        input_stream: Where the answer is read from (default: stdin)
        output: Where the prompt is written to (default: stdout)

    Returns:
        True if the operator typed "yes", False otherwise
    """
    input_stream = input_stream or sys.stdin
    output = output or sys.stdout

    output.write(f"{count} image(s) are about to be deleted. This action cannot be undone.\n")
    output.write("Do you really want to delete the images listed above? Please type yes if so...\n")
    output.write("> ")
    output.flush()

    answer = input_stream.readline()
    return answer == CONFIRMATION_ANSWER


@dataclass
class DeletionResult:
    entry: ImageEntry
    status: str
    message: str = ""

    def to_dict(self) -> Dict:
        return {
            'image': self.entry.display_name,
            'digest': self.entry.digest,
            'status': self.status,
            'message': self.message,
        }


@dataclass
class DeletionSummary:
    results: List[DeletionResult] = field(default_factory=list)

    def _with_status(self, status: str) -> List[DeletionResult]:
        return [r for r in self.results if r.status == status]

    @property
    def deleted(self) -> List[DeletionResult]:
        return self._with_status(STATUS_DELETED)

    @property
    def not_found(self) -> List[DeletionResult]:
        return self._with_status(STATUS_NOT_FOUND)

    @property
    def skipped(self) -> List[DeletionResult]:
        return self._with_status(STATUS_SHARED_DIGEST)

    @property
    def failed(self) -> List[DeletionResult]:
        return self._with_status(STATUS_FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict:
        return {
            'total': len(self.results),
            'deleted': len(self.deleted),
            'not_found': len(self.not_found),
            'skipped_shared_digest': len(self.skipped),
            'failed': len(self.failed),
            'results': [r.to_dict() for r in self.results],
        }


class DeletionExecutor:
    """Deletes the unused entries of a correlated catalog from the registry"""

    def __init__(self, registry: RegistryClient):
        self.registry = registry
        self.logger = get_logger(self.__class__.__name__)

    def _resolve_digest(self, entry: ImageEntry) -> Optional[str]:
        if entry.digest is None:
            entry.digest = self.registry.get_digest(entry.tag)
        return entry.digest

    def _protected_digests(self, catalog: ImageCatalog, retained: Iterable[ImageEntry] = ()) -> Dict[str, str]:
        """Digests that must survive: in-use tags and tags the filters kept back.

        Deleting one of these digests would also remove the tag pointing at it.
        """
        protected = {}
        for entry in catalog.used():
            digest = self._resolve_digest(entry)
            if digest:
                protected.setdefault(digest, f"in-use image {entry.display_name}")
        for entry in retained:
            digest = self._resolve_digest(entry)
            if digest:
                protected.setdefault(digest, f"kept image {entry.display_name}")
        return protected

    def delete_unused(self, catalog: ImageCatalog, retained: Iterable[ImageEntry] = ()) -> DeletionSummary:
        """Delete every unused entry sequentially and collect per-entry results

        Args:
            catalog: Correlated catalog of deletion candidates
            retained: Entries the filters excluded from the audit (too young,
                undated or matching the pattern); their digests are never deleted
        """
        summary = DeletionSummary()
        candidates = catalog.unused()
        if not candidates:
            self.logger.info("No unused images to delete")
            return summary

        print("--- Starting delete process ---")
        protected = self._protected_digests(catalog, retained)

        for entry in candidates:
            try:
                digest = self._resolve_digest(entry)
                if digest is None:
                    summary.results.append(DeletionResult(entry, STATUS_NOT_FOUND, "manifest not found"))
                    continue
                if digest in protected:
                    message = f"digest {digest} is shared with {protected[digest]}"
                    self.logger.warning(f"Image {entry.display_name} not deleted: {message}")
                    summary.results.append(DeletionResult(entry, STATUS_SHARED_DIGEST, message))
                    continue

                if self.registry.delete_manifest(digest):
                    print(f"Image deleted: {entry.display_name}")
                    summary.results.append(DeletionResult(entry, STATUS_DELETED))
                else:
                    summary.results.append(DeletionResult(entry, STATUS_NOT_FOUND, "manifest already gone"))
            except ActionableError as e:
                self.logger.error(f"Failed to delete {entry.display_name}: {e.message}")
                summary.results.append(DeletionResult(entry, STATUS_FAILED, e.message))

        self.log_summary(summary)
        return summary

    def log_summary(self, summary: DeletionSummary) -> None:
        """Log a standardized deletion summary"""
        self.logger.info("📊 Deletion Summary:")
        self.logger.info(f"   Total candidates: {len(summary.results)}")
        self.logger.info(f"   Successfully deleted: {len(summary.deleted)}")
        self.logger.info(f"   Already gone: {len(summary.not_found)}")
        self.logger.info(f"   Skipped (digest shared with a kept tag): {len(summary.skipped)}")
        self.logger.info(f"   Failed deletions: {len(summary.failed)}")
        for result in summary.failed:
            self.logger.error(f"   ✗ {result.entry.display_name}: {result.message}")
