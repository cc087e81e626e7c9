"""In-memory catalog of the tags found in the registry."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

CatalogKey = Tuple[str, str]


@dataclass
class ImageEntry:
    """Data class for one tag of the audited repository"""
    name: str
    tag: str
    digest: Optional[str] = None
    created_at: Optional[datetime] = None
    used_in_cluster: bool = False
    usage_notes: List[str] = field(default_factory=list)

    @property
    def key(self) -> CatalogKey:
        return (self.name, self.tag)

    @property
    def display_name(self) -> str:
        return f"{self.name}:{self.tag}"

    def reference(self, registry_host: str) -> str:
        """Fully-qualified image reference as written in a pod spec"""
        return f"{registry_host}/{self.name}:{self.tag}"

    def mark_used(self, note: str) -> None:
        """Flag the entry as running somewhere. Never reset within a run."""
        self.used_in_cluster = True
        self.usage_notes.append(note)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        return {
            'name': self.name,
            'tag': self.tag,
            'digest': self.digest,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'used_in_cluster': self.used_in_cluster,
            'usage_notes': list(self.usage_notes),
        }


class ImageCatalog:
    """Ordered collection of ImageEntry values keyed by (name, tag)"""

    def __init__(self, entries: Iterable[ImageEntry] = ()):
        self._entries: Dict[CatalogKey, ImageEntry] = {}
        for entry in entries:
            # first occurrence wins
            self._entries.setdefault(entry.key, entry)

    @classmethod
    def from_tags(cls, repository: str, tags: Iterable[str]) -> "ImageCatalog":
        return cls(ImageEntry(name=repository, tag=tag) for tag in tags)

    def __iter__(self) -> Iterator[ImageEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CatalogKey) -> Optional[ImageEntry]:
        return self._entries.get(key)

    @property
    def entries(self) -> List[ImageEntry]:
        return list(self._entries.values())

    def keep(self, entries: Iterable[ImageEntry]) -> "ImageCatalog":
        """New catalog with only the given entries (which must belong to this one)"""
        return ImageCatalog(e for e in entries if e.key in self._entries)

    def references(self, registry_host: str) -> Dict[str, CatalogKey]:
        """Map every fully-qualified reference to its catalog key"""
        return {entry.reference(registry_host): entry.key for entry in self}

    def used(self) -> List[ImageEntry]:
        return [e for e in self if e.used_in_cluster]

    def unused(self) -> List[ImageEntry]:
        return [e for e in self if not e.used_in_cluster]
