"""
Per-run arena mapping client-assigned keys onto generated row ids.

One IdentityMapper belongs to exactly one finalization run; it is never
persisted, cached or shared.
"""
from enum import Enum
from typing import Dict, Hashable, List, Optional
from uuid import UUID


class IdentityKind(str, Enum):
    OPERATION = "operation"  # ephemeral operation id -> operations.id
    METRIC = "metric"        # numeric metric name -> metrics.id
    HABIT = "habit"          # ephemeral habit id (or position) -> metrics.id


class IdentityMapper:
    """Append-only ephemeral -> real id mapping"""

    def __init__(self):
        self._maps: Dict[IdentityKind, Dict[Hashable, UUID]] = {
            kind: {} for kind in IdentityKind
        }

    def put(self, kind: IdentityKind, ephemeral_key: Hashable, real_id: UUID) -> None:
        if ephemeral_key is None:
            return
        mapping = self._maps[IdentityKind(kind)]
        existing = mapping.get(ephemeral_key)
        if existing is not None and existing != real_id:
            # Duplicate keys in one draft: first writer wins
            return
        mapping[ephemeral_key] = real_id

    def resolve(self, kind: IdentityKind, ephemeral_key: Optional[Hashable]) -> Optional[UUID]:
        """Never raises; callers decide whether an unresolved key matters"""
        if ephemeral_key is None:
            return None
        return self._maps[IdentityKind(kind)].get(ephemeral_key)

    def real_ids(self, kind: IdentityKind) -> List[UUID]:
        return list(dict.fromkeys(self._maps[IdentityKind(kind)].values()))

    def __len__(self) -> int:
        return sum(len(m) for m in self._maps.values())
