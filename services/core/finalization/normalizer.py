"""
DRAFT NORMALIZER

Canonicalizes the cross-references of a draft before anything is written.

Generated drafts refer to operations either by ephemeral id or by operation
name (goals carry operation_id and/or operation_name, metrics and habits a
linked_operation that may hold either). After normalization every operation
reference is an ephemeral operation id or None, so the materializers only
ever resolve ids.

Rules:
- an exact ephemeral id match wins over a name match
- names resolve to the first operation carrying that name
- a goal whose operation_id is unknown falls back to its operation_name
- unknown references become None (reported, never fatal)
- goal fields that do not belong to the goal's type are dropped
"""
from typing import Dict, List, Optional, Tuple

from exceptions import DraftValidationError
from logging_config import get_logger
from schemas import DraftSystem

logger = get_logger(__name__)


class DraftNormalizer:

    def normalize(self, draft: DraftSystem) -> Tuple[DraftSystem, List[str]]:
        """
        Returns a new DraftSystem plus human readable issues found on the way.

        Raises:
            DraftValidationError: duplicate ephemeral operation ids
        """
        issues: List[str] = []

        op_ids = set()
        by_name: Dict[str, str] = {}
        for op in draft.operations:
            if op.id in op_ids:
                raise DraftValidationError(
                    message=f"Duplicate operation id: {op.id}",
                    details={"operation_id": op.id}
                )
            op_ids.add(op.id)
            by_name.setdefault(op.name, op.id)

        def resolve(owner: str, *refs: Optional[str]) -> Optional[str]:
            """First reference that names a known operation; later refs are fallbacks"""
            refs = list(dict.fromkeys(ref for ref in refs if ref))
            for ref in refs:
                if ref in op_ids:
                    return ref
                if ref in by_name:
                    return by_name[ref]
            for ref in refs:
                issues.append(f"{owner}: unknown operation reference '{ref}'")
            return None

        metrics = [
            m.model_copy(update={
                "linked_operation": resolve(f"metric '{m.name}'", m.linked_operation)
            })
            for m in draft.metrics
        ]

        habits = [
            h.model_copy(update={
                "linked_operation": resolve(f"habit '{h.name}'", h.linked_operation)
            })
            for h in draft.habits
        ]

        goals = []
        for g in draft.goals:
            owner = f"goal '{g.title}'"
            update = {
                "operation_id": resolve(owner, g.operation_id, g.operation_name),
                "operation_name": None,
            }
            if g.goal_type == "metric_based":
                if g.subgoals:
                    issues.append(f"{owner}: subgoals ignored on a metric_based goal")
                    update["subgoals"] = []
            else:
                if (
                    g.linked_metric_name is not None
                    or g.target_value is not None
                    or g.initial_value is not None
                ):
                    issues.append(f"{owner}: metric fields ignored on a subgoal_based goal")
                update.update(linked_metric_name=None, target_value=None, initial_value=None)
            goals.append(g.model_copy(update=update))

        for issue in issues:
            logger.warning("draft_normalization_issue", issue=issue)

        normalized = DraftSystem(
            operations=list(draft.operations),
            goals=goals,
            habits=habits,
            metrics=metrics,
            schedule=draft.schedule,
        )
        return normalized, issues


# Singleton
draft_normalizer = DraftNormalizer()
