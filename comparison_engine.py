"""
comparison_engine.py – Classify generated test cases against existing ones.

Before pushing new test cases to ADO we compare each one against every test
case already linked to the same requirement.  The best-scoring match decides
whether the generated case is NEW, an UPDATE of an existing case, or already
EXISTS; anything that is not NEW carries a title/steps diff.
"""

from __future__ import annotations

import logging

from models import (
    STATUS_EXISTS,
    STATUS_NEW,
    ComparisonSummary,
    ExistingTestCase,
    GeneratedTestCase,
    TestCaseComparison,
    TestCaseComparisonResult,
    WorkItem,
)
from similarity import case_similarity, classify, diff_test_cases
from steps_xml import parse_steps
from stores import WorkItemStore

logger = logging.getLogger("qe-ado-sync")


def _to_existing(item: WorkItem, requirement_id: int) -> ExistingTestCase:
    """Reinterpret a Test Case work item as a comparable view."""
    return ExistingTestCase(
        id=item.id,
        title=item.title,
        state=item.state,
        steps=parse_steps(item.steps_xml),
        priority=item.priority,
        automation_status=item.automation_status,
        area_path=item.area_path,
        iteration_path=item.iteration_path,
        assigned_to=item.assigned_to,
        linked_work_item_id=requirement_id,
    )


def best_match(
    generated: GeneratedTestCase, existing: list[ExistingTestCase]
) -> tuple[ExistingTestCase | None, float]:
    """Return the highest-scoring existing case (first one wins ties) and its score."""
    best: ExistingTestCase | None = None
    best_score = 0.0
    for candidate in existing:
        score = case_similarity(generated, candidate)
        if best is None or score > best_score:
            best = candidate
            best_score = score
    return best, best_score


# ── Public API ──────────────────────────────────────────────────────────

class ComparisonEngine:
    """Compare generated test cases with those linked to a requirement."""

    def __init__(self, store: WorkItemStore) -> None:
        self._store = store

    def get_existing_test_cases(self, requirement_id: int) -> list[ExistingTestCase]:
        """Test cases linked to *requirement_id*, in link order.

        "Tested By" links are preferred; without any, child links are
        scanned and only ``Test Case`` items kept.
        """
        requirement = self._store.get_work_item(requirement_id)
        return self._resolve_existing(requirement)

    def _resolve_existing(self, requirement: WorkItem) -> list[ExistingTestCase]:
        linked_ids = requirement.related_ids("tested-by")
        source = "tested-by"
        if not linked_ids:
            linked_ids = requirement.related_ids("child")
            source = "child"
        if not linked_ids:
            logger.info("Work item #%s has no linked test cases.", requirement.id)
            return []

        by_id = {
            item.id: item
            for item in self._store.get_work_items(linked_ids)
            if item.is_test_case
        }
        existing = [
            _to_existing(by_id[i], requirement.id) for i in linked_ids if i in by_id
        ]
        logger.info(
            "Found %d existing test cases for #%s via %s links.",
            len(existing),
            requirement.id,
            source,
        )
        return existing

    def compare(
        self, requirement_id: int, generated: list[GeneratedTestCase]
    ) -> TestCaseComparisonResult:
        """Fetch the requirement's test cases and classify every generated case."""
        requirement = self._store.get_work_item(requirement_id)
        existing = self._resolve_existing(requirement)
        return self.compare_against(requirement, existing, generated)

    def compare_against(
        self,
        requirement: WorkItem,
        existing: list[ExistingTestCase],
        generated: list[GeneratedTestCase],
    ) -> TestCaseComparisonResult:
        """Classify *generated* against an already-resolved *existing* list."""
        result = TestCaseComparisonResult(
            work_item_id=requirement.id,
            work_item_title=requirement.title,
            existing_test_cases=existing,
            generated_test_cases=list(generated),
            summary=ComparisonSummary(
                total_generated=len(generated), total_existing=len(existing)
            ),
        )

        for tc in generated:
            match, score = best_match(tc, existing)
            status = classify(score) if match is not None else STATUS_NEW

            if status == STATUS_NEW:
                comparison = TestCaseComparison(
                    generated=tc, existing=None, status=STATUS_NEW, similarity=score
                )
                result.summary.new_count += 1
            else:
                comparison = TestCaseComparison(
                    generated=tc,
                    existing=match,
                    status=status,
                    similarity=score,
                    diff=diff_test_cases(tc, match),
                )
                if status == STATUS_EXISTS:
                    result.summary.exists_count += 1
                else:
                    result.summary.update_count += 1
                logger.debug(
                    "'%s' ↔ existing #%s (%.1f%%) → %s",
                    tc.title,
                    match.id,
                    score,
                    status,
                )
            result.comparisons.append(comparison)

        logger.info(
            "Compared %d generated vs %d existing for #%s: %d new, %d update, %d exists",
            len(generated),
            len(existing),
            requirement.id,
            result.summary.new_count,
            result.summary.update_count,
            result.summary.exists_count,
        )
        return result
