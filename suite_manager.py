"""
suite_manager.py – Places test cases into the correct ADO Test Suites.

Suite hierarchy under the Test Plan:
  root suite
  └─ Feature {id}: {title}        (static, only when a feature is given)
     └─ {storyId}: {storyTitle}   (requirement-based, bound to the story)
        └─ test cases

Every lookup re-reads the plan's suites before creating anything, so a run
that failed half-way is completed by simply running it again.  The
list-then-create sequence is not atomic: two concurrent runs for the same
story can both create a suite.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from errors import ServiceError
from models import GeneratedTestCase, PlacementResult, SuiteType, TestSuite, WorkItem
from stores import TestPlanStore, WorkItemStore

logger = logging.getLogger("qe-ado-sync")

# "Feature 123" must open the suite name.
_FEATURE_TOKEN = re.compile(r"^\s*Feature\s+(\d+)\b", re.IGNORECASE)


def feature_suite_name(feature_id: int, feature_title: str) -> str:
    return f"Feature {feature_id}: {feature_title}"


def requirement_suite_name(story_id: int, story_title: str) -> str:
    return f"{story_id}: {story_title}"


def find_feature_suite(
    suites: list[TestSuite], feature_id: int, feature_title: str
) -> Optional[TestSuite]:
    """A static suite named exactly like the feature, or led by the same ``Feature <id>``."""
    wanted = feature_suite_name(feature_id, feature_title).strip()
    token_match: Optional[TestSuite] = None
    for suite in suites:
        if suite.suite_type is not SuiteType.STATIC:
            continue
        if suite.name.strip() == wanted:
            return suite
        match = _FEATURE_TOKEN.match(suite.name)
        if token_match is None and match and int(match.group(1)) == feature_id:
            token_match = suite
    return token_match


def find_requirement_suite(suites: list[TestSuite], story_id: int) -> Optional[TestSuite]:
    for suite in suites:
        if suite.suite_type is SuiteType.REQUIREMENT and suite.requirement_id == story_id:
            return suite
    return None


class SuiteManager:
    """Ensures the Feature / Requirement suites exist and files test cases into them."""

    def __init__(self, plans: TestPlanStore, work_items: WorkItemStore) -> None:
        self._plans = plans
        self._work_items = work_items

    def _find_or_create(
        self,
        plan_id: int,
        describe: str,
        find: Callable[[list[TestSuite]], Optional[TestSuite]],
        create: Callable[[], TestSuite],
        suites: Optional[list[TestSuite]] = None,
        project: Optional[str] = None,
    ) -> tuple[TestSuite, bool]:
        """Return ``(suite, created)``; the single check-then-create point."""
        if suites is None:
            suites = self._plans.get_test_suites(plan_id, project=project)
        existing = find(suites)
        if existing is not None:
            logger.info("Suite '%s' already exists (id=%s)", existing.name, existing.id)
            return existing, False
        logger.debug("No %s found in plan %s; creating it.", describe, plan_id)
        return create(), True

    def find_or_create_feature_suite(
        self,
        plan_id: int,
        feature_id: int,
        feature_title: str,
        parent_suite_id: Optional[int],
        suites: Optional[list[TestSuite]] = None,
        project: Optional[str] = None,
    ) -> tuple[TestSuite, bool]:
        try:
            return self._find_or_create(
                plan_id,
                f"feature suite for #{feature_id}",
                lambda found: find_feature_suite(found, feature_id, feature_title),
                lambda: self._plans.create_test_suite(
                    plan_id,
                    feature_suite_name(feature_id, feature_title),
                    SuiteType.STATIC,
                    parent_suite_id=parent_suite_id,
                    project=project,
                ),
                suites=suites,
                project=project,
            )
        except ServiceError as exc:
            raise ServiceError(
                f"Failed to find or create static suite: {exc.message}", exc.status_code
            ) from exc

    def find_or_create_requirement_suite(
        self,
        plan_id: int,
        story_id: int,
        story_title: str,
        parent_suite_id: Optional[int],
        suites: Optional[list[TestSuite]] = None,
        project: Optional[str] = None,
    ) -> tuple[TestSuite, bool]:
        try:
            return self._find_or_create(
                plan_id,
                f"requirement suite for #{story_id}",
                lambda found: find_requirement_suite(found, story_id),
                lambda: self._plans.create_test_suite(
                    plan_id,
                    requirement_suite_name(story_id, story_title),
                    SuiteType.REQUIREMENT,
                    parent_suite_id=parent_suite_id,
                    requirement_id=story_id,
                    project=project,
                ),
                suites=suites,
                project=project,
            )
        except ServiceError as exc:
            raise ServiceError(
                f"Failed to find or create requirement suite: {exc.message}",
                exc.status_code,
            ) from exc

    def create_test_cases_in_plan(
        self,
        test_plan_id: int,
        story_id: int,
        story_title: str,
        test_cases: list[GeneratedTestCase],
        feature_id: Optional[int] = None,
        feature_title: Optional[str] = None,
        project: Optional[str] = None,
    ) -> PlacementResult:
        """Create *test_cases* and file them under plan → [feature] → story.

        Suites are resolved strictly in hierarchy order.  Nothing is rolled
        back on failure.
        """
        try:
            return self._place(
                test_plan_id,
                story_id,
                story_title,
                test_cases,
                feature_id,
                feature_title,
                project,
            )
        except ServiceError as exc:
            logger.error(
                "Failed to create test cases in plan %s for #%s: %s",
                test_plan_id,
                story_id,
                exc.message,
            )
            raise ServiceError(
                f"Failed to create test cases in plan: {exc.message}", exc.status_code
            ) from exc

    def _place(
        self,
        test_plan_id: int,
        story_id: int,
        story_title: str,
        test_cases: list[GeneratedTestCase],
        feature_id: Optional[int],
        feature_title: Optional[str],
        project: Optional[str],
    ) -> PlacementResult:
        plan = self._plans.get_test_plan(test_plan_id, project=project)
        parent_id = plan.root_suite_id
        logger.info(
            "Test plan %s '%s' (root suite %s)", plan.id, plan.name, parent_id
        )

        suites = self._plans.get_test_suites(test_plan_id, project=project)

        if feature_id and feature_title:
            feature_suite, _ = self.find_or_create_feature_suite(
                test_plan_id,
                feature_id,
                feature_title,
                parent_id,
                suites=suites,
                project=project,
            )
            parent_id = feature_suite.id

        story_suite, _ = self.find_or_create_requirement_suite(
            test_plan_id,
            story_id,
            story_title,
            parent_id,
            suites=suites,
            project=project,
        )

        created: list[WorkItem] = []
        for tc in test_cases:
            work_item = self._work_items.create_test_case(tc)
            created.append(work_item)

        self._plans.add_test_cases_to_suite(
            test_plan_id, story_suite.id, [wi.id for wi in created], project=project
        )

        logger.info(
            "Placed %d test cases in plan %s → suite '%s' (id=%s)",
            len(created),
            test_plan_id,
            story_suite.name,
            story_suite.id,
        )
        return PlacementResult(test_cases=created, suite=story_suite)
