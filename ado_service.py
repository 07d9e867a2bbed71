"""
ado_service.py – The operations callers use: compare, place, update.

Accepts test cases either as ``GeneratedTestCase`` objects or as plain dicts
in the JSON contract (``{title, steps: [{action, expectedResult, stepNumber}]}``).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from ado_client import ADOClient, build_test_case_fields
from comparison_engine import ComparisonEngine
from errors import ServiceError
from models import (
    ExistingTestCase,
    GeneratedTestCase,
    PlacementResult,
    TestCaseComparisonResult,
    TestPlan,
    TestStep,
    WorkItem,
)
from suite_manager import SuiteManager

logger = logging.getLogger("qe-ado-sync")

CaseInput = Union[GeneratedTestCase, dict[str, Any]]


def _as_cases(cases: list[CaseInput]) -> list[GeneratedTestCase]:
    return [
        tc if isinstance(tc, GeneratedTestCase) else GeneratedTestCase.from_dict(tc)
        for tc in cases
    ]


def _as_steps(steps: list[Any]) -> list[TestStep]:
    return [
        s if isinstance(s, TestStep) else TestStep.from_dict(s, position)
        for position, s in enumerate(steps, start=1)
    ]


class ADOService:
    """Façade over the comparator and the suite manager for one ADO project."""

    def __init__(self, client: Optional[ADOClient] = None) -> None:
        self._client = client or ADOClient()
        self._engine = ComparisonEngine(self._client)
        self._suites = SuiteManager(self._client, self._client)

    @property
    def client(self) -> ADOClient:
        return self._client

    # ── Work items ──────────────────────────────────────────────────────

    def query_work_items(
        self,
        ids: Optional[list[int]] = None,
        sprint: Optional[str] = None,
        team: Optional[str] = None,
        query: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[WorkItem]:
        return self._client.query_work_items(
            ids=ids, sprint=sprint, team=team, query=query, project=project
        )

    # ── Comparison ──────────────────────────────────────────────────────

    def get_existing_test_cases(self, requirement_id: int) -> list[ExistingTestCase]:
        return self._engine.get_existing_test_cases(requirement_id)

    def compare_test_cases(
        self, requirement_id: int, generated_test_cases: list[CaseInput]
    ) -> TestCaseComparisonResult:
        return self._engine.compare(requirement_id, _as_cases(generated_test_cases))

    # ── Placement ───────────────────────────────────────────────────────

    def create_test_cases_in_plan(
        self,
        test_plan_id: int,
        story_id: int,
        story_title: str,
        test_cases: list[CaseInput],
        feature_id: Optional[int] = None,
        feature_title: Optional[str] = None,
        project: Optional[str] = None,
    ) -> PlacementResult:
        return self._suites.create_test_cases_in_plan(
            test_plan_id,
            story_id,
            story_title,
            _as_cases(test_cases),
            feature_id=feature_id,
            feature_title=feature_title,
            project=project,
        )

    def get_test_plans(self, project: Optional[str] = None) -> list[TestPlan]:
        return self._client.get_test_plans(project=project)

    def get_or_create_test_plan(
        self,
        name: Optional[str] = None,
        plan_id: Optional[int] = None,
        area_path: Optional[str] = None,
        iteration: Optional[str] = None,
        project: Optional[str] = None,
    ) -> TestPlan:
        """Look a plan up by id, else by exact name, else create it."""
        if plan_id:
            return self._client.get_test_plan(plan_id, project=project)
        if not name:
            raise ServiceError("Failed to resolve test plan: a plan id or name is required", 400)

        for plan in self._client.get_test_plans(project=project):
            if plan.name == name:
                logger.info("Test plan '%s' already exists (id=%s)", name, plan.id)
                return plan
        return self._client.create_test_plan(
            name, area_path=area_path, iteration=iteration, project=project
        )

    # ── Update ──────────────────────────────────────────────────────────

    def update_test_case(
        self,
        test_case_id: int,
        title: Optional[str] = None,
        steps: Optional[list[Any]] = None,
        priority: Optional[int] = None,
        automation_status: Optional[str] = None,
    ) -> WorkItem:
        """Patch only the supplied attributes of an existing Test Case."""
        fields = build_test_case_fields(
            title=title,
            steps=_as_steps(steps) if steps is not None else None,
            priority=priority,
            automation_status=automation_status,
        )
        if not fields:
            raise ServiceError("Failed to update test case: no fields to update", 400)
        try:
            return self._client.update_work_item(test_case_id, fields)
        except ServiceError as exc:
            raise ServiceError(
                f"Failed to update test case: {exc.message}", exc.status_code
            ) from exc
