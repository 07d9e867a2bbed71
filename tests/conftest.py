"""Shared fixtures: an in-memory stand-in for Azure DevOps."""
from collections import defaultdict
from typing import Any, Optional

import pytest

from ado_client import build_iteration_path
from errors import ServiceError
from models import (
    FIELD_AUTOMATION_STATUS,
    FIELD_PRIORITY,
    FIELD_STEPS,
    FIELD_TITLE,
    GeneratedTestCase,
    SuiteType,
    TestPlan,
    TestStep,
    TestSuite,
    WorkItem,
    WorkItemRelation,
)
from steps_xml import serialize_steps
from stores import TestPlanStore, WorkItemStore

ORG = "https://dev.azure.com/contoso"


def wi_url(work_item_id: int) -> str:
    return f"{ORG}/_apis/wit/workItems/{work_item_id}"


def tested_by_link(work_item_id: int) -> WorkItemRelation:
    return WorkItemRelation(rel="Microsoft.VSTS.Common.TestedBy-Forward", url=wi_url(work_item_id))


tested_by_link.__test__ = False  # helper, not a test (name starts with "test")


def child(work_item_id: int) -> WorkItemRelation:
    return WorkItemRelation(rel="System.LinkTypes.Hierarchy-Forward", url=wi_url(work_item_id))


def steps(*pairs: tuple) -> list:
    return [
        TestStep(action=a, expected_result=e, step_number=i)
        for i, (a, e) in enumerate(pairs, start=1)
    ]


class FakeADO(WorkItemStore, TestPlanStore):
    """Both stores backed by dicts; every call is recorded in ``calls``."""

    def __init__(self) -> None:
        self.work_items: dict = {}
        self.plans: dict = {}
        self.suites: dict = defaultdict(list)
        self.suite_cases: dict = defaultdict(list)
        self.calls: list = []
        self.failures: dict = {}
        self._next_id = 5000

    # ── helpers ──────────────────────────────────────────────
    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _record(self, op: str, /, **kwargs: Any) -> None:
        self.calls.append((op, kwargs))
        if op in self.failures:
            raise self.failures[op]

    def calls_to(self, name: str) -> list:
        return [kw for n, kw in self.calls if n == name]

    def add_plan(self, plan_id: int, name: str = "Sprint Plan", root_suite_id: int = 100) -> TestPlan:
        plan = TestPlan(id=plan_id, name=name, root_suite_id=root_suite_id, root_suite_name=name)
        self.plans[plan_id] = plan
        self.suites[plan_id].append(
            TestSuite(id=root_suite_id, name=name, suite_type=SuiteType.STATIC, plan_id=plan_id)
        )
        return plan

    def add_suite(self, plan_id: int, suite: TestSuite) -> TestSuite:
        self.suites[plan_id].append(suite)
        return suite

    def add_work_item(
        self,
        work_item_id: int,
        title: str,
        work_item_type: str = "Test Case",
        case_steps: Optional[list] = None,
        relations: Optional[list] = None,
        state: str = "Design",
        iteration_path: str = "",
    ) -> WorkItem:
        item = WorkItem(
            id=work_item_id,
            title=title,
            state=state,
            iteration_path=iteration_path,
            work_item_type=work_item_type,
            steps_xml=serialize_steps(case_steps) if case_steps else "",
            relations=relations or [],
        )
        self.work_items[work_item_id] = item
        return item

    # ── WorkItemStore ────────────────────────────────────────
    def get_work_item(self, work_item_id: int, expand_relations: bool = True) -> WorkItem:
        self._record("get_work_item", work_item_id=work_item_id)
        if work_item_id not in self.work_items:
            raise ServiceError(f"Failed to get work item: {work_item_id} does not exist", 404)
        return self.work_items[work_item_id]

    def get_work_items(self, ids: list) -> list:
        self._record("get_work_items", ids=list(ids))
        return [self.work_items[i] for i in ids if i in self.work_items]

    def query_work_items(self, ids=None, sprint=None, team=None, query=None, project=None) -> list:
        self._record("query_work_items", ids=ids, sprint=sprint, team=team, query=query, project=project)
        if ids:
            return self.get_work_items(ids)
        items = sorted(self.work_items.values(), key=lambda wi: wi.id, reverse=True)
        if sprint:
            path = build_iteration_path(sprint, project or "Shop", team)
            items = [wi for wi in items if wi.iteration_path.startswith(path)]
        return items

    def create_test_case(self, test_case: GeneratedTestCase) -> WorkItem:
        self._record("create_test_case", title=test_case.title)
        return self.add_work_item(self._new_id(), test_case.title, case_steps=test_case.steps)

    def update_work_item(self, work_item_id: int, fields: dict) -> WorkItem:
        self._record("update_work_item", work_item_id=work_item_id, fields=dict(fields))
        item = self.work_items[work_item_id]
        item.title = fields.get(FIELD_TITLE, item.title)
        item.steps_xml = fields.get(FIELD_STEPS, item.steps_xml)
        item.priority = fields.get(FIELD_PRIORITY, item.priority)
        item.automation_status = fields.get(FIELD_AUTOMATION_STATUS, item.automation_status)
        item.rev += 1
        return item

    # ── TestPlanStore ────────────────────────────────────────
    def get_test_plan(self, plan_id: int, project: Optional[str] = None) -> TestPlan:
        self._record("get_test_plan", plan_id=plan_id, project=project)
        if plan_id not in self.plans:
            raise ServiceError("Failed to get test plan: plan not found", 404)
        return self.plans[plan_id]

    def get_test_plans(self, project: Optional[str] = None) -> list:
        self._record("get_test_plans", project=project)
        return list(self.plans.values())

    def create_test_plan(self, name, area_path=None, iteration=None, description=None, project=None):
        self._record("create_test_plan", name=name, project=project)
        return self.add_plan(self._new_id(), name=name, root_suite_id=self._new_id())

    def get_test_suites(self, plan_id: int, project: Optional[str] = None) -> list:
        self._record("get_test_suites", plan_id=plan_id, project=project)
        return list(self.suites[plan_id])

    def get_test_suite(self, plan_id: int, suite_id: int, project: Optional[str] = None) -> TestSuite:
        self._record("get_test_suite", plan_id=plan_id, suite_id=suite_id)
        return next(s for s in self.suites[plan_id] if s.id == suite_id)

    def create_test_suite(
        self,
        plan_id,
        name,
        suite_type,
        parent_suite_id=None,
        requirement_id=None,
        query_string=None,
        project=None,
    ) -> TestSuite:
        self._record(
            "create_test_suite",
            plan_id=plan_id,
            name=name,
            suite_type=suite_type,
            parent_suite_id=parent_suite_id,
            requirement_id=requirement_id,
            project=project,
        )
        suite = TestSuite(
            id=self._new_id(),
            name=name,
            suite_type=suite_type,
            parent_suite_id=parent_suite_id,
            requirement_id=requirement_id,
            query_string=query_string or "",
            plan_id=plan_id,
        )
        self.suites[plan_id].append(suite)
        return suite

    def add_test_case_to_suite(self, plan_id, suite_id, test_case_id, project=None) -> None:
        self._record(
            "add_test_case_to_suite",
            plan_id=plan_id,
            suite_id=suite_id,
            test_case_id=test_case_id,
            project=project,
        )
        self.suite_cases[suite_id].append(test_case_id)


@pytest.fixture
def fake_ado():
    return FakeADO()
