"""
stores.py – Repository interfaces over the remote work-tracking system.

The comparator and the suite manager talk only to these, so they can run
against ``ADOClient`` in production and an in-memory fake in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from models import GeneratedTestCase, SuiteType, TestPlan, TestSuite, WorkItem


class WorkItemStore(ABC):
    """Work-item reads and field patches."""

    @abstractmethod
    def get_work_item(self, work_item_id: int, expand_relations: bool = True) -> WorkItem:
        """Fetch one work item, with its relations unless told otherwise."""

    @abstractmethod
    def get_work_items(self, ids: list[int]) -> list[WorkItem]:
        """Fetch several work items; ids that no longer exist are omitted."""

    @abstractmethod
    def query_work_items(
        self,
        ids: Optional[list[int]] = None,
        sprint: Optional[str] = None,
        team: Optional[str] = None,
        query: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[WorkItem]:
        """Work items by id, by raw WIQL, or everything in the project (optionally one sprint)."""

    @abstractmethod
    def create_test_case(self, test_case: GeneratedTestCase) -> WorkItem:
        """Create a ``Test Case`` work item from a generated case."""

    @abstractmethod
    def update_work_item(self, work_item_id: int, fields: dict[str, Any]) -> WorkItem:
        """Set *fields* (reference name → value) on a work item."""


class TestPlanStore(ABC):
    """Test Plan / Test Suite reads and creates."""

    @abstractmethod
    def get_test_plan(self, plan_id: int, project: Optional[str] = None) -> TestPlan:
        pass

    @abstractmethod
    def get_test_plans(self, project: Optional[str] = None) -> list[TestPlan]:
        pass

    @abstractmethod
    def create_test_plan(
        self,
        name: str,
        area_path: Optional[str] = None,
        iteration: Optional[str] = None,
        description: Optional[str] = None,
        project: Optional[str] = None,
    ) -> TestPlan:
        pass

    @abstractmethod
    def get_test_suites(self, plan_id: int, project: Optional[str] = None) -> list[TestSuite]:
        """Every suite in the plan, flat, root suite included."""

    @abstractmethod
    def get_test_suite(
        self, plan_id: int, suite_id: int, project: Optional[str] = None
    ) -> TestSuite:
        pass

    @abstractmethod
    def create_test_suite(
        self,
        plan_id: int,
        name: str,
        suite_type: SuiteType,
        parent_suite_id: Optional[int] = None,
        requirement_id: Optional[int] = None,
        query_string: Optional[str] = None,
        project: Optional[str] = None,
    ) -> TestSuite:
        pass

    @abstractmethod
    def add_test_case_to_suite(
        self,
        plan_id: int,
        suite_id: int,
        test_case_id: int,
        project: Optional[str] = None,
    ) -> None:
        """Attach one test case to a suite (the remote API takes one per call)."""

    def add_test_cases_to_suite(
        self,
        plan_id: int,
        suite_id: int,
        test_case_ids: list[int],
        project: Optional[str] = None,
    ) -> None:
        for test_case_id in test_case_ids:
            self.add_test_case_to_suite(plan_id, suite_id, test_case_id, project=project)
