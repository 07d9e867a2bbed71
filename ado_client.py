"""
ado_client.py – All Azure DevOps REST / SDK interactions.

Uses the official `azure-devops` Python SDK for work-item reads and raw REST
(via `requests`) for work-item writes and the Test-Plan / Test-Suite
endpoints that the SDK does not fully expose.

Every failure is raised as ``ServiceError("Failed to <operation>: ...")``
carrying the upstream HTTP status.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional

import requests
from azure.devops.connection import Connection
from azure.devops.exceptions import AzureDevOpsAuthenticationError
from msrest.authentication import BasicAuthentication
from msrest.exceptions import ClientException

from config import Settings
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
)
from steps_xml import serialize_steps
from stores import TestPlanStore, WorkItemStore

logger = logging.getLogger("qe-ado-sync")

# get_work_items accepts at most 200 ids per call
_BATCH_SIZE = 200
_CONTINUATION_HEADER = "x-ms-continuationtoken"
_SPRINT_RE = re.compile(r"^(\d{2})\.Q(\d)\.(\d{2})$")


# ── Field-patch helpers ─────────────────────────────────────────────────

def build_test_case_fields(
    title: Optional[str] = None,
    steps: Optional[list[TestStep]] = None,
    priority: Optional[int] = None,
    automation_status: Optional[str] = None,
) -> dict[str, Any]:
    """Map the supplied test-case attributes to ADO field reference names."""
    fields: dict[str, Any] = {}
    if title is not None:
        fields[FIELD_TITLE] = title
    if steps is not None:
        fields[FIELD_STEPS] = serialize_steps(steps)
    if priority is not None:
        fields[FIELD_PRIORITY] = priority
    if automation_status:
        fields[FIELD_AUTOMATION_STATUS] = automation_status
    return fields


def build_iteration_path(sprint: str, project: str, team: Optional[str] = None) -> str:
    """Expand a sprint name into a full iteration path.

    A sprint that already contains a backslash is taken as a path.  Names
    shaped like ``25.Q4.07`` expand to ``Project\\[Team\\]2025\\Q4\\25.Q4.07``;
    anything else is assumed to sit directly under the project.
    """
    if "\\" in sprint:
        return sprint
    match = _SPRINT_RE.match(sprint)
    if not match:
        return f"{project}\\{sprint}"
    year, quarter = f"20{match.group(1)}", f"Q{match.group(2)}"
    parts = [project, team, year, quarter, sprint] if team else [project, year, quarter, sprint]
    return "\\".join(parts)


def _patch_document(fields: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {"op": "add", "path": f"/fields/{name}", "value": value}
        for name, value in fields.items()
    ]


def _error_detail(resp: Optional[requests.Response]) -> str:
    if resp is None:
        return ""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason or ""
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return resp.reason or ""


def _sdk_to_work_item(item: Any) -> WorkItem:
    """Convert an SDK ``WorkItem`` model into our dataclass."""
    return WorkItem.from_api(
        {
            "id": item.id,
            "rev": item.rev,
            "url": item.url,
            "fields": item.fields or {},
            "relations": [
                {"rel": r.rel, "url": r.url, "attributes": r.attributes or {}}
                for r in item.relations or []
            ],
        }
    )


# ── Main client ─────────────────────────────────────────────────────────

class ADOClient(WorkItemStore, TestPlanStore):
    """Wraps every ADO interaction needed by the comparator and suite manager."""

    def __init__(
        self,
        org_url: Optional[str] = None,
        project: Optional[str] = None,
        pat: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._org_base = (org_url or Settings.ADO_ORG_URL).rstrip("/")
        self._project = project or Settings.ADO_PROJECT
        pat = pat or Settings.ADO_PAT
        self._timeout = timeout or Settings.ADO_TIMEOUT

        creds = BasicAuthentication("", pat)
        self._connection = Connection(base_url=self._org_base, creds=creds)
        self._wit = self._connection.clients.get_work_item_tracking_client()

        # REST session for endpoints the SDK does not cover
        self._session = requests.Session()
        self._session.auth = ("", pat)
        self._api = f"api-version={api_version or Settings.ADO_API_VERSION}"
        self._json_header = {"Content-Type": "application/json"}
        self._patch_header = {"Content-Type": "application/json-patch+json"}

    def _base(self, project: Optional[str] = None) -> str:
        return f"{self._org_base}/{project or self._project}/_apis"

    # ── Transport ───────────────────────────────────────────────────────

    def _request(
        self, method: str, url: str, operation: str, **kwargs: Any
    ) -> requests.Response:
        """Send one REST call; any failure becomes a ServiceError."""
        try:
            resp = self._session.request(method, url, timeout=self._timeout, **kwargs)
            resp.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            status = resp.status_code if resp is not None else 500
            detail = _error_detail(resp) or str(exc)
            logger.error("Failed to %s (HTTP %s): %s", operation, status, detail)
            raise ServiceError(f"Failed to {operation}: {detail}", status) from exc
        except requests.RequestException as exc:
            logger.error("Failed to %s: %s", operation, exc)
            raise ServiceError(f"Failed to {operation}: {exc}") from exc
        logger.debug("%s %s → %s", method, url, resp.status_code)
        return resp

    def _parse(
        self, resp: requests.Response, operation: str, build: Callable[[Any], Any]
    ) -> Any:
        """Decode a JSON body and build the result; malformed payloads become a ServiceError."""
        try:
            return build(resp.json())
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.error(
                "Failed to %s: unexpected response (HTTP %s): %s", operation, resp.status_code, exc
            )
            raise ServiceError(
                f"Failed to {operation}: unexpected response", resp.status_code
            ) from exc

    def _get_paged(
        self, url: str, operation: str, build: Callable[[dict[str, Any]], Any]
    ) -> list[Any]:
        """GET a list endpoint, following continuation tokens; each entry goes through *build*."""
        items: list[Any] = []
        token: Optional[str] = None
        while True:
            params = {"continuationToken": token} if token else None
            resp = self._request("GET", url, operation, params=params)
            page = self._parse(
                resp, operation, lambda body: [build(v) for v in body.get("value") or []]
            )
            items.extend(page)
            token = resp.headers.get(_CONTINUATION_HEADER)
            if not token:
                return items

    def _sdk(self, operation: str, call: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return call(*args, **kwargs)
        except AzureDevOpsAuthenticationError as exc:
            logger.error("Failed to %s: %s", operation, exc)
            raise ServiceError(f"Failed to {operation}: {exc}", 401) from exc
        except ClientException as exc:
            logger.error("Failed to %s: %s", operation, exc)
            raise ServiceError(f"Failed to {operation}: {exc}") from exc

    # ── Work items ──────────────────────────────────────────────────────

    def get_work_item(self, work_item_id: int, expand_relations: bool = True) -> WorkItem:
        """Fetch a single work item by ID."""
        item = self._sdk(
            "get work item",
            self._wit.get_work_item,
            work_item_id,
            expand="All" if expand_relations else None,
        )
        return _sdk_to_work_item(item)

    def get_work_items(self, ids: list[int]) -> list[WorkItem]:
        """Fetch work items in batches; deleted or inaccessible ids are skipped."""
        results: list[WorkItem] = []
        for start in range(0, len(ids), _BATCH_SIZE):
            batch = ids[start:start + _BATCH_SIZE]
            items = self._sdk(
                "get work items",
                self._wit.get_work_items,
                ids=batch,
                expand="All",
                error_policy="Omit",
            )
            results.extend(_sdk_to_work_item(i) for i in items or [] if i is not None)
        return results

    def query_work_items(
        self,
        ids: Optional[list[int]] = None,
        sprint: Optional[str] = None,
        team: Optional[str] = None,
        query: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[WorkItem]:
        """Work items by explicit ids, else by WIQL (*query*, or project + sprint)."""
        if ids:
            return self.get_work_items(ids)

        project = project or self._project
        wiql = query
        if not wiql:
            condition = ""
            if sprint:
                path = build_iteration_path(sprint, project, team)
                condition = f" AND [System.IterationPath] UNDER '{path}'"
            wiql = (
                f"SELECT [System.Id] FROM WorkItems "
                f"WHERE [System.TeamProject] = '{project}'{condition} "
                f"ORDER BY [System.Id] DESC"
            )
        logger.debug("WIQL: %s", wiql)

        url = f"{self._base(project)}/wit/wiql?{self._api}"
        resp = self._request(
            "POST", url, "query work items", json={"query": wiql}, headers=self._json_header
        )
        found = self._parse(
            resp,
            "query work items",
            lambda body: [int(wi["id"]) for wi in body.get("workItems") or []],
        )
        if not found:
            logger.info("No work items matched the query")
            return []
        logger.info("Query matched %d work items", len(found))
        try:
            return self.get_work_items(found)
        except ServiceError as exc:
            raise ServiceError(
                f"Failed to query work items: {exc.message}", exc.status_code
            ) from exc

    def create_test_case(self, test_case: GeneratedTestCase) -> WorkItem:
        """Create a new Test Case work item."""
        fields = build_test_case_fields(
            title=test_case.title,
            steps=test_case.steps,
            priority=test_case.priority,
            automation_status=test_case.automation_status,
        )
        url = f"{self._base()}/wit/workitems/$Test%20Case?{self._api}"
        resp = self._request(
            "POST",
            url,
            "create test case",
            json=_patch_document(fields),
            headers=self._patch_header,
        )
        work_item = self._parse(resp, "create test case", WorkItem.from_api)
        logger.info("Created Test Case #%s  →  '%s'", work_item.id, test_case.title)
        return work_item

    def update_work_item(self, work_item_id: int, fields: dict[str, Any]) -> WorkItem:
        """Patch *fields* on an existing work item."""
        url = f"{self._base()}/wit/workitems/{work_item_id}?{self._api}"
        resp = self._request(
            "PATCH",
            url,
            "update work item",
            json=_patch_document(fields),
            headers=self._patch_header,
        )
        logger.info("Updated work item #%s (%s)", work_item_id, ", ".join(fields))
        return self._parse(resp, "update work item", WorkItem.from_api)

    # ── Test Plans ──────────────────────────────────────────────────────

    def get_test_plan(self, plan_id: int, project: Optional[str] = None) -> TestPlan:
        url = f"{self._base(project)}/testplan/plans/{plan_id}?{self._api}"
        resp = self._request("GET", url, "get test plan")
        return self._parse(resp, "get test plan", TestPlan.from_api)

    def get_test_plans(self, project: Optional[str] = None) -> list[TestPlan]:
        url = f"{self._base(project)}/testplan/plans?{self._api}"
        plans = self._get_paged(url, "get test plans", TestPlan.from_api)
        logger.info("Retrieved %d test plans from %s", len(plans), project or self._project)
        return plans

    def create_test_plan(
        self,
        name: str,
        area_path: Optional[str] = None,
        iteration: Optional[str] = None,
        description: Optional[str] = None,
        project: Optional[str] = None,
    ) -> TestPlan:
        body: dict[str, Any] = {"name": name}
        if area_path:
            body["areaPath"] = area_path
        if iteration:
            body["iteration"] = iteration
        if description:
            body["description"] = description

        url = f"{self._base(project)}/testplan/plans?{self._api}"
        resp = self._request(
            "POST", url, "create test plan", json=body, headers=self._json_header
        )
        plan = self._parse(resp, "create test plan", TestPlan.from_api)
        logger.info("Created test plan '%s' (id=%s)", name, plan.id)
        return plan

    # ── Test Suites ─────────────────────────────────────────────────────

    def get_test_suites(self, plan_id: int, project: Optional[str] = None) -> list[TestSuite]:
        url = f"{self._base(project)}/testplan/plans/{plan_id}/suites?{self._api}"
        suites = self._get_paged(url, "get test suites", TestSuite.from_api)
        logger.debug("Plan %s has %d suites", plan_id, len(suites))
        return suites

    def get_test_suite(
        self, plan_id: int, suite_id: int, project: Optional[str] = None
    ) -> TestSuite:
        url = f"{self._base(project)}/testplan/plans/{plan_id}/suites/{suite_id}?{self._api}"
        resp = self._request("GET", url, "get test suite")
        return self._parse(resp, "get test suite", TestSuite.from_api)

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
        """Create a static, requirement or dynamic suite under *parent_suite_id*."""
        body: dict[str, Any] = {"name": name, "suiteType": suite_type.value}
        if parent_suite_id is not None:
            body["parentSuite"] = {"id": parent_suite_id}
        if suite_type is SuiteType.REQUIREMENT and requirement_id is not None:
            body["requirementId"] = requirement_id
        if suite_type is SuiteType.DYNAMIC and query_string:
            body["queryString"] = query_string

        url = f"{self._base(project)}/testplan/plans/{plan_id}/suites?{self._api}"
        resp = self._request(
            "POST", url, "create test suite", json=body, headers=self._json_header
        )
        suite = self._parse(resp, "create test suite", TestSuite.from_api)
        logger.info("Created suite '%s' (id=%s, type=%s)", name, suite.id, suite_type.value)
        return suite

    def add_test_case_to_suite(
        self,
        plan_id: int,
        suite_id: int,
        test_case_id: int,
        project: Optional[str] = None,
    ) -> None:
        """Add a Test Case to a Test Suite."""
        url = (
            f"{self._base(project)}/testplan/plans/{plan_id}"
            f"/suites/{suite_id}/testcase?{self._api}"
        )
        body = [{"workItem": {"id": test_case_id}}]
        self._request(
            "POST", url, "add test case to suite", json=body, headers=self._json_header
        )
        logger.debug("Added TC #%s to suite %s", test_case_id, suite_id)
