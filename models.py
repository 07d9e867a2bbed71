"""
models.py – Plain data-classes shared across every module.

Output types expose ``to_dict()`` producing the camelCase JSON contract used
by callers; input types expose ``from_dict()`` accepting the same contract.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# ── Work-item field reference names ─────────────────────────────────────

FIELD_ID = "System.Id"
FIELD_TITLE = "System.Title"
FIELD_STATE = "System.State"
FIELD_WORK_ITEM_TYPE = "System.WorkItemType"
FIELD_AREA_PATH = "System.AreaPath"
FIELD_ITERATION_PATH = "System.IterationPath"
FIELD_ASSIGNED_TO = "System.AssignedTo"
FIELD_TAGS = "System.Tags"
FIELD_STEPS = "Microsoft.VSTS.TCM.Steps"
FIELD_PRIORITY = "Microsoft.VSTS.Common.Priority"
FIELD_AUTOMATION_STATUS = "Microsoft.VSTS.TCM.AutomationStatus"

_KNOWN_FIELDS = {
    FIELD_ID,
    FIELD_TITLE,
    FIELD_STATE,
    FIELD_WORK_ITEM_TYPE,
    FIELD_AREA_PATH,
    FIELD_ITERATION_PATH,
    FIELD_ASSIGNED_TO,
    FIELD_TAGS,
    FIELD_STEPS,
    FIELD_PRIORITY,
    FIELD_AUTOMATION_STATUS,
}

TEST_CASE_TYPE = "Test Case"

# ── Relations ───────────────────────────────────────────────────────────

RELATION_KINDS = {
    "System.LinkTypes.Hierarchy-Reverse": "parent",
    "System.LinkTypes.Hierarchy-Forward": "child",
    "System.LinkTypes.Related": "related",
    "Microsoft.VSTS.Common.TestedBy-Forward": "tested-by",
    "Microsoft.VSTS.Common.TestedBy-Reverse": "tests",
    "AttachedFile": "attachment",
    "ArtifactLink": "artifact",
}

_TRAILING_ID = re.compile(r"/(\d+)/?$")


@dataclass
class WorkItemRelation:
    """A typed link from a work item to another item or artifact."""

    rel: str
    url: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return RELATION_KINDS.get(self.rel, "other")

    @property
    def target_id(self) -> Optional[int]:
        """Linked work-item id, or None for attachments and artifact links."""
        if self.kind in ("attachment", "artifact"):
            return None
        match = _TRAILING_ID.search(self.url or "")
        return int(match.group(1)) if match else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rel": self.rel,
            "url": self.url,
            "attributes": dict(self.attributes),
            "kind": self.kind,
            "targetId": self.target_id,
        }


def _split_tags(raw: Any) -> list[str]:
    return [t.strip() for t in (raw or "").split(";") if t.strip()]


def _display_name(raw: Any) -> str:
    if isinstance(raw, dict):
        return raw.get("displayName") or raw.get("uniqueName") or ""
    return raw or ""


def _optional_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@dataclass
class WorkItem:
    """An Azure DevOps work item: typed known fields plus the rest."""

    id: int
    rev: int = 1
    title: str = ""
    state: str = ""
    work_item_type: str = ""
    area_path: str = ""
    iteration_path: str = ""
    assigned_to: str = ""
    tags: list[str] = field(default_factory=list)
    steps_xml: str = ""
    priority: Optional[int] = None
    automation_status: Optional[str] = None
    url: str = ""
    relations: list[WorkItemRelation] = field(default_factory=list)
    extra_fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "WorkItem":
        """Build from the REST representation (``id``, ``fields``, ``relations``)."""
        fields: dict[str, Any] = payload.get("fields") or {}
        return cls(
            id=int(payload["id"]),
            rev=int(payload.get("rev") or 1),
            title=fields.get(FIELD_TITLE, "") or "",
            state=fields.get(FIELD_STATE, "") or "",
            work_item_type=fields.get(FIELD_WORK_ITEM_TYPE, "") or "",
            area_path=fields.get(FIELD_AREA_PATH, "") or "",
            iteration_path=fields.get(FIELD_ITERATION_PATH, "") or "",
            assigned_to=_display_name(fields.get(FIELD_ASSIGNED_TO)),
            tags=_split_tags(fields.get(FIELD_TAGS)),
            steps_xml=fields.get(FIELD_STEPS, "") or "",
            priority=_optional_int(fields.get(FIELD_PRIORITY)),
            automation_status=fields.get(FIELD_AUTOMATION_STATUS),
            url=payload.get("url", "") or "",
            relations=[
                WorkItemRelation(
                    rel=r.get("rel", ""),
                    url=r.get("url", ""),
                    attributes=r.get("attributes") or {},
                )
                for r in payload.get("relations") or []
            ],
            extra_fields={
                k: v for k, v in fields.items() if k not in _KNOWN_FIELDS
            },
        )

    @property
    def is_test_case(self) -> bool:
        return self.work_item_type == TEST_CASE_TYPE

    def related_ids(self, kind: str) -> list[int]:
        """Ids linked through relations of *kind*, in relation order, deduplicated."""
        ids: list[int] = []
        for rel in self.relations:
            if rel.kind != kind:
                continue
            target = rel.target_id
            if target is not None and target not in ids:
                ids.append(target)
        return ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "rev": self.rev,
            "title": self.title,
            "state": self.state,
            "workItemType": self.work_item_type,
            "areaPath": self.area_path,
            "iterationPath": self.iteration_path,
            "assignedTo": self.assigned_to,
            "tags": list(self.tags),
            "priority": self.priority,
            "automationStatus": self.automation_status,
            "url": self.url,
            "relations": [r.to_dict() for r in self.relations],
            "extraFields": dict(self.extra_fields),
        }


# ── Test Plans / Suites ─────────────────────────────────────────────────

class SuiteType(str, Enum):
    STATIC = "staticTestSuite"
    REQUIREMENT = "requirementTestSuite"
    DYNAMIC = "dynamicTestSuite"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["SuiteType"]:
        """Case-insensitive lookup; ADO returns both ``StaticTestSuite`` and ``staticTestSuite``."""
        if not raw:
            return None
        lowered = raw.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


@dataclass
class TestPlan:
    """An ADO Test Plan and the id of its root suite."""

    id: int
    name: str
    root_suite_id: Optional[int] = None
    root_suite_name: str = ""
    state: str = ""
    iteration: str = ""
    area_path: str = ""

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "TestPlan":
        root = payload.get("rootSuite") or {}
        area = payload.get("area") or {}
        return cls(
            id=int(payload["id"]),
            name=payload.get("name", ""),
            root_suite_id=_optional_int(root.get("id")),
            root_suite_name=root.get("name", "") or "",
            state=payload.get("state", "") or "",
            iteration=payload.get("iteration", "") or "",
            area_path=area.get("name", "") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rootSuite": (
                {"id": self.root_suite_id, "name": self.root_suite_name}
                if self.root_suite_id is not None
                else None
            ),
            "state": self.state,
            "iteration": self.iteration,
            "areaPath": self.area_path,
        }


@dataclass
class TestSuite:
    """A node in a Test Plan's suite tree."""

    id: int
    name: str
    suite_type: Optional[SuiteType] = None
    parent_suite_id: Optional[int] = None
    requirement_id: Optional[int] = None
    query_string: str = ""
    plan_id: Optional[int] = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "TestSuite":
        parent = payload.get("parentSuite") or {}
        plan = payload.get("plan") or {}
        return cls(
            id=int(payload["id"]),
            name=payload.get("name", "") or "",
            suite_type=SuiteType.parse(payload.get("suiteType")),
            parent_suite_id=_optional_int(parent.get("id")),
            requirement_id=_optional_int(payload.get("requirementId")),
            query_string=payload.get("queryString", "") or "",
            plan_id=_optional_int(plan.get("id")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "suiteType": self.suite_type.value if self.suite_type else None,
            "parentSuite": (
                {"id": self.parent_suite_id}
                if self.parent_suite_id is not None
                else None
            ),
            "requirementId": self.requirement_id,
            "queryString": self.query_string or None,
            "plan": {"id": self.plan_id} if self.plan_id is not None else None,
        }


# ── Test Cases ──────────────────────────────────────────────────────────

@dataclass
class TestStep:
    """A single action + expected-result pair inside a test case."""

    action: str
    expected_result: str
    step_number: int = 0

    @classmethod
    def from_dict(cls, data: Any, position: int = 0) -> "TestStep":
        """Accept ``{action, expectedResult, stepNumber}`` or a bare action string."""
        if isinstance(data, str):
            return cls(action=data, expected_result="", step_number=position)
        number = _optional_int(data.get("stepNumber"))
        return cls(
            action=data.get("action", "") or "",
            expected_result=(
                data.get("expectedResult", data.get("expected_result", "")) or ""
            ),
            step_number=number if number is not None else position,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepNumber": self.step_number,
            "action": self.action,
            "expectedResult": self.expected_result,
        }


@dataclass
class GeneratedTestCase:
    """A freshly generated test case, not yet stored in ADO."""

    title: str
    steps: list[TestStep] = field(default_factory=list)
    priority: Optional[int] = None
    automation_status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratedTestCase":
        return cls(
            title=data.get("title") or data.get("name") or "",
            steps=[
                TestStep.from_dict(step, position)
                for position, step in enumerate(data.get("steps") or [], start=1)
            ],
            priority=_optional_int(data.get("priority")),
            automation_status=data.get("automationStatus"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "title": self.title,
            "steps": [s.to_dict() for s in self.steps],
        }
        if self.priority is not None:
            out["priority"] = self.priority
        if self.automation_status:
            out["automationStatus"] = self.automation_status
        return out


@dataclass
class ExistingTestCase:
    """A Test Case work item already linked to a requirement, with parsed steps."""

    id: int
    title: str
    state: str = ""
    steps: list[TestStep] = field(default_factory=list)
    priority: Optional[int] = None
    automation_status: Optional[str] = None
    area_path: str = ""
    iteration_path: str = ""
    assigned_to: str = ""
    linked_work_item_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "state": self.state,
            "steps": [s.to_dict() for s in self.steps],
            "priority": self.priority,
            "automationStatus": self.automation_status,
            "areaPath": self.area_path,
            "iterationPath": self.iteration_path,
            "assignedTo": self.assigned_to,
            "linkedWorkItemId": self.linked_work_item_id,
        }


# ── Comparison output ───────────────────────────────────────────────────

STATUS_NEW = "NEW"
STATUS_UPDATE = "UPDATE"
STATUS_EXISTS = "EXISTS"


@dataclass
class StepDiff:
    step_number: int
    type: str  # added | removed | modified | unchanged
    generated_step: Optional[TestStep] = None
    existing_step: Optional[TestStep] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"stepNumber": self.step_number, "type": self.type}
        if self.generated_step is not None:
            out["generatedStep"] = self.generated_step.to_dict()
        if self.existing_step is not None:
            out["existingStep"] = self.existing_step.to_dict()
        return out


@dataclass
class TestCaseDiff:
    title_changed: bool
    title_similarity: float
    steps_added: int = 0
    steps_removed: int = 0
    steps_modified: int = 0
    steps_diff: list[StepDiff] = field(default_factory=list)

    @property
    def steps_unchanged(self) -> int:
        return sum(1 for d in self.steps_diff if d.type == "unchanged")

    def to_dict(self) -> dict[str, Any]:
        return {
            "titleChanged": self.title_changed,
            "titleSimilarity": self.title_similarity,
            "stepsAdded": self.steps_added,
            "stepsRemoved": self.steps_removed,
            "stepsModified": self.steps_modified,
            "stepsDiff": [d.to_dict() for d in self.steps_diff],
        }


@dataclass
class TestCaseComparison:
    generated: GeneratedTestCase
    existing: Optional[ExistingTestCase]
    status: str
    similarity: float
    diff: Optional[TestCaseDiff] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "generated": self.generated.to_dict(),
            "existing": self.existing.to_dict() if self.existing else None,
            "status": self.status,
            "similarity": self.similarity,
        }
        if self.diff is not None:
            out["diff"] = self.diff.to_dict()
        return out


@dataclass
class ComparisonSummary:
    new_count: int = 0
    update_count: int = 0
    exists_count: int = 0
    total_generated: int = 0
    total_existing: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "newCount": self.new_count,
            "updateCount": self.update_count,
            "existsCount": self.exists_count,
            "totalGenerated": self.total_generated,
            "totalExisting": self.total_existing,
        }


@dataclass
class TestCaseComparisonResult:
    """Everything a caller needs to decide what to create or update."""

    work_item_id: int
    work_item_title: str
    existing_test_cases: list[ExistingTestCase] = field(default_factory=list)
    generated_test_cases: list[GeneratedTestCase] = field(default_factory=list)
    comparisons: list[TestCaseComparison] = field(default_factory=list)
    summary: ComparisonSummary = field(default_factory=ComparisonSummary)

    def by_status(self, status: str) -> list[TestCaseComparison]:
        return [c for c in self.comparisons if c.status == status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "workItemId": self.work_item_id,
            "workItemTitle": self.work_item_title,
            "existingTestCases": [tc.to_dict() for tc in self.existing_test_cases],
            "generatedTestCases": [tc.to_dict() for tc in self.generated_test_cases],
            "comparisons": [c.to_dict() for c in self.comparisons],
            "summary": self.summary.to_dict(),
        }


@dataclass
class PlacementResult:
    """Outcome of placing test cases into a plan's suite hierarchy."""

    test_cases: list[WorkItem] = field(default_factory=list)
    suite: Optional[TestSuite] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "testCases": [wi.to_dict() for wi in self.test_cases],
            "suite": self.suite.to_dict() if self.suite else None,
        }
