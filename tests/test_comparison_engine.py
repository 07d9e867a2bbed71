"""Tests for resolving linked test cases and classifying generated ones."""
import pytest

from comparison_engine import ComparisonEngine, best_match
from errors import ServiceError
from models import ExistingTestCase, GeneratedTestCase
from tests.conftest import child, steps, tested_by_link

LOGIN_STEPS = steps(
    ("Enter username and password", "Fields accept input"),
    ("Click login", "User redirected to dashboard"),
)


@pytest.fixture
def engine(fake_ado):
    return ComparisonEngine(fake_ado)


class TestExistingTestCases:

    def test_tested_by_links_in_link_order(self, fake_ado, engine):
        fake_ado.add_work_item(
            42, "Login story", "Product Backlog Item", relations=[tested_by_link(12), tested_by_link(11)]
        )
        fake_ado.add_work_item(11, "Verify logout", case_steps=steps(("Log out", "Signed out")))
        fake_ado.add_work_item(12, "Verify login", case_steps=LOGIN_STEPS)

        existing = engine.get_existing_test_cases(42)

        assert [tc.id for tc in existing] == [12, 11]
        assert existing[0].steps == LOGIN_STEPS
        assert existing[0].linked_work_item_id == 42
        assert fake_ado.calls_to("get_work_items") == [{"ids": [12, 11]}]

    def test_falls_back_to_test_case_children(self, fake_ado, engine):
        fake_ado.add_work_item(
            42, "Login story", "Product Backlog Item", relations=[child(13), child(14)]
        )
        fake_ado.add_work_item(13, "Build login API", "Task")
        fake_ado.add_work_item(14, "Verify login", case_steps=LOGIN_STEPS)

        assert [tc.id for tc in engine.get_existing_test_cases(42)] == [14]

    def test_children_ignored_when_tested_by_present(self, fake_ado, engine):
        fake_ado.add_work_item(
            42, "Login story", "Product Backlog Item", relations=[child(14), tested_by_link(12)]
        )
        fake_ado.add_work_item(12, "Verify login")
        fake_ado.add_work_item(14, "Verify logout")

        assert [tc.id for tc in engine.get_existing_test_cases(42)] == [12]

    def test_no_links(self, fake_ado, engine):
        fake_ado.add_work_item(42, "Login story", "Product Backlog Item")

        assert engine.get_existing_test_cases(42) == []
        assert fake_ado.calls_to("get_work_items") == []

    def test_missing_requirement_propagates(self, engine):
        with pytest.raises(ServiceError) as exc_info:
            engine.get_existing_test_cases(999)
        assert exc_info.value.status_code == 404


class TestBestMatch:

    def test_first_candidate_wins_ties(self):
        gen = GeneratedTestCase("Verify login", LOGIN_STEPS)
        first = ExistingTestCase(id=1, title="Verify login", steps=LOGIN_STEPS)
        second = ExistingTestCase(id=2, title="Verify login", steps=LOGIN_STEPS)

        match, score = best_match(gen, [first, second])
        assert match is first
        assert score == 100.0

    def test_no_candidates(self):
        assert best_match(GeneratedTestCase("Verify login"), []) == (None, 0.0)


class TestCompare:

    def test_exact_duplicate_exists(self, fake_ado, engine):
        fake_ado.add_work_item(42, "Login story", "Product Backlog Item", relations=[tested_by_link(101)])
        fake_ado.add_work_item(101, "Verify login with valid credentials", case_steps=LOGIN_STEPS)
        gen = GeneratedTestCase("Verify login with valid credentials", LOGIN_STEPS)

        result = engine.compare(42, [gen])

        cmp = result.comparisons[0]
        assert cmp.status == "EXISTS"
        assert cmp.similarity == 100.0
        assert cmp.existing.id == 101
        assert cmp.diff.title_changed is False
        assert cmp.diff.steps_unchanged == 2
        assert result.summary.to_dict() == {
            "newCount": 0,
            "updateCount": 0,
            "existsCount": 1,
            "totalGenerated": 1,
            "totalExisting": 1,
        }

    def test_unrelated_case_is_new(self, fake_ado, engine):
        fake_ado.add_work_item(42, "Login story", "Product Backlog Item", relations=[tested_by_link(101)])
        fake_ado.add_work_item(
            101, "Configure SSO provider", case_steps=steps(("Open identity settings", "Provider form shown"))
        )
        gen = GeneratedTestCase(
            "Verify password reset email delivery",
            steps(("Request a password reset", "Reset email arrives in inbox")),
        )

        cmp = engine.compare(42, [gen]).comparisons[0]

        assert cmp.status == "NEW"
        assert cmp.existing is None
        assert cmp.diff is None
        assert cmp.similarity < 40

    def test_everything_new_without_existing(self, fake_ado, engine):
        fake_ado.add_work_item(42, "Login story", "Product Backlog Item")
        generated = [GeneratedTestCase("Verify login"), GeneratedTestCase("Verify logout")]

        result = engine.compare(42, generated)

        assert [c.status for c in result.comparisons] == ["NEW", "NEW"]
        assert all(c.similarity == 0.0 for c in result.comparisons)
        assert result.summary.new_count == 2
        assert result.work_item_title == "Login story"

    def test_mixed_batch(self, fake_ado, engine):
        fake_ado.add_work_item(
            42, "Login story", "Product Backlog Item", relations=[tested_by_link(101), tested_by_link(102)]
        )
        fake_ado.add_work_item(101, "Verify login with valid credentials", case_steps=LOGIN_STEPS)
        fake_ado.add_work_item(
            102, "Verify user logout", case_steps=steps(("Open dashboard", "Dashboard page appears"))
        )
        generated = [
            GeneratedTestCase("Verify login with valid credentials", LOGIN_STEPS),
            GeneratedTestCase("Verify user login", steps(("Open dashboard", "Dashboard page loads"))),
            GeneratedTestCase("Export monthly invoices", steps(("Press export", "CSV file saved"))),
        ]

        result = engine.compare(42, generated)

        assert [(c.status, c.existing and c.existing.id) for c in result.comparisons] == [
            ("EXISTS", 101),
            ("UPDATE", 102),
            ("NEW", None),
        ]
        assert result.comparisons[1].similarity == 65.0
        assert result.by_status("UPDATE")[0].diff.steps_modified == 1
        summary = result.summary
        assert (summary.new_count, summary.update_count, summary.exists_count) == (1, 1, 1)
        assert summary.new_count + summary.update_count + summary.exists_count == summary.total_generated

    def test_result_json_shape(self, fake_ado, engine):
        fake_ado.add_work_item(42, "Login story", "Product Backlog Item", relations=[tested_by_link(101)])
        fake_ado.add_work_item(101, "Verify login with valid credentials", case_steps=LOGIN_STEPS)

        data = engine.compare(42, [GeneratedTestCase("Verify login with valid credentials", LOGIN_STEPS)]).to_dict()

        assert data["workItemId"] == 42
        assert data["existingTestCases"][0]["linkedWorkItemId"] == 42
        assert data["comparisons"][0]["diff"]["stepsDiff"][0]["type"] == "unchanged"

    def test_angle_bracket_steps_still_match_after_push(self, fake_ado, engine):
        keyed = steps(("Press <Enter> to submit", "Page <title> updated"))
        fake_ado.add_work_item(42, "Search story", "Product Backlog Item", relations=[tested_by_link(101)])
        fake_ado.add_work_item(101, "Verify search submit", case_steps=keyed)

        cmp = engine.compare(42, [GeneratedTestCase("Verify search submit", keyed)]).comparisons[0]

        assert cmp.status == "EXISTS"
        assert cmp.similarity == 100.0
