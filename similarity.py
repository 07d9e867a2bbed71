"""
similarity.py – Word-overlap similarity between test cases.

Pure functions only: no I/O, no logging.  Scores in ``[0, 1]`` unless the
name says otherwise; ``case_similarity`` reports a 0–100 percentage.

Step pairing in ``diff_test_cases`` is greedy in generated-step order, not an
optimal assignment.
"""

from __future__ import annotations

from models import (
    STATUS_EXISTS,
    STATUS_NEW,
    STATUS_UPDATE,
    GeneratedTestCase,
    ExistingTestCase,
    StepDiff,
    TestCaseDiff,
    TestStep,
)

TITLE_WEIGHT = 0.4
STEPS_WEIGHT = 0.6

NEW_BELOW = 40
EXISTS_AT = 90
TITLE_CHANGED_BELOW = 95

STEP_MATCH_MIN = 0.5
STEP_UNCHANGED_MIN = 0.95

MIN_WORD_LENGTH = 3


def _words(text: str) -> set[str]:
    return {w for w in text.lower().split() if len(w) >= MIN_WORD_LENGTH}


def string_similarity(a: str, b: str) -> float:
    """Jaccard index of the two texts' word sets (words longer than 2 chars)."""
    if not a or not b or not a.strip() or not b.strip():
        return 0.0
    if a == b or a.strip().lower() == b.strip().lower():
        return 1.0

    words_a = _words(a)
    words_b = _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def step_similarity(a: TestStep, b: TestStep) -> float:
    """Mean of action and expected-result similarity."""
    return (
        string_similarity(a.action, b.action)
        + string_similarity(a.expected_result, b.expected_result)
    ) / 2


def steps_similarity(generated: list[TestStep], existing: list[TestStep]) -> float:
    """Average best-match score per generated step, penalised for count mismatch."""
    if not generated and not existing:
        return 1.0
    if not generated or not existing:
        return 0.0

    best_scores = [
        max(step_similarity(g, e) for e in existing) for g in generated
    ]
    average = sum(best_scores) / len(best_scores)

    shorter, longer = sorted((len(generated), len(existing)))
    length_factor = 0.7 + 0.3 * (shorter / longer)
    return average * length_factor


def case_similarity(
    generated: GeneratedTestCase, existing: ExistingTestCase
) -> float:
    """Weighted title/steps similarity as a percentage (0–100, 2 decimals)."""
    title = string_similarity(generated.title, existing.title)
    steps = steps_similarity(generated.steps, existing.steps)
    return round((TITLE_WEIGHT * title + STEPS_WEIGHT * steps) * 100, 2)


def classify(similarity: float) -> str:
    """NEW below 40, EXISTS from 90, UPDATE in between."""
    if similarity < NEW_BELOW:
        return STATUS_NEW
    if similarity >= EXISTS_AT:
        return STATUS_EXISTS
    return STATUS_UPDATE


def diff_test_cases(
    generated: GeneratedTestCase, existing: ExistingTestCase
) -> TestCaseDiff:
    """Title change plus a greedy step-by-step diff against *existing*."""
    title_pct = round(string_similarity(generated.title, existing.title) * 100, 2)
    diff = TestCaseDiff(
        title_changed=title_pct < TITLE_CHANGED_BELOW,
        title_similarity=title_pct,
    )

    unmatched = list(range(len(existing.steps)))
    for position, gen_step in enumerate(generated.steps, start=1):
        step_number = gen_step.step_number or position

        best_idx = -1
        best_score = 0.0
        for idx in unmatched:
            score = step_similarity(gen_step, existing.steps[idx])
            if best_idx < 0 or score > best_score:
                best_idx = idx
                best_score = score

        if best_idx >= 0 and best_score >= STEP_MATCH_MIN:
            unmatched.remove(best_idx)
            kind = "unchanged" if best_score >= STEP_UNCHANGED_MIN else "modified"
            if kind == "modified":
                diff.steps_modified += 1
            diff.steps_diff.append(
                StepDiff(
                    step_number=step_number,
                    type=kind,
                    generated_step=gen_step,
                    existing_step=existing.steps[best_idx],
                )
            )
        else:
            diff.steps_added += 1
            diff.steps_diff.append(
                StepDiff(step_number=step_number, type="added", generated_step=gen_step)
            )

    for idx in unmatched:
        old_step = existing.steps[idx]
        diff.steps_removed += 1
        diff.steps_diff.append(
            StepDiff(
                step_number=old_step.step_number or idx + 1,
                type="removed",
                existing_step=old_step,
            )
        )

    return diff
