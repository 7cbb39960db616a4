"""
Report Aggregator — pass rate and progress for one test group.

The denominator is every live TestContent in the group. A content counts as
tested when it has a TestResult row (the table holds one current row per
content). Results left behind by contents that were since replaced or
deleted are ignored.
"""

import math

from testhub.core.exceptions import NotFoundError
from testhub.models.test_case import TestCase, TestContent
from testhub.models.test_group import TestGroup
from testhub.models.test_result import Judgment, TestResult


def percentage(part: int, total: int) -> float:
    """part/total as a percentage with one decimal, rounded half up; 0 when total is 0."""
    if total == 0:
        return 0
    return math.floor(part / total * 1000 + 0.5) / 10


def summarize(total_contents: int, judgments: list[str | None]) -> dict:
    """Statistics block from the content count and the judgments of tested contents."""
    tested = len(judgments)
    ok = sum(1 for j in judgments if j == Judgment.OK.value)
    ng = sum(1 for j in judgments if j == Judgment.NG.value)
    excluded = sum(1 for j in judgments if j == Judgment.RETEST_EXCLUDED.value)
    return {
        "total_test_contents": total_contents,
        "tested_count": tested,
        "untested_count": total_contents - tested,
        "ok_count": ok,
        "ng_count": ng,
        "excluded_count": excluded,
        "pass_rate": percentage(ok, total_contents),
        "progress": percentage(tested, total_contents),
    }


def build_report(test_group_id: int) -> dict:
    group = TestGroup.scoped().filter(TestGroup.id == test_group_id).first()
    if group is None:
        raise NotFoundError("TestGroup", test_group_id)

    cases = TestCase.scoped().filter_by(test_group_id=test_group_id).order_by(TestCase.tid).all()
    live_tids = {c.tid for c in cases}
    contents = [
        c for c in TestContent.scoped()
        .filter_by(test_group_id=test_group_id)
        .order_by(TestContent.tid, TestContent.test_case_no)
        if c.tid in live_tids
    ]
    content_keys = {(c.tid, c.test_case_no) for c in contents}
    results = {
        (r.tid, r.test_case_no): r
        for r in TestResult.query.filter_by(test_group_id=test_group_id)
        if (r.tid, r.test_case_no) in content_keys
    }

    statistics = summarize(len(contents), [r.judgment for r in results.values()])
    statistics["total_test_cases"] = len(cases)

    contents_by_tid: dict[str, list[dict]] = {}
    for content in contents:
        entry = content.to_dict()
        result = results.get((content.tid, content.test_case_no))
        entry["result"] = result.to_dict() if result else None
        contents_by_tid.setdefault(content.tid, []).append(entry)

    return {
        "test_group": group.to_dict(),
        "statistics": statistics,
        "test_cases": [
            {**case.to_dict(), "contents": contents_by_tid.get(case.tid, [])}
            for case in cases
        ],
    }
