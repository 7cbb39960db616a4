"""
Result Ledger — versioned test results, history snapshots and evidence.

Per (test_group_id, tid, test_case_no):

    Untested ──submit──▶ Recorded(version=1) ──submit──▶ Recorded(version=N+1) ...

submit_result() runs in one transaction:
  1. read the current row FOR UPDATE
  2. version = current.version + 1, or 1 when absent
  3. overwrite the row
  4. when evidence paths accompany the submission:
       history_count = max(history_count) + 1
       one TestResultHistory snapshot + TestEvidence rows numbered 1..N
  5. commit; any failure rolls back all of it

Two first submissions racing on an absent row collide on the primary key;
the loser is retried and lands on version 2.

Evidence paths must either sit under the temp prefix or already belong to
this content (``evidence/<group>/<tid>/<no>/...``); anything else is
rejected before the transaction. Temp uploads are copied into the content
folder first, and the copies are removed again when the transaction fails.
"""

import logging

from flask import current_app
from sqlalchemy import func, select

from testhub.core.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from testhub.core.principal import Principal
from testhub.models import db
from testhub.models.test_case import TestCase, TestContent
from testhub.models.test_result import Judgment, TestEvidence, TestResult, TestResultHistory
from testhub.services.storage_service import ObjectStorage, basename, with_download_url
from testhub.utils.db import retry_on_conflict, transaction
from testhub.utils.helpers import parse_date_input, parse_int

logger = logging.getLogger(__name__)

JUDGMENTS = frozenset(j.value for j in Judgment)
TEXT_FIELDS = (
    "result",
    "software_version",
    "hardware_version",
    "comparator_version",
    "executor",
    "note",
)
SNAPSHOT_LATEST = "latest"
SNAPSHOT_FIRST = "first"


# ═══════════════════════════════════════════════════════════════
# Payload validation
# ═══════════════════════════════════════════════════════════════
def validate_result_payload(payload: dict) -> dict:
    """Check and coerce a submission before any transaction starts."""
    fields = {}
    for name in TEXT_FIELDS:
        value = payload.get(name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{name} must be a string", details={name: "not a string"})
        fields[name] = value or None

    judgment = payload.get("judgment") or None
    if judgment is not None and judgment not in JUDGMENTS:
        raise ValidationError(
            f"judgment must be one of: {', '.join(sorted(JUDGMENTS))}",
            details={"judgment": "invalid"},
        )
    fields["judgment"] = judgment
    fields["execution_date"] = parse_date_input(payload.get("execution_date"), "execution_date")

    evidence = payload.get("evidence_urls") or []
    if not isinstance(evidence, list) or not all(isinstance(p, str) and p.strip() for p in evidence):
        raise ValidationError(
            "evidence_urls must be a list of storage paths",
            details={"evidence_urls": "invalid"},
        )

    expected = payload.get("expected_version")
    if expected is not None:
        expected = parse_int(expected, "expected_version", minimum=0)

    return {
        "fields": fields,
        "evidence_paths": [p.strip() for p in evidence],
        "expected_version": expected,
    }


def evidence_name(path: str, position: int) -> str:
    """Last path segment, or ``evidence_<n>`` when the path ends in a slash."""
    return path.split("?", 1)[0].split("/")[-1] or f"evidence_{position}"


# ═══════════════════════════════════════════════════════════════
# Submit
# ═══════════════════════════════════════════════════════════════
def submit_result(
    test_group_id: int,
    tid: str,
    test_case_no: int,
    payload: dict,
    principal: Principal,
    storage: ObjectStorage,
) -> dict:
    """Record a result. Returns {"version": int, "history_count": int | None}."""
    data = validate_result_payload(payload)
    _require_content(test_group_id, tid, test_case_no)

    folder = f"evidence/{test_group_id}/{tid}/{test_case_no}"
    _check_evidence_paths(data["evidence_paths"], folder)
    paths, copied = _promote_evidence(storage, data["evidence_paths"], folder)

    def _write():
        return _write_result(
            test_group_id, tid, test_case_no, data["fields"], paths,
            data["expected_version"], principal.actor,
        )

    try:
        outcome = retry_on_conflict(_write)
    except Exception:
        _discard(storage, copied)
        raise

    logger.info(
        "Result recorded group=%s tid=%s no=%s version=%s history=%s by user=%s",
        test_group_id, tid, test_case_no, outcome["version"], outcome["history_count"], principal.id,
    )
    return outcome


def _write_result(
    test_group_id: int,
    tid: str,
    test_case_no: int,
    fields: dict,
    evidence_paths: list[str],
    expected_version: int | None,
    actor: str,
) -> dict:
    key = {"test_group_id": test_group_id, "tid": tid, "test_case_no": test_case_no}
    with transaction() as session:
        current = session.execute(
            select(TestResult)
            .filter_by(**key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        current_version = current.version if current else 0
        if expected_version is not None and expected_version != current_version:
            raise ConflictError(
                "TestResult", "version", current_version,
                message=(
                    f"Result was changed by someone else "
                    f"(expected version {expected_version}, current {current_version})"
                ),
            )

        version = current_version + 1
        if current is None:
            current = TestResult(created_by=actor, **key)
            session.add(current)
        for name, value in fields.items():
            setattr(current, name, value)
        current.version = version
        current.updated_by = actor

        history_count = None
        if evidence_paths:
            history_count = (
                session.query(func.max(TestResultHistory.history_count))
                .filter_by(**key)
                .scalar()
                or 0
            ) + 1
            session.add(TestResultHistory(
                history_count=history_count,
                version=version,
                created_by=actor,
                updated_by=actor,
                **key,
                **fields,
            ))
            for position, path in enumerate(evidence_paths, start=1):
                session.add(TestEvidence(
                    history_count=history_count,
                    evidence_no=position,
                    evidence_name=evidence_name(path, position),
                    evidence_path=path,
                    **key,
                ))

    return {"version": version, "history_count": history_count}


def _require_content(test_group_id: int, tid: str, test_case_no: int) -> None:
    content = TestContent.scoped().filter_by(
        test_group_id=test_group_id, tid=tid, test_case_no=test_case_no,
    ).first()
    if content is None:
        raise NotFoundError("TestContent", f"{test_group_id}/{tid}/{test_case_no}")


def _temp_prefix() -> str:
    return current_app.config.get("STORAGE_TEMP_PREFIX", "temp").strip("/") + "/"


def _check_evidence_paths(paths: list[str], folder: str) -> None:
    """Only temp uploads and this content's own evidence objects may be attached.

    Anything else could point at another group's objects, which a later
    evidence delete would then remove.
    """
    allowed = (_temp_prefix(), folder + "/")
    for path in paths:
        segments = path.split("?", 1)[0].split("/")
        if (
            not path.startswith(allowed)
            or any(s in (".", "..") for s in segments)
            or "" in segments[:-1]
        ):
            raise ValidationError(
                f"Evidence path is not an upload for this test content: {path}",
                details={"evidence_urls": path},
            )


def _promote_evidence(storage: ObjectStorage, paths: list[str], folder: str):
    """Copy temp uploads into the evidence folder. Returns (final paths, new copies)."""
    prefix = _temp_prefix()
    final, copied = [], []
    try:
        for path in paths:
            if path.startswith(prefix):
                new_path = storage.copy(path, folder)
                copied.append(new_path)
                final.append(new_path)
            else:
                final.append(path)
    except StorageError:
        _discard(storage, copied)
        raise
    return final, copied


def _discard(storage: ObjectStorage, paths: list[str]) -> None:
    for path in paths:
        try:
            storage.delete(path)
        except StorageError:
            logger.warning("Could not remove orphaned evidence copy %s", path)


# ═══════════════════════════════════════════════════════════════
# Read side
# ═══════════════════════════════════════════════════════════════
def _require_case(test_group_id: int, tid: str) -> TestCase:
    case = TestCase.scoped().filter_by(test_group_id=test_group_id, tid=tid).first()
    if case is None:
        raise NotFoundError("TestCase", f"{test_group_id}/{tid}")
    return case


def _snapshot_counts(test_group_id: int, tid: str, policy: str) -> dict[int, int]:
    """test_case_no → history_count whose evidence counts as current."""
    if policy == SNAPSHOT_FIRST:
        aggregate = func.min(TestResultHistory.history_count)
    else:
        aggregate = func.max(TestResultHistory.history_count)
    rows = db.session.execute(
        select(TestResultHistory.test_case_no, aggregate)
        .where(TestResultHistory.test_group_id == test_group_id, TestResultHistory.tid == tid)
        .group_by(TestResultHistory.test_case_no)
    ).all()
    return {no: count for no, count in rows}


def list_results(
    test_group_id: int,
    tid: str,
    snapshot: str = SNAPSHOT_LATEST,
    storage: ObjectStorage | None = None,
) -> list[dict]:
    """One entry per live content: its current result and current evidence."""
    _require_case(test_group_id, tid)
    contents = (
        TestContent.scoped()
        .filter_by(test_group_id=test_group_id, tid=tid)
        .order_by(TestContent.test_case_no)
        .all()
    )
    results = {
        r.test_case_no: r
        for r in TestResult.query.filter_by(test_group_id=test_group_id, tid=tid)
    }
    snapshots = _snapshot_counts(test_group_id, tid, snapshot)

    evidence_by_no: dict[int, list[dict]] = {}
    for evidence in (
        TestEvidence.scoped()
        .filter_by(test_group_id=test_group_id, tid=tid)
        .order_by(TestEvidence.test_case_no, TestEvidence.evidence_no)
    ):
        if snapshots.get(evidence.test_case_no) == evidence.history_count:
            evidence_by_no.setdefault(evidence.test_case_no, []).append(
                with_download_url(evidence.to_dict(), evidence.evidence_path, storage)
            )

    entries = []
    for content in contents:
        result = results.get(content.test_case_no)
        entry = content.to_dict()
        entry["result"] = result.to_dict() if result else None
        entry["evidences"] = evidence_by_no.get(content.test_case_no, [])
        entries.append(entry)
    return entries


def list_history(
    test_group_id: int, tid: str, test_case_no: int, storage: ObjectStorage | None = None,
) -> list[dict]:
    """Every history snapshot for a content with its live evidence, oldest first."""
    _require_case(test_group_id, tid)
    key = {"test_group_id": test_group_id, "tid": tid, "test_case_no": test_case_no}
    evidence_by_count: dict[int, list[dict]] = {}
    for evidence in TestEvidence.scoped().filter_by(**key).order_by(TestEvidence.evidence_no):
        evidence_by_count.setdefault(evidence.history_count, []).append(
            with_download_url(evidence.to_dict(), evidence.evidence_path, storage)
        )

    snapshots = []
    for history in TestResultHistory.query.filter_by(**key).order_by(TestResultHistory.history_count):
        entry = history.to_dict()
        entry["evidences"] = evidence_by_count.get(history.history_count, [])
        snapshots.append(entry)
    return snapshots


# ═══════════════════════════════════════════════════════════════
# Evidence delete
# ═══════════════════════════════════════════════════════════════
def delete_evidence(
    test_group_id: int,
    tid: str,
    test_case_no: int,
    history_count: int,
    evidence_no: int,
    storage: ObjectStorage,
) -> None:
    """Delete the stored object, then soft-delete the row.

    A storage failure propagates and leaves the row untouched.
    """
    evidence = TestEvidence.scoped().filter_by(
        test_group_id=test_group_id,
        tid=tid,
        test_case_no=test_case_no,
        history_count=history_count,
        evidence_no=evidence_no,
    ).first()
    if evidence is None:
        raise NotFoundError(
            "TestEvidence", f"{test_group_id}/{tid}/{test_case_no}/{history_count}/{evidence_no}",
        )

    storage.delete(evidence.evidence_path)
    with transaction():
        evidence.soft_delete()
    logger.info("Evidence %s deleted", evidence.evidence_path)
