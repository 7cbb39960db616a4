"""
Bulk Import Service — CSV test cases and users with row-level fault isolation.

Pipeline (both variants):
  1. Parse + header check. Empty input raises ImportFailedError before any
     row is touched.
  2. Presence check of required fields; failing rows become errors and are
     dropped, the batch continues.
  3. Group rows by parent key (``tid`` for test cases, ``email`` for users).
  4. One transaction per parent: upsert the parent, replace its children.
     A failing parent is rolled back, reported with row -1 (test cases) or
     its source row (users), and the next parent is attempted.

Every import is wrapped in an ImportResult run record: created InProgress
and committed first, then finalized to Completed (no errors) or Error with
the per-row error trail persisted in ImportResultError.
"""

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from testhub.core.exceptions import NotFoundError, ValidationError
from testhub.models import db
from testhub.models.auth import User
from testhub.models.import_result import ImportResult, ImportResultError, ImportStatus, ImportType
from testhub.services.csv_service import load_records, missing_fields, write_csv
from testhub.services.test_case_service import CASE_FIELDS, replace_contents, upsert_test_case
from testhub.services.user_service import (
    USER_CSV_HEADER,
    find_user_by_email,
    get_or_create_tag,
    normalize_email,
    parse_user_role,
    replace_user_tags,
)
from testhub.utils.crypto import hash_password
from testhub.utils.db import transaction
from testhub.utils.helpers import is_blank, parse_bool, parse_int

logger = logging.getLogger(__name__)

GROUP_ERROR_ROW = -1
RECENT_RUNS_LIMIT = 100

TEST_CASE_REQUIRED = ("tid", "test_case_no")
USER_REQUIRED = ("email", "user_role")

TEST_CASE_CSV_HEADER = [
    "tid", *CASE_FIELDS, "test_case_no", "test_case", "expected_value", "is_target",
]


def _error(row: int, message: str) -> dict:
    return {"row": row, "message": message}


def _outcome(success_count: int, errors: list[dict]) -> dict:
    return {
        "success_count": success_count,
        "error_count": len(errors),
        "errors": errors,
    }


def _db_message(exc: Exception) -> str:
    return str(getattr(exc, "orig", None) or exc)[:200]


# ═══════════════════════════════════════════════════════════════
# CSV Templates
# ═══════════════════════════════════════════════════════════════
def generate_test_case_template() -> str:
    return write_csv(TEST_CASE_CSV_HEADER, [
        ["TC-001", "Powertrain", "Engine", "Start", "", "Cold start", "REQ-1",
         "Starter current", "Crank at -20C", "1", "Crank once", "Engine starts < 2s", "TRUE"],
        ["TC-001", "Powertrain", "Engine", "Start", "", "Cold start", "REQ-1",
         "Starter current", "Crank at -20C", "2", "Crank twice", "No DTC stored", "TRUE"],
    ])


def generate_user_template() -> str:
    return write_csv(USER_CSV_HEADER, [
        ["designer@example.com", "changeme", "2", "Testing", "ACME", "body,chassis"],
        ["manager@example.com", "changeme", "1", "Quality", "ACME", ""],
    ])


# ═══════════════════════════════════════════════════════════════
# Test Case Import
# ═══════════════════════════════════════════════════════════════
def import_test_cases(test_group_id: int, content: str | bytes, actor: str) -> dict:
    """Import test cases into a group. Returns {success_count, error_count, errors}."""
    records = load_records(content, TEST_CASE_REQUIRED)
    errors: list[dict] = []

    groups: dict[str, list[dict]] = {}
    for record in records:
        missing = missing_fields(record, TEST_CASE_REQUIRED)
        if missing:
            errors.append(_error(record["row_num"], f"Missing required fields: {', '.join(missing)}"))
            continue
        groups.setdefault(record["tid"], []).append(record)

    success_count = 0
    for tid, rows in groups.items():
        contents = _collect_contents(tid, rows, errors)
        if not contents:
            continue
        try:
            with transaction() as session:
                upsert_test_case(session, test_group_id, tid, rows[0], actor)
                replace_contents(session, test_group_id, tid, contents)
        except SQLAlchemyError as exc:
            logger.exception("Test case import failed for TID %s (group %s)", tid, test_group_id)
            errors.append(_error(GROUP_ERROR_ROW, f"TID {tid}: {_db_message(exc)}"))
            continue
        success_count += len(contents)

    logger.info(
        "Test case import group=%s: %d contents imported, %d errors",
        test_group_id, success_count, len(errors),
    )
    return _outcome(success_count, errors)


def _collect_contents(tid: str, rows: list[dict], errors: list[dict]) -> list[dict]:
    """Field-level checks; bad rows are reported and skipped, the rest kept."""
    contents = []
    seen = set()
    for row in rows:
        try:
            test_case_no = parse_int(row["test_case_no"], "test_case_no", minimum=1)
        except ValidationError as exc:
            errors.append(_error(row["row_num"], f"TID {tid}: {exc}"))
            continue
        if test_case_no in seen:
            errors.append(_error(row["row_num"], f"TID {tid}: duplicate test_case_no {test_case_no}"))
            continue
        seen.add(test_case_no)
        contents.append({
            "test_case_no": test_case_no,
            "test_case": row.get("test_case") or None,
            "expected_value": row.get("expected_value") or None,
            "is_target": parse_bool(row.get("is_target"), default=True),
        })
    return contents


# ═══════════════════════════════════════════════════════════════
# User Import
# ═══════════════════════════════════════════════════════════════
def import_users(content: str | bytes) -> dict:
    """Create or update users from CSV. Returns {success_count, error_count, errors}."""
    records = load_records(content, USER_REQUIRED)
    errors: list[dict] = []
    seen_emails: set[str] = set()
    success_count = 0

    for record in records:
        row = record["row_num"]
        missing = missing_fields(record, USER_REQUIRED)
        if missing:
            errors.append(_error(row, f"Missing required fields: {', '.join(missing)}"))
            continue
        try:
            email = normalize_email(record["email"])
            user_role = parse_user_role(record["user_role"])
        except ValidationError as exc:
            errors.append(_error(row, str(exc)))
            continue
        if email.lower() in seen_emails:
            errors.append(_error(row, f"Duplicate email in CSV: {email}"))
            continue
        seen_emails.add(email.lower())

        try:
            with transaction() as session:
                _upsert_user(session, email, user_role, record)
        except ValidationError as exc:
            errors.append(_error(row, f"{email}: {exc}"))
            continue
        except SQLAlchemyError as exc:
            logger.exception("User import failed for %s (row %d)", email, row)
            errors.append(_error(row, f"{email}: {_db_message(exc)}"))
            continue
        success_count += 1

    logger.info("User import: %d users imported, %d errors", success_count, len(errors))
    return _outcome(success_count, errors)


def _upsert_user(session, email: str, user_role: int, record: dict) -> User:
    password = record.get("password") or ""
    user = find_user_by_email(email)
    if user is None:
        if is_blank(password):
            raise ValidationError("password is required for new users")
        user = User(email=email, password_hash=hash_password(password))
        session.add(user)
    elif not is_blank(password):
        user.password_hash = hash_password(password)

    user.user_role = user_role
    user.department = record.get("department") or ""
    user.company = record.get("company") or ""

    names = dict.fromkeys(n.strip() for n in (record.get("tags") or "").split(",") if n.strip())
    tag_ids = [get_or_create_tag(session, name).id for name in names]
    replace_user_tags(user, tag_ids)
    return user


# ═══════════════════════════════════════════════════════════════
# Import Runs
# ═══════════════════════════════════════════════════════════════
def start_import_run(
    import_type: ImportType,
    file_name: str,
    executor_name: str,
    test_group_id: int | None = None,
) -> ImportResult:
    """Persist an InProgress run record before any row is processed."""
    with transaction() as session:
        run = ImportResult(
            file_name=file_name or "import.csv",
            import_date=date.today(),
            status=int(ImportStatus.IN_PROGRESS),
            executor_name=executor_name,
            import_type=int(import_type),
            test_group_id=test_group_id,
            count=0,
        )
        session.add(run)
    return run


def finish_import_run(run_id: int, outcome: dict) -> ImportResult:
    with transaction() as session:
        run = session.get(ImportResult, run_id)
        run.status = int(ImportStatus.COMPLETED if outcome["error_count"] == 0 else ImportStatus.ERROR)
        run.count = outcome["success_count"]
        for error in outcome["errors"]:
            run.errors.append(ImportResultError(error_details=error["message"], error_row=error["row"]))
    return run


def fail_import_run(run_id: int, message: str) -> None:
    with transaction() as session:
        run = session.get(ImportResult, run_id)
        run.status = int(ImportStatus.ERROR)
        run.errors.append(ImportResultError(error_details=message, error_row=GROUP_ERROR_ROW))


def execute_import(
    import_type: ImportType,
    file_name: str,
    executor_name: str,
    runner,
    test_group_id: int | None = None,
) -> tuple[ImportResult, dict]:
    """Wrap ``runner()`` in a run record. Hard failures mark the run Error and re-raise."""
    run = start_import_run(import_type, file_name, executor_name, test_group_id)
    run_id = run.id
    try:
        outcome = runner()
    except Exception as exc:
        db.session.rollback()
        logger.warning("Import run %s failed: %s", run_id, exc)
        fail_import_run(run_id, str(exc))
        raise
    return finish_import_run(run_id, outcome), outcome


def list_import_runs(import_type: int | None = None) -> list[ImportResult]:
    query = ImportResult.query
    if import_type is not None:
        query = query.filter(ImportResult.import_type == import_type)
    return (
        query.order_by(ImportResult.created_at.desc(), ImportResult.id.desc())
        .limit(RECENT_RUNS_LIMIT)
        .all()
    )


def get_import_run(run_id: int) -> ImportResult:
    run = db.session.get(ImportResult, run_id)
    if run is None:
        raise NotFoundError("ImportResult", run_id)
    return run


def list_import_errors(run_id: int) -> list[ImportResultError]:
    get_import_run(run_id)
    return (
        ImportResultError.query.filter_by(import_result_id=run_id)
        .order_by(ImportResultError.error_row, ImportResultError.id)
        .all()
    )
