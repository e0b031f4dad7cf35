from datetime import date
from unittest import mock

import pytest

from schoolhub.models import AcademicYear, AuditLog
from schoolhub.services import academic_years, schools


def _current_ids(school_id):
    return [
        y.id for y in AcademicYear.query.filter_by(school_id=school_id, is_current=True, is_closed=False)
    ]


def test_first_year_becomes_current(school_id, current_year):
    assert current_year["is_current"] is True
    assert current_year["is_closed"] is False
    assert current_year["start_date"] == "2023-06-01"


def test_later_years_are_not_current(school_id, current_year, next_year):
    assert next_year["is_current"] is False
    assert _current_ids(school_id) == [current_year["id"]]


@pytest.mark.parametrize("start, end", [
    (date(2024, 1, 1), date(2024, 1, 1)),
    (date(2024, 5, 1), date(2024, 1, 1)),
])
def test_start_must_precede_end(school_id, start, end):
    result = academic_years.create_academic_year(school_id, "bad", start, end)
    assert result["success"] is False
    assert result["error_type"] == "validation"
    assert AcademicYear.query.count() == 0


def test_overlap_is_inclusive_at_boundary(school_id, current_year):
    # starts on the last day of 2023-24
    result = academic_years.create_academic_year(school_id, "2024-25", date(2024, 5, 31), date(2025, 5, 31))
    assert result["success"] is False
    assert result["error_type"] == "conflict"


def test_overlap_ignores_closed_years(school_id, current_year):
    assert academic_years.close_academic_year(school_id, current_year["id"])["success"]

    result = academic_years.create_academic_year(school_id, "2023-24 redo", date(2023, 9, 1), date(2024, 6, 30))
    assert result["success"], result
    # closed years still count as history, so this is not the first year
    assert result["data"]["is_current"] is False


def test_set_current_keeps_a_single_current_year(school_id, current_year, next_year):
    result = academic_years.set_current_academic_year(school_id, next_year["id"])
    assert result["success"], result
    assert _current_ids(school_id) == [next_year["id"]]

    result = academic_years.set_current_academic_year(school_id, current_year["id"])
    assert result["success"], result
    assert _current_ids(school_id) == [current_year["id"]]


def test_set_current_refuses_other_schools_year(school_id, current_year):
    other = schools.create_school(
        name="Other", slug="other", email="o@other.example", phone=None,
        admin_name="O", admin_email="admin@other.example", admin_password="pw",
    )["data"]["school"]["id"]

    result = academic_years.set_current_academic_year(other, current_year["id"])
    assert result["success"] is False
    assert result["error_type"] == "not_found"


def test_close_promotes_most_recently_started_open_year(school_id, current_year, next_year):
    later = academic_years.create_academic_year(school_id, "2025-26", date(2025, 6, 1), date(2026, 5, 31))["data"]

    result = academic_years.close_academic_year(school_id, current_year["id"])
    assert result["success"], result
    assert result["data"]["is_closed"] is True
    assert result["data"]["is_current"] is False
    assert result["data"]["new_current_year"]["id"] == later["id"]
    assert _current_ids(school_id) == [later["id"]]


def test_closing_last_open_year_leaves_no_current(school_id, current_year):
    result = academic_years.close_academic_year(school_id, current_year["id"])
    assert result["success"], result
    assert result["data"]["new_current_year"] is None
    assert _current_ids(school_id) == []


def test_closing_non_current_year_keeps_current(school_id, current_year, next_year):
    result = academic_years.close_academic_year(school_id, next_year["id"])
    assert result["success"], result
    assert _current_ids(school_id) == [current_year["id"]]


def test_closed_year_is_terminal(school_id, current_year, next_year):
    assert academic_years.close_academic_year(school_id, current_year["id"])["success"]

    update = academic_years.update_academic_year(school_id, current_year["id"], name="renamed")
    assert update["success"] is False
    assert update["error_type"] == "invalid_state"

    set_current = academic_years.set_current_academic_year(school_id, current_year["id"])
    assert set_current["success"] is False
    assert set_current["error_type"] == "invalid_state"

    close_again = academic_years.close_academic_year(school_id, current_year["id"])
    assert close_again["success"] is False
    assert close_again["error_type"] == "invalid_state"

    year = AcademicYear.query.get(current_year["id"])
    assert year.name == "2023-24"
    assert year.is_current is False


def test_close_writes_audit_row(app, school_id, current_year):
    academic_years.close_academic_year(school_id, current_year["id"])

    rows = AuditLog.query.filter_by(school_id=school_id, action="ACADEMIC_YEAR_CLOSED").all()
    assert len(rows) == 1
    with open(app.config["AUDIT_LOG_FILE"]) as log_file:
        assert "EVENT: ACADEMIC_YEAR_CLOSED" in log_file.read()


def test_update_applies_only_given_fields(school_id, current_year):
    result = academic_years.update_academic_year(school_id, current_year["id"], name="Year 23/24")
    assert result["success"], result
    assert result["data"]["name"] == "Year 23/24"
    assert result["data"]["start_date"] == "2023-06-01"
    assert result["data"]["end_date"] == "2024-05-31"


def test_update_requires_fields(school_id, current_year):
    result = academic_years.update_academic_year(school_id, current_year["id"])
    assert result["error_type"] == "validation"


def test_update_rejects_inverted_range(school_id, current_year):
    result = academic_years.update_academic_year(school_id, current_year["id"], end_date="2023-01-01")
    assert result["success"] is False
    assert result["error_type"] == "validation"


def test_update_rejects_overlap_with_other_open_year(school_id, current_year, next_year):
    result = academic_years.update_academic_year(school_id, next_year["id"], start_date="2024-05-01")
    assert result["success"] is False
    assert result["error_type"] == "conflict"


def test_update_may_move_within_own_range(school_id, current_year):
    result = academic_years.update_academic_year(school_id, current_year["id"], end_date="2024-06-15")
    assert result["success"], result
    assert result["data"]["end_date"] == "2024-06-15"


def test_list_and_current(school_id, current_year, next_year):
    listing = academic_years.list_academic_years(school_id, page=1, limit=1)
    assert listing["success"]
    assert [y["id"] for y in listing["data"]["items"]] == [next_year["id"]]
    assert listing["data"]["pagination"] == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}

    current = academic_years.get_current_academic_year(school_id)
    assert current["data"]["id"] == current_year["id"]


def test_inactive_school_is_refused(school_id):
    schools.deactivate_school(school_id)
    result = academic_years.create_academic_year(school_id, "2023-24", date(2023, 6, 1), date(2024, 5, 31))
    assert result["success"] is False
    assert result["error_type"] == "invalid_state"
    assert result["error"] == "School is not active"


def test_end_to_end_year_rollover(school_id):
    y1 = academic_years.create_academic_year(school_id, "2023-24", date(2023, 6, 1), date(2024, 5, 31))["data"]
    assert y1["is_current"] is True

    rejected = academic_years.create_academic_year(school_id, "2024-25", date(2024, 1, 1), date(2025, 5, 31))
    assert rejected["success"] is False
    assert rejected["error_type"] == "conflict"

    accepted = academic_years.create_academic_year(school_id, "2024-25", date(2024, 6, 1), date(2025, 5, 31))
    assert accepted["success"] is True
    assert accepted["data"]["is_current"] is False

    closed = academic_years.close_academic_year(school_id, y1["id"])
    assert closed["success"] is True
    assert AcademicYear.query.get(y1["id"]).is_closed is True
    assert AcademicYear.query.get(accepted["data"]["id"]).is_current is True


@pytest.mark.xfail(strict=False, reason=(
    "set_current_academic_year clears and sets is_current in two statements with no row lock or "
    "partial unique index, so a competing call committed in between leaves two current years."
))
def test_interleaved_set_current_keeps_single_current_year(school_id, current_year, next_year):
    clear_current = academic_years._clear_current
    competing = {"ran": False}

    def clear_then_compete(sid, keep_id):
        clear_current(sid, keep_id)
        if not competing["ran"]:
            competing["ran"] = True
            # a second admin's call commits between this call's two writes
            assert academic_years.set_current_academic_year(school_id, current_year["id"])["success"]

    with mock.patch.object(academic_years, "_clear_current", side_effect=clear_then_compete):
        result = academic_years.set_current_academic_year(school_id, next_year["id"])

    assert result["success"], result
    assert competing["ran"]
    assert len(_current_ids(school_id)) <= 1
