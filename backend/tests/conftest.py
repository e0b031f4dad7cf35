from datetime import date

import pytest

from schoolhub import create_app
from schoolhub.config import TestConfig
from schoolhub.extensions import db
from schoolhub.services import academic_years, catalog, schools, students


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["AUDIT_LOG_FILE"] = str(tmp_path / "audit.log")

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def school_id(app):
    result = schools.create_school(
        name="Greenfield High",
        slug="greenfield",
        email="office@greenfield.example",
        phone="555-0100",
        admin_name="Grace Admin",
        admin_email="admin@greenfield.example",
        admin_password="secret-pass",
    )
    assert result["success"], result
    return result["data"]["school"]["id"]


@pytest.fixture
def current_year(school_id):
    result = academic_years.create_academic_year(school_id, "2023-24", date(2023, 6, 1), date(2024, 5, 31))
    assert result["success"], result
    return result["data"]


@pytest.fixture
def next_year(school_id, current_year):
    result = academic_years.create_academic_year(school_id, "2024-25", date(2024, 6, 1), date(2025, 5, 31))
    assert result["success"], result
    return result["data"]


@pytest.fixture
def school_class(school_id, current_year):
    result = catalog.create_class(school_id, current_year["id"], "Grade 5", capacity=30)
    assert result["success"], result
    return result["data"]


@pytest.fixture
def next_class(school_id, next_year):
    result = catalog.create_class(school_id, next_year["id"], "Grade 6", capacity=30)
    assert result["success"], result
    return result["data"]


@pytest.fixture
def subjects(school_id, school_class):
    created = []
    for name, code in (("Mathematics", "MATH"), ("Science", "SCI")):
        result = catalog.create_subject(school_id, name, code, school_class["id"])
        assert result["success"], result
        created.append(result["data"])
    return created


@pytest.fixture
def make_student(school_id, school_class, current_year):
    counter = {"n": 0}

    def _make(first_name="Sam", last_name="Student", **kwargs):
        counter["n"] += 1
        kwargs.setdefault("admission_number", f"ADM-{counter['n']:03d}")
        result = students.create_student(
            school_id,
            kwargs.pop("class_id", school_class["id"]),
            kwargs.pop("academic_year_id", current_year["id"]),
            kwargs.pop("admission_number"),
            first_name,
            last_name,
            **kwargs,
        )
        assert result["success"], result
        return result["data"]

    return _make
