import os
import re

import pytest
from sqlalchemy.exc import IntegrityError

from app import create_app
from models import db, Payment, Person, Student
from utils.csv_tools import load_data_from_csv
from utils.identifiers import (
    generate_class_id, generate_registration_id, generate_student_id, generate_subject_id,
    generate_teacher_id
)

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")


@pytest.fixture
def empty_app():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite://"})
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


def test_seed_report_counts_rows(empty_app):
    with empty_app.app_context():
        report = load_data_from_csv(db.session, DATA_DIR)
        assert report["persons"] == 9
        assert report["students"] == 4
        assert report["subjects"] == 6
        assert db.session.get(Student, "ABS024").parent_id is None
        assert db.session.get(Student, "ABS021").gender == "F"
        amounts = {p.student_id: float(p.amount) for p in db.session.query(Payment).all()}
        assert amounts["ABS023"] == 60000.0


def test_seed_skips_missing_files(empty_app, tmp_path):
    (tmp_path / "persons.csv").write_text("PersonID,FirstName,LastName\nS1,Sade,Ade\n")
    with empty_app.app_context():
        assert load_data_from_csv(db.session, str(tmp_path)) == {"persons": 1}


def test_seed_failure_writes_nothing(empty_app, tmp_path):
    (tmp_path / "persons.csv").write_text("PersonID,FirstName,LastName\nS1,Sade,Ade\n")
    (tmp_path / "students.csv").write_text(
        "AdmissionNumber,DateOfBirth,Gender,ParentID,StudentClassID,ParentContact,Address\n"
        "S1,2012-01-01,F,,no-such-class,,\n"
    )
    with empty_app.app_context():
        with pytest.raises(IntegrityError):
            load_data_from_csv(db.session, str(tmp_path))
        assert db.session.query(Person).count() == 0


def test_init_db_command(empty_app):
    runner = empty_app.test_cli_runner()
    result = runner.invoke(args=["init-db"])
    assert result.exit_code == 0
    assert "Database initialized successfully" in result.output


@pytest.mark.parametrize("generate, pattern", [
    (generate_student_id, r"AB\d{2}0\d{3}"),
    (generate_subject_id, r"SUB\d{5}"),
    (generate_registration_id, r"REG\d{7}"),
    (generate_class_id, r"CLS\d{5}"),
    (generate_teacher_id, r"TCH\d{5}"),
])
def test_generated_identifier_shapes(generate, pattern):
    assert re.fullmatch(pattern, generate())
