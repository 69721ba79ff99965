# utils/identifiers.py
# Client-side identifiers: prefix + two-digit year + random digits.
# Uniqueness comes from the primary key; a collision rolls back and retries.

import random
from datetime import date

from sqlalchemy.exc import IntegrityError

from utils.errors import Conflict


def _year_suffix():
    return str(date.today().year)[-2:]


def generate_student_id():
    return f"AB{_year_suffix()}0{random.randint(100, 999)}"


def generate_subject_id():
    return f"SUB{_year_suffix()}{random.randint(100, 999)}"


def generate_registration_id():
    return f"REG{_year_suffix()}{random.randint(10000, 99999)}"


def generate_class_id():
    return f"CLS{_year_suffix()}{random.randint(100, 999)}"


def generate_teacher_id():
    return f"TCH{_year_suffix()}{random.randint(100, 999)}"


def insert_with_unique_id(store, build, generate, attempts, label="record", on_conflict=None):
    """
    Inserts the rows returned by `build(candidate_id)` and commits them together.

    `build` must return every row that shares the identifier (e.g. the Person
    and the Student for a new admission). On an IntegrityError the whole unit
    is rolled back and retried with a fresh candidate. `on_conflict`, if given,
    runs after each rollback and may raise to stop retrying when the violation
    is not an identifier collision.

    Returns:
        The identifier that committed.
    """
    last_error = None
    for _ in range(attempts):
        candidate = generate()
        rows = build(candidate)
        try:
            for row in rows:
                store.add(row)
                store.flush()
            store.commit()
            return candidate
        except IntegrityError as e:
            store.rollback()
            last_error = e
            if on_conflict is not None:
                on_conflict(e)
    raise Conflict(f"Could not allocate a unique {label} ID after {attempts} attempts") from last_error
