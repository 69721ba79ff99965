import pytest

from utils.dashboards import normalize_class_level


@pytest.mark.parametrize("class_name, level", [
    ("JSS1 Gold", "JSS1"),
    ("JSS2", "JSS2"),
    ("JSS3B", "JSS3"),
    ("SS1 Science", "SSS1"),
    ("SSS1", "SSS1"),
    ("SS2A", "SSS2"),
    ("SSS3 Arts", "SSS3"),
    ("Primary 6", "Primary 6"),
    (None, None),
])
def test_normalize_class_level(class_name, level):
    assert normalize_class_level(class_name) == level


def subject_ids(items, key="SubjectID"):
    return {item[key] for item in items}


def test_student_dashboard_is_idempotent(student):
    first = student.get("/api/student/dashboard")
    second = student.get("/api/student/dashboard")
    assert first.status_code == 200
    assert first.get_json() == second.get_json()


def test_student_dashboard_splits_registered_and_available(student):
    data = student.get("/api/student/dashboard").get_json()
    registered = subject_ids(data["registeredSubjects"])
    available = subject_ids(data["availableSubjects"])

    assert registered == {"SUB001", "SUB002"}
    assert available == {"SUB010"}
    assert not registered & available
    assert data["user"]["PersonID"] == "ABS022"
    assert data["user"]["studentProfile"]["Class"]["ClassName"] == "JSS1 Gold"


def test_student_dashboard_shapes_records(student):
    data = student.get("/api/student/dashboard").get_json()
    assert {g["subject"]["SubjectName"] for g in data["grades"]} == {"Mathematics", "English Language"}
    assert {a["Status"] for a in data["attendance"]} <= {"Present", "Absent"}
    assert all(p["StudentID"] == "ABS022" for p in data["payments"])
    names = [r["subject"]["SubjectName"] for r in data["registeredSubjects"]]
    assert names == sorted(names)
    assert data["registeredSubjects"][0]["subject"]["teacher"]["TeacherID"] in {"T001", "T002"}


def test_registering_moves_subject_from_available_to_registered(student):
    response = student.post("/api/registrations", json={"subjectId": "SUB010"})
    assert response.status_code == 201
    registration = response.get_json()["registration"]
    assert registration["StudentID"] == "ABS022"
    assert registration["Term"] == "1st Term"
    assert registration["Subject"]["teacher"]["TeacherID"] == "T001"

    data = student.get("/api/student/dashboard").get_json()
    assert "SUB010" in subject_ids(data["registeredSubjects"])
    assert "SUB010" not in subject_ids(data["availableSubjects"])


def test_senior_class_name_maps_to_senior_subjects(login):
    data = login("ABS023").get("/api/student/dashboard").get_json()
    # ABS023 sits in "SS1 Science" and is registered for both SSS1 subjects.
    assert subject_ids(data["registeredSubjects"]) == {"SUB020", "SUB021"}
    assert data["availableSubjects"] == []


def test_teacher_dashboard_only_shows_own_subjects(teacher):
    data = teacher.get("/api/teacher/dashboard").get_json()
    own = {"SUB001", "SUB010", "SUB021"}
    assert subject_ids(data["subjects"]) == own
    assert subject_ids(data["grades"]) <= own
    assert subject_ids(data["attendance"]) <= own
    assert data["user"]["name"] == "John Smith"


def test_teacher_grades_exclude_other_teachers_subjects(teacher):
    data = teacher.get("/api/teacher/grades").get_json()
    assert data["grades"]
    assert subject_ids(data["grades"]) <= {"SUB001", "SUB010", "SUB021"}
    assert all(g["StudentName"] != "Unknown Student" for g in data["grades"])


def test_teacher_students_are_unique(teacher):
    students = teacher.get("/api/teacher/students").get_json()["students"]
    ids = [s["AdmissionNumber"] for s in students]
    assert sorted(ids) == ["ABS021", "ABS022", "ABS023"]


def test_teacher_subjects_lists_own_and_all(teacher):
    data = teacher.get("/api/teacher/subjects").get_json()
    assert subject_ids(data["subjects"]) == {"SUB001", "SUB010", "SUB021"}
    assert len(data["allSubjects"]) == 6


def test_teacher_attendance_maps_status(teacher):
    data = teacher.get("/api/teacher/attendance").get_json()
    assert {a["Status"] for a in data["attendance"]} == {"Present", "Absent"}


def test_parent_dashboard_covers_only_children(parent):
    data = parent.get("/api/parent/dashboard").get_json()
    children = {c["AdmissionNumber"] for c in data["children"]}
    assert children == {"ABS021", "ABS022"}
    assert {g["StudentID"] for g in data["grades"]} <= children
    assert {p["StudentID"] for p in data["payments"]} <= children
    assert data["grades"][0]["student"]["AdmissionNumber"] in children
    assert data["grades"][0]["subject"]["SubjectName"]


def test_each_parent_sees_their_own_child(login):
    data = login("P002").get("/api/parent/dashboard").get_json()
    assert [c["AdmissionNumber"] for c in data["children"]] == ["ABS023"]
    assert [p["StudentID"] for p in data["payments"]] == ["ABS023"]


def test_collection_reads_are_scoped(student, parent, teacher):
    assert {g["StudentID"] for g in student.get("/api/grades").get_json()["grades"]} == {"ABS022"}
    assert {p["StudentID"] for p in parent.get("/api/payments").get_json()["payments"]} == {"ABS021", "ABS022"}
    assert subject_ids(teacher.get("/api/attendance").get_json()["attendance"]) <= {"SUB001", "SUB010", "SUB021"}
    assert subject_ids(teacher.get("/api/subjects").get_json()["subjects"]) == {"SUB001", "SUB010", "SUB021"}
    assert len(student.get("/api/subjects").get_json()["subjects"]) == 6
