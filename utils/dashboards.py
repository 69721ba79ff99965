# utils/dashboards.py
# Read-side views for each role. Every function takes the database session
# (`store`) and the caller's decoded Session, and only returns rows the
# caller owns: a student's own records, a parent's children, a teacher's
# subjects.

from models import (
    Attendance, AttendanceStatus, Grade, Parent, Payment, Person, Registration,
    Role, SchoolClass, Student, Subject, Teacher
)
from utils.errors import Forbidden, NotFound

STUDENT_ATTENDANCE_LIMIT = 20
TEACHER_RECENT_LIMIT = 50
ATTENDANCE_HISTORY_LIMIT = 200

# Prefix -> canonical ClassLevel. Checked in order.
CLASS_LEVEL_PREFIXES = [
    (("JSS1",), "JSS1"),
    (("JSS2",), "JSS2"),
    (("JSS3",), "JSS3"),
    (("SS1", "SSS1"), "SSS1"),
    (("SS2", "SSS2"), "SSS2"),
    (("SS3", "SSS3"), "SSS3"),
]


def normalize_class_level(class_name):
    """Maps a free-text class name ('JSS1 Gold', 'SS2A') to the ClassLevel subjects are filed under."""
    if not class_name:
        return class_name
    for prefixes, level in CLASS_LEVEL_PREFIXES:
        if class_name.startswith(prefixes):
            return level
    return class_name

# --- Profile lookups ---

def get_student_profile(store, session):
    student = store.get(Student, session.person_id)
    if student is None:
        raise NotFound("Student profile not found")
    return student


def get_teacher_profile(store, session):
    teacher = store.get(Teacher, session.person_id)
    if teacher is None:
        raise NotFound("Teacher profile not found")
    return teacher


def get_parent_profile(store, session):
    parent = store.get(Parent, session.person_id)
    if parent is None:
        raise NotFound("Parent profile not found")
    return parent

# --- Shaping helpers ---

def person_map(store, person_ids):
    """One query for all the names a view needs, keyed by PersonID."""
    ids = set(person_ids)
    if not ids:
        return {}
    return {p.person_id: p for p in store.query(Person).filter(Person.person_id.in_(ids)).all()}


def teacher_summary(teacher):
    person = teacher.person if teacher else None
    return {
        "TeacherID": teacher.teacher_id if teacher else None,
        "FirstName": person.first_name if person else None,
        "LastName": person.last_name if person else None,
    }


def subject_with_teacher(subject):
    data = subject.to_dict()
    data["teacher"] = teacher_summary(subject.teacher)
    return data


def student_with_names(student, people):
    person = people.get(student.admission_number)
    data = student.to_dict()
    data["FirstName"] = person.first_name if person else ""
    data["LastName"] = person.last_name if person else ""
    data["FullName"] = person.full_name if person else student.admission_number
    data["Class"] = student.school_class.to_dict() if student.school_class else None
    return data


def teacher_with_names(teacher, people):
    person = people.get(teacher.teacher_id)
    data = teacher.to_dict()
    data["FirstName"] = person.first_name if person else ""
    data["LastName"] = person.last_name if person else ""
    data["FullName"] = person.full_name if person else teacher.teacher_id
    data["subjects"] = [s.to_dict() for s in sorted(teacher.subjects, key=lambda s: s.subject_id)]
    return data


def student_names(student_id, people):
    person = people.get(student_id)
    return {
        "AdmissionNumber": student_id,
        "FirstName": person.first_name if person else "",
        "LastName": person.last_name if person else "",
    }


def record_with_names(record, people):
    """Grade or attendance row joined out to student and subject display names."""
    person = people.get(record.student_id)
    subject_name = record.subject.subject_name if record.subject else "Unknown Subject"
    data = record.to_dict()
    data["StudentName"] = person.full_name if person else "Unknown Student"
    data["SubjectName"] = subject_name
    data["Student"] = student_names(record.student_id, people)
    data["Subject"] = {"SubjectName": subject_name}
    return data


def attendance_with_names(record, people):
    data = record_with_names(record, people)
    data["Status"] = "Present" if record.status is AttendanceStatus.PRESENT else "Absent"
    return data


def registered_students(store, subject_ids):
    """
    Students registered in any of `subject_ids`, one entry per student.

    The first registration seen for a student wins; order follows the
    registrations as returned by the store.
    """
    if not subject_ids:
        return []
    registrations = store.query(Registration).filter(Registration.subject_id.in_(subject_ids)).all()
    unique = {}
    for registration in registrations:
        if registration.student is not None:
            unique.setdefault(registration.student.admission_number, registration.student)
    return list(unique.values())


def _owned_subjects(store, teacher):
    return store.query(Subject).filter_by(teacher_id=teacher.teacher_id).order_by(Subject.subject_name).all()


def _children(store, parent):
    return store.query(Student).filter_by(parent_id=parent.parent_id).order_by(Student.admission_number).all()

# --- Dashboards ---

def student_dashboard(store, session):
    student = get_student_profile(store, session)
    person = store.get(Person, student.admission_number)
    school_class = student.school_class

    grades = (store.query(Grade)
              .filter_by(student_id=student.admission_number)
              .order_by(Grade.term.desc(), Grade.grade_id)
              .all())
    attendance = (store.query(Attendance)
                  .filter_by(student_id=student.admission_number)
                  .order_by(Attendance.date.desc(), Attendance.attendance_id.desc())
                  .limit(STUDENT_ATTENDANCE_LIMIT)
                  .all())
    payments = (store.query(Payment)
                .filter_by(student_id=student.admission_number)
                .order_by(Payment.payment_date.desc(), Payment.transaction_id.desc())
                .all())
    registrations = (store.query(Registration)
                     .join(Subject, Registration.subject_id == Subject.subject_id)
                     .filter(Registration.student_id == student.admission_number)
                     .order_by(Subject.subject_name, Registration.registration_id)
                     .all())

    class_level = normalize_class_level(school_class.class_name if school_class else None)
    registered_ids = {r.subject_id for r in registrations}
    offered = (store.query(Subject)
               .filter_by(class_level=class_level)
               .order_by(Subject.subject_name, Subject.subject_id)
               .all())
    available = [subject_with_teacher(s) for s in offered if s.subject_id not in registered_ids]

    formatted_grades = []
    for grade in grades:
        data = grade.to_dict()
        data["subject"] = {"SubjectName": grade.subject.subject_name if grade.subject else None}
        formatted_grades.append(data)

    formatted_attendance = []
    for record in attendance:
        data = record.to_dict()
        data["Status"] = record.status.value
        data["subject"] = {"SubjectName": record.subject.subject_name if record.subject else None}
        formatted_attendance.append(data)

    formatted_registrations = []
    for registration in registrations:
        data = registration.to_dict()
        data["subject"] = {
            "SubjectName": registration.subject.subject_name,
            "ClassLevel": registration.subject.class_level,
            "teacher": teacher_summary(registration.subject.teacher),
        }
        formatted_registrations.append(data)

    profile = student.to_dict()
    profile["Class"] = school_class.to_dict() if school_class else None
    return {
        "user": {
            "PersonID": person.person_id if person else student.admission_number,
            "name": person.full_name if person else "",
            "studentProfile": profile,
        },
        "grades": formatted_grades,
        "attendance": formatted_attendance,
        "payments": [p.to_dict() for p in payments],
        "registeredSubjects": formatted_registrations,
        "availableSubjects": available,
    }


def teacher_dashboard(store, session):
    teacher = get_teacher_profile(store, session)
    subjects = _owned_subjects(store, teacher)
    subject_ids = [s.subject_id for s in subjects]

    students = store.query(Student).order_by(Student.admission_number).all()

    grades = []
    attendance = []
    if subject_ids:
        grades = (store.query(Grade)
                  .filter(Grade.subject_id.in_(subject_ids))
                  .order_by(Grade.term.desc(), Grade.grade_id.desc())
                  .limit(TEACHER_RECENT_LIMIT)
                  .all())
        attendance = (store.query(Attendance)
                      .filter(Attendance.subject_id.in_(subject_ids))
                      .order_by(Attendance.date.desc(), Attendance.attendance_id.desc())
                      .limit(TEACHER_RECENT_LIMIT)
                      .all())

    people = person_map(store, [teacher.teacher_id]
                        + [s.admission_number for s in students]
                        + [g.student_id for g in grades]
                        + [a.student_id for a in attendance])
    person = people.get(teacher.teacher_id)

    return {
        "user": {
            "PersonID": teacher.teacher_id,
            "name": person.full_name if person else "",
            "teacherProfile": teacher.to_dict(),
        },
        "subjects": [subject_with_teacher(s) for s in subjects],
        "students": [student_with_names(s, people) for s in students],
        "grades": [record_with_names(g, people) for g in grades],
        "attendance": [attendance_with_names(a, people) for a in attendance],
    }


def parent_dashboard(store, session):
    parent = get_parent_profile(store, session)
    children = _children(store, parent)
    child_ids = [c.admission_number for c in children]

    grades = []
    attendance = []
    payments = []
    if child_ids:
        grades = (store.query(Grade)
                  .filter(Grade.student_id.in_(child_ids))
                  .order_by(Grade.term.desc(), Grade.grade_id)
                  .all())
        attendance = (store.query(Attendance)
                      .filter(Attendance.student_id.in_(child_ids))
                      .order_by(Attendance.date.desc(), Attendance.attendance_id.desc())
                      .limit(ATTENDANCE_HISTORY_LIMIT)
                      .all())
        payments = (store.query(Payment)
                    .filter(Payment.student_id.in_(child_ids))
                    .order_by(Payment.payment_date.desc(), Payment.transaction_id.desc())
                    .all())

    people = person_map(store, [parent.parent_id] + child_ids)
    person = people.get(parent.parent_id)

    def with_relations(record):
        data = record.to_dict()
        data["student"] = student_names(record.student_id, people)
        data["subject"] = record.subject.to_dict() if record.subject else None
        return data

    return {
        "user": {
            "PersonID": parent.parent_id,
            "name": person.full_name if person else "",
            "parentProfile": parent.to_dict(),
        },
        "children": [student_with_names(c, people) for c in children],
        "grades": [with_relations(g) for g in grades],
        "attendance": [with_relations(a) for a in attendance],
        "payments": [p.to_dict() for p in payments],
    }

# --- Narrower teacher views ---

def teacher_students(store, session):
    teacher = get_teacher_profile(store, session)
    subject_ids = [s.subject_id for s in _owned_subjects(store, teacher)]
    students = registered_students(store, subject_ids)
    people = person_map(store, [s.admission_number for s in students])
    classes = store.query(SchoolClass).order_by(SchoolClass.class_name).all()
    return {
        "students": [student_with_names(s, people) for s in students],
        "classes": [c.to_dict() for c in classes],
    }


def teacher_subjects(store, session):
    teacher = get_teacher_profile(store, session)
    subjects = _owned_subjects(store, teacher)
    all_subjects = store.query(Subject).order_by(Subject.subject_name, Subject.subject_id).all()
    return {
        "subjects": [subject_with_teacher(s) for s in subjects],
        "allSubjects": [subject_with_teacher(s) for s in all_subjects],
    }


def teacher_attendance(store, session):
    teacher = get_teacher_profile(store, session)
    subjects = _owned_subjects(store, teacher)
    subject_ids = [s.subject_id for s in subjects]
    students = registered_students(store, subject_ids)

    attendance = []
    if subject_ids:
        attendance = (store.query(Attendance)
                      .filter(Attendance.subject_id.in_(subject_ids))
                      .order_by(Attendance.date.desc(), Attendance.attendance_id.desc())
                      .limit(ATTENDANCE_HISTORY_LIMIT)
                      .all())

    people = person_map(store, [s.admission_number for s in students] + [a.student_id for a in attendance])
    return {
        "attendance": [attendance_with_names(a, people) for a in attendance],
        "students": [student_with_names(s, people) for s in students],
        "subjects": [s.to_dict() for s in subjects],
    }


def teacher_grades(store, session):
    teacher = get_teacher_profile(store, session)
    subjects = _owned_subjects(store, teacher)
    subject_ids = [s.subject_id for s in subjects]
    students = registered_students(store, subject_ids)

    grades = []
    if subject_ids:
        grades = (store.query(Grade)
                  .filter(Grade.subject_id.in_(subject_ids))
                  .order_by(Grade.term.desc(), Grade.student_id, Grade.grade_id)
                  .all())

    people = person_map(store, [s.admission_number for s in students] + [g.student_id for g in grades])
    return {
        "grades": [record_with_names(g, people) for g in grades],
        "students": [student_with_names(s, people) for s in students],
        "subjects": [s.to_dict() for s in subjects],
    }

# --- Collection views used by the CRUD endpoints ---

def list_classes(store):
    return [c.to_dict() for c in store.query(SchoolClass).order_by(SchoolClass.class_name).all()]


def list_students(store):
    students = store.query(Student).order_by(Student.admission_number).all()
    people = person_map(store, [s.admission_number for s in students])
    return {
        "students": [student_with_names(s, people) for s in students],
        "classes": list_classes(store),
    }


def list_teachers(store):
    teachers = store.query(Teacher).order_by(Teacher.teacher_id).all()
    people = person_map(store, [t.teacher_id for t in teachers])
    return [teacher_with_names(t, people) for t in teachers]


def list_subjects(store, session):
    if session.role is Role.TEACHER:
        teacher = get_teacher_profile(store, session)
        subjects = _owned_subjects(store, teacher)
    else:
        subjects = store.query(Subject).order_by(Subject.subject_name, Subject.subject_id).all()
    return [subject_with_teacher(s) for s in subjects]


def list_registrations(store, session):
    if session.role is Role.STUDENT:
        student = get_student_profile(store, session)
        registrations = (store.query(Registration)
                         .filter_by(student_id=student.admission_number)
                         .order_by(Registration.registration_id)
                         .all())
        result = []
        for registration in registrations:
            data = registration.to_dict()
            data["Subject"] = subject_with_teacher(registration.subject)
            result.append(data)
        return result

    if session.role is Role.TEACHER:
        teacher = get_teacher_profile(store, session)
        subject_ids = [s.subject_id for s in _owned_subjects(store, teacher)]
        if not subject_ids:
            return []
        registrations = (store.query(Registration)
                         .filter(Registration.subject_id.in_(subject_ids))
                         .order_by(Registration.registration_id)
                         .all())
        people = person_map(store, [r.student_id for r in registrations])
        result = []
        for registration in registrations:
            data = registration.to_dict()
            data["Student"] = student_names(registration.student_id, people)
            data["Subject"] = registration.subject.to_dict()
            result.append(data)
        return result

    raise Forbidden()


def _scoped_student_ids(store, session):
    """AdmissionNumbers whose records the caller may read; None means every student."""
    if session.role is Role.STUDENT:
        return [get_student_profile(store, session).admission_number]
    if session.role is Role.PARENT:
        return [c.admission_number for c in _children(store, get_parent_profile(store, session))]
    return None


def list_grades(store, session):
    query = store.query(Grade)
    if session.role is Role.TEACHER:
        subject_ids = [s.subject_id for s in _owned_subjects(store, get_teacher_profile(store, session))]
        query = query.filter(Grade.subject_id.in_(subject_ids))
    else:
        query = query.filter(Grade.student_id.in_(_scoped_student_ids(store, session)))
    grades = query.order_by(Grade.term.desc(), Grade.student_id, Grade.grade_id).all()
    people = person_map(store, [g.student_id for g in grades])
    return [record_with_names(g, people) for g in grades]


def list_attendance(store, session):
    query = store.query(Attendance)
    if session.role is Role.TEACHER:
        subject_ids = [s.subject_id for s in _owned_subjects(store, get_teacher_profile(store, session))]
        query = query.filter(Attendance.subject_id.in_(subject_ids))
    else:
        query = query.filter(Attendance.student_id.in_(_scoped_student_ids(store, session)))
    records = query.order_by(Attendance.date.desc(), Attendance.student_id, Attendance.attendance_id).all()
    people = person_map(store, [a.student_id for a in records])
    return [attendance_with_names(a, people) for a in records]


def list_payments(store, session):
    query = store.query(Payment)
    student_ids = _scoped_student_ids(store, session)
    if student_ids is not None:
        query = query.filter(Payment.student_id.in_(student_ids))
    payments = query.order_by(Payment.payment_date.desc(), Payment.transaction_id.desc()).all()
    return [p.to_dict() for p in payments]


def demo_users(store, per_role=3):
    """A few loginable accounts per role, for the login page."""
    users = []
    for teacher in store.query(Teacher).order_by(Teacher.teacher_id).limit(per_role).all():
        users.append({**teacher.person.to_dict(), "role": Role.TEACHER.value})
    for parent in store.query(Parent).order_by(Parent.parent_id).limit(per_role).all():
        users.append({**parent.person.to_dict(), "role": Role.PARENT.value})
    students = store.query(Student).order_by(Student.admission_number).limit(per_role).all()
    people = person_map(store, [s.admission_number for s in students])
    for student in students:
        person = people.get(student.admission_number)
        if person is not None:
            users.append({**person.to_dict(), "role": Role.STUDENT.value})
    return users
