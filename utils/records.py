# utils/records.py
# Write operations. Each one checks the rows it references, performs the
# write as a single transaction and returns the aggregate the API sends back.

from contextlib import contextmanager
from datetime import date

from sqlalchemy.exc import IntegrityError

from models import (
    Attendance, AttendanceStatus, Grade, Parent, Payment, PaymentMethod, Person,
    Registration, SchoolClass, Student, Subject, Teacher
)
from utils.dashboards import (
    person_map, student_names, student_with_names, subject_with_teacher, teacher_with_names
)
from utils.errors import Conflict, Forbidden, NotFound, ValidationError
from utils.identifiers import (
    generate_class_id, generate_registration_id, generate_student_id,
    generate_subject_id, generate_teacher_id, insert_with_unique_id
)

DEFAULT_TERM = "1st Term"


@contextmanager
def atomic(store):
    """Commits on success; rolls the whole unit back on any error."""
    try:
        yield
        store.commit()
    except Exception:
        store.rollback()
        raise


def normalize_gender(value):
    if not value:
        return None
    return "M" if value in ("Male", "M") else "F"


def normalize_status(value):
    key = str(value).strip().upper()
    if key in ("PRESENT", "1"):
        return AttendanceStatus.PRESENT
    if key in ("ABSENT", "0"):
        return AttendanceStatus.ABSENT
    raise ValidationError("Status must be PRESENT or ABSENT")


def calculate_grade_letter(total_score):
    if total_score >= 90: return "A"
    if total_score >= 80: return "B"
    if total_score >= 70: return "C"
    if total_score >= 60: return "D"
    return "F"


def _require_class(store, class_id):
    if store.get(SchoolClass, class_id) is None:
        raise NotFound(f"Class ID {class_id} does not exist. Please use a valid class ID.")


def _require_parent(store, parent_id):
    if store.get(Parent, parent_id) is None:
        raise NotFound(f"Parent {parent_id} not found")


def _require_student(store, student_id):
    student = store.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    return student


def _student_aggregate(store, student):
    return student_with_names(student, person_map(store, [student.admission_number]))

# --- Students ---

def create_student(store, data, attempts):
    """
    Admits a new student: a Person row and a Student row sharing a generated ID.

    Both rows commit together or not at all. A generated ID that is already
    taken is rejected by the primary key and replaced with a fresh one.
    """
    class_id = data.get("StudentClassID")
    if class_id:
        _require_class(store, class_id)
    else:
        first_class = store.query(SchoolClass).order_by(SchoolClass.class_id).first()
        if first_class is None:
            raise NotFound("No class exists to place the student in")
        class_id = first_class.class_id
    if data.get("ParentID"):
        _require_parent(store, data["ParentID"])

    def build(student_id):
        person = Person(person_id=student_id, first_name=data["FirstName"], last_name=data["LastName"])
        student = Student(
            admission_number=student_id,
            date_of_birth=data.get("DateOfBirth"),
            gender=normalize_gender(data.get("Gender")),
            parent_id=data.get("ParentID") or None,
            class_id=class_id,
            parent_contact=data.get("ParentContact"),
            address=data.get("Address"),
        )
        return [person, student]

    student_id = insert_with_unique_id(store, build, generate_student_id, attempts, label="student")
    return _student_aggregate(store, store.get(Student, student_id))


def update_student(store, data):
    student = store.get(Student, data["admissionNumber"])
    if student is None:
        raise NotFound("Student not found")
    if data.get("StudentClassID"):
        _require_class(store, data["StudentClassID"])
    if data.get("ParentID"):
        _require_parent(store, data["ParentID"])

    with atomic(store):
        person = store.get(Person, student.admission_number)
        if person is None:
            raise NotFound("Student person record not found")
        if "FirstName" in data:
            person.first_name = data["FirstName"]
        if "LastName" in data:
            person.last_name = data["LastName"]
        if "DateOfBirth" in data:
            student.date_of_birth = data["DateOfBirth"]
        if "Gender" in data:
            student.gender = normalize_gender(data["Gender"])
        if "ParentContact" in data:
            student.parent_contact = data["ParentContact"]
        if "Address" in data:
            student.address = data["Address"]
        if "StudentClassID" in data:
            student.class_id = data["StudentClassID"]
        if "ParentID" in data:
            student.parent_id = data["ParentID"]
    return _student_aggregate(store, student)


def _backs_profile(store, person_id, models):
    return any(store.get(model, person_id) is not None for model in models)


def delete_student(store, admission_number):
    """
    Removes a student with their attendance, grades, payments and
    registrations, then the Person row, in one transaction.

    The Person row stays if it also backs a teacher or parent profile.
    """
    _require_student(store, admission_number)
    with atomic(store):
        for model in (Attendance, Grade, Payment, Registration):
            store.query(model).filter_by(student_id=admission_number).delete(synchronize_session=False)
        store.query(Student).filter_by(admission_number=admission_number).delete()
        if not _backs_profile(store, admission_number, (Teacher, Parent)):
            store.query(Person).filter_by(person_id=admission_number).delete()

# --- Teachers ---

def _teacher_aggregate(store, teacher_id):
    return teacher_with_names(store.get(Teacher, teacher_id), person_map(store, [teacher_id]))


def create_teacher(store, data, attempts):
    """Adds a Person and a Teacher row sharing one ID, committed together."""
    def build(teacher_id):
        person = Person(person_id=teacher_id, first_name=data["FirstName"], last_name=data["LastName"])
        teacher = Teacher(teacher_id=teacher_id, phone_num=data["PhoneNum"], email=data["Email"])
        return [person, teacher]

    if data.get("TeacherID"):
        try:
            with atomic(store):
                for row in build(data["TeacherID"]):
                    store.add(row)
                    store.flush()
        except IntegrityError as e:
            raise Conflict(f"Teacher ID {data['TeacherID']} already exists") from e
        teacher_id = data["TeacherID"]
    else:
        teacher_id = insert_with_unique_id(store, build, generate_teacher_id, attempts, label="teacher")
    return _teacher_aggregate(store, teacher_id)


def _require_teacher(store, teacher_id):
    teacher = store.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFound("Teacher not found")
    return teacher


def update_teacher(store, teacher_id, data):
    teacher = _require_teacher(store, teacher_id)
    with atomic(store):
        person = store.get(Person, teacher_id)
        if person is None:
            raise NotFound("Teacher person record not found")
        if "FirstName" in data:
            person.first_name = data["FirstName"]
        if "LastName" in data:
            person.last_name = data["LastName"]
        if "Email" in data:
            teacher.email = data["Email"]
        if "PhoneNum" in data:
            teacher.phone_num = data["PhoneNum"]
    return _teacher_aggregate(store, teacher_id)


def delete_teacher(store, teacher_id):
    _require_teacher(store, teacher_id)
    if store.query(Subject).filter_by(teacher_id=teacher_id).count() > 0:
        raise Conflict("Cannot delete a teacher who still teaches subjects. Reassign or delete their subjects first.")
    with atomic(store):
        store.query(Teacher).filter_by(teacher_id=teacher_id).delete()
        if not _backs_profile(store, teacher_id, (Parent, Student)):
            store.query(Person).filter_by(person_id=teacher_id).delete()

# --- Classes ---

def create_class(store, data, attempts):
    def build(class_id):
        return [SchoolClass(class_id=class_id, class_name=data["ClassName"])]

    if data.get("ClassID"):
        try:
            with atomic(store):
                store.add(build(data["ClassID"])[0])
        except IntegrityError as e:
            raise Conflict(f"Class ID {data['ClassID']} already exists") from e
        class_id = data["ClassID"]
    else:
        class_id = insert_with_unique_id(store, build, generate_class_id, attempts, label="class")
    return store.get(SchoolClass, class_id).to_dict()


def update_class(store, class_id, data):
    school_class = store.get(SchoolClass, class_id)
    if school_class is None:
        raise NotFound("Class not found")
    with atomic(store):
        if "ClassName" in data:
            school_class.class_name = data["ClassName"]
    return school_class.to_dict()


def delete_class(store, class_id):
    school_class = store.get(SchoolClass, class_id)
    if school_class is None:
        raise NotFound("Class not found")
    if school_class.students.count() > 0:
        raise Conflict("Cannot delete class with enrolled students. Please move students to another class first.")
    try:
        with atomic(store):
            store.delete(school_class)
    except IntegrityError as e:
        # A student was placed in the class after the count above.
        raise Conflict("Cannot delete class with enrolled students. Please move students to another class first.") from e

# --- Subjects ---

def _owned_subject(store, teacher, subject_id):
    subject = store.get(Subject, subject_id) if subject_id else None
    if subject is None or subject.teacher_id != teacher.teacher_id:
        return None
    return subject


def create_subject(store, teacher, data, attempts):
    def build(subject_id):
        return [Subject(
            subject_id=subject_id,
            subject_name=data["SubjectName"],
            class_level=data["ClassLevel"],
            teacher_id=teacher.teacher_id,
        )]

    if data.get("SubjectID"):
        try:
            with atomic(store):
                store.add(build(data["SubjectID"])[0])
        except IntegrityError as e:
            raise Conflict(f"Subject ID {data['SubjectID']} already exists") from e
        subject_id = data["SubjectID"]
    else:
        subject_id = insert_with_unique_id(store, build, generate_subject_id, attempts, label="subject")
    return subject_with_teacher(store.get(Subject, subject_id))


def update_subject(store, teacher, subject_id, data):
    subject = _owned_subject(store, teacher, subject_id)
    if subject is None:
        raise NotFound("Subject not found or access denied")
    with atomic(store):
        if "SubjectName" in data:
            subject.subject_name = data["SubjectName"]
        if "ClassLevel" in data:
            subject.class_level = data["ClassLevel"]
    return subject_with_teacher(subject)


def delete_subject(store, teacher, subject_id):
    """Removes a subject together with its registrations, grades and attendance."""
    subject = _owned_subject(store, teacher, subject_id)
    if subject is None:
        raise NotFound("Subject not found or access denied")
    with atomic(store):
        store.query(Registration).filter_by(subject_id=subject_id).delete(synchronize_session=False)
        store.query(Grade).filter_by(subject_id=subject_id).delete(synchronize_session=False)
        store.query(Attendance).filter_by(subject_id=subject_id).delete(synchronize_session=False)
        store.delete(subject)

# --- Registrations ---

def create_registration(store, student, data, attempts):
    subject = store.get(Subject, data["subjectId"])
    if subject is None:
        raise NotFound("Subject not found")
    term = DEFAULT_TERM

    def build(registration_id):
        return [Registration(
            registration_id=registration_id,
            student_id=student.admission_number,
            subject_id=subject.subject_id,
            term=term,
        )]

    def already_registered(error):
        existing = (store.query(Registration)
                    .filter_by(student_id=student.admission_number, subject_id=subject.subject_id, term=term)
                    .first())
        if existing is not None:
            raise Conflict("Already registered for this subject") from error

    registration_id = insert_with_unique_id(
        store, build, generate_registration_id, attempts,
        label="registration", on_conflict=already_registered,
    )
    registration = store.get(Registration, registration_id)
    data = registration.to_dict()
    data["Subject"] = subject_with_teacher(registration.subject)
    return data


def delete_registration(store, student, registration_id):
    registration = store.get(Registration, registration_id)
    if registration is None or registration.student_id != student.admission_number:
        raise NotFound("Registration not found or access denied")
    with atomic(store):
        store.delete(registration)

# --- Grades ---

def _grade_aggregate(store, grade):
    data = grade.to_dict()
    data["Student"] = student_names(grade.student_id, person_map(store, [grade.student_id]))
    data["Subject"] = grade.subject.to_dict()
    return data


def create_grade(store, teacher, data):
    subject = _owned_subject(store, teacher, data["SubjectID"])
    if subject is None:
        raise Forbidden("Access denied: You can only grade your own subjects")
    _require_student(store, data["StudentID"])

    grade = Grade(
        student_id=data["StudentID"],
        subject_id=subject.subject_id,
        term=data["Term"],
        ca=data.get("CA") or 0,
        exam=data.get("Exam") or 0,
        total_score=data["TotalScore"],
        letter=calculate_grade_letter(data["TotalScore"]),
    )
    with atomic(store):
        store.add(grade)
    return _grade_aggregate(store, grade)


def _owned_grade(store, teacher, grade_id):
    grade = store.get(Grade, grade_id)
    if grade is None or grade.subject is None or grade.subject.teacher_id != teacher.teacher_id:
        raise NotFound("Grade not found or access denied")
    return grade


def update_grade(store, teacher, grade_id, data):
    grade = _owned_grade(store, teacher, grade_id)
    with atomic(store):
        if "Term" in data:
            grade.term = data["Term"]
        if "CA" in data:
            grade.ca = data["CA"]
        if "Exam" in data:
            grade.exam = data["Exam"]
        if "TotalScore" in data:
            grade.total_score = data["TotalScore"]
            grade.letter = calculate_grade_letter(data["TotalScore"])
    return _grade_aggregate(store, grade)


def delete_grade(store, teacher, grade_id):
    grade = _owned_grade(store, teacher, grade_id)
    with atomic(store):
        store.delete(grade)

# --- Attendance ---

def _attendance_aggregate(store, record):
    data = record.to_dict()
    data["Student"] = student_names(record.student_id, person_map(store, [record.student_id]))
    data["Subject"] = record.subject.to_dict()
    return data


def record_attendance(store, teacher, data):
    subject = _owned_subject(store, teacher, data["SubjectID"])
    if subject is None:
        raise Forbidden("Access denied: You can only manage attendance for your own subjects")
    _require_student(store, data["StudentID"])

    record = Attendance(
        student_id=data["StudentID"],
        subject_id=subject.subject_id,
        date=data["Date"],
        status=normalize_status(data["Status"]),
    )
    try:
        with atomic(store):
            store.add(record)
    except IntegrityError as e:
        raise Conflict("Attendance already recorded for this date") from e
    return _attendance_aggregate(store, record)


def _owned_attendance(store, teacher, attendance_id):
    record = store.get(Attendance, attendance_id)
    if record is None or record.subject is None or record.subject.teacher_id != teacher.teacher_id:
        raise NotFound("Attendance record not found or access denied")
    return record


def update_attendance(store, teacher, attendance_id, data):
    record = _owned_attendance(store, teacher, attendance_id)
    status = normalize_status(data["Status"]) if "Status" in data else None
    try:
        with atomic(store):
            if "Date" in data:
                record.date = data["Date"]
            if status is not None:
                record.status = status
    except IntegrityError as e:
        raise Conflict("Attendance already recorded for this date") from e
    return _attendance_aggregate(store, record)


def delete_attendance(store, teacher, attendance_id):
    record = _owned_attendance(store, teacher, attendance_id)
    with atomic(store):
        store.delete(record)

# --- Payments ---

def create_payment(store, data):
    _require_student(store, data["StudentID"])
    payment = Payment(
        student_id=data["StudentID"],
        amount=data["Amount"],
        term=data["Term"],
        method=PaymentMethod(data["PaymentMethod"]),
        payment_date=data.get("PaymentDate") or date.today(),
        confirmation=False,
        receipt_generated=False,
    )
    with atomic(store):
        store.add(payment)
    return payment.to_dict()


def _require_payment(store, transaction_id):
    payment = store.get(Payment, transaction_id)
    if payment is None:
        raise NotFound("Payment not found")
    return payment


def update_payment(store, transaction_id, data):
    payment = _require_payment(store, transaction_id)
    if data.get("StudentID"):
        _require_student(store, data["StudentID"])
    with atomic(store):
        if "StudentID" in data:
            payment.student_id = data["StudentID"]
        if "Amount" in data:
            payment.amount = data["Amount"]
        if "Term" in data:
            payment.term = data["Term"]
        if "PaymentMethod" in data:
            payment.method = PaymentMethod(data["PaymentMethod"])
        if "PaymentDate" in data:
            payment.payment_date = data["PaymentDate"]
        if "Confirmation" in data:
            payment.confirmation = data["Confirmation"]
        if "ReceiptGenerated" in data:
            payment.receipt_generated = data["ReceiptGenerated"]
    return payment.to_dict()


def delete_payment(store, transaction_id):
    payment = _require_payment(store, transaction_id)
    with atomic(store):
        store.delete(payment)
