# models.py
# Database schema for the school portal: people, their role profiles,
# classes, subjects and the academic records hanging off students.

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Enum, UniqueConstraint
import enum
from datetime import date

db = SQLAlchemy()

# --- Enums ---

class Role(enum.Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    PARENT = "PARENT"
    UNKNOWN = "UNKNOWN"

class AttendanceStatus(enum.Enum):
    PRESENT = "Present"
    ABSENT = "Absent"

class PaymentMethod(enum.Enum):
    CASH = "Cash"
    TRANSFER = "Transfer"


def _iso(value):
    return value.isoformat() if value else None

# --- Identity Models ---

class Person(db.Model):
    __tablename__ = 'person'

    person_id = db.Column('PersonID', db.String(50), primary_key=True)
    first_name = db.Column('FirstName', db.String(100), nullable=False)
    last_name = db.Column('LastName', db.String(100), nullable=False)

    teacher = db.relationship('Teacher', back_populates='person', uselist=False)
    parent = db.relationship('Parent', back_populates='person', uselist=False)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def to_dict(self):
        return {"PersonID": self.person_id, "FirstName": self.first_name, "LastName": self.last_name}

    def __repr__(self):
        return f"<Person {self.person_id}>"

class Teacher(db.Model):
    __tablename__ = 'teacher'

    teacher_id = db.Column('TeacherID', db.String(50), db.ForeignKey('person.PersonID'), primary_key=True)
    phone_num = db.Column('PhoneNum', db.String(30))
    email = db.Column('Email', db.String(120))

    person = db.relationship('Person', back_populates='teacher')
    subjects = db.relationship('Subject', back_populates='teacher', lazy=True)

    def to_dict(self):
        return {"TeacherID": self.teacher_id, "PhoneNum": self.phone_num, "Email": self.email}

    def __repr__(self):
        return f"<Teacher {self.teacher_id}>"

class Parent(db.Model):
    __tablename__ = 'parent'

    parent_id = db.Column('ParentID', db.String(50), db.ForeignKey('person.PersonID'), primary_key=True)
    phone_num = db.Column('PhoneNum', db.String(30))
    email = db.Column('Email', db.String(120))
    address = db.Column('Address', db.String(255))

    person = db.relationship('Person', back_populates='parent')
    children = db.relationship('Student', back_populates='parent', lazy=True)

    def to_dict(self):
        return {"ParentID": self.parent_id, "PhoneNum": self.phone_num, "Email": self.email, "Address": self.address}

    def __repr__(self):
        return f"<Parent {self.parent_id}>"

# --- School Structure ---

class SchoolClass(db.Model):
    __tablename__ = 'class'

    class_id = db.Column('ClassID', db.String(50), primary_key=True)
    class_name = db.Column('ClassName', db.String(100), nullable=False)

    students = db.relationship('Student', back_populates='school_class', lazy='dynamic')

    def to_dict(self):
        return {"ClassID": self.class_id, "ClassName": self.class_name}

    def __repr__(self):
        return f"<SchoolClass {self.class_name}>"

class Student(db.Model):
    __tablename__ = 'student'

    # AdmissionNumber doubles as the student's PersonID.
    admission_number = db.Column('AdmissionNumber', db.String(50), db.ForeignKey('person.PersonID'), primary_key=True)
    date_of_birth = db.Column('DateOfBirth', db.Date)
    gender = db.Column('Gender', db.String(1))
    parent_id = db.Column('ParentID', db.String(50), db.ForeignKey('parent.ParentID'), nullable=True)
    class_id = db.Column('StudentClassID', db.String(50), db.ForeignKey('class.ClassID'), nullable=False)
    parent_contact = db.Column('ParentContact', db.String(50))
    address = db.Column('Address', db.String(255))

    person = db.relationship('Person')
    parent = db.relationship('Parent', back_populates='children')
    school_class = db.relationship('SchoolClass', back_populates='students')

    def to_dict(self):
        return {
            "AdmissionNumber": self.admission_number,
            "DateOfBirth": _iso(self.date_of_birth),
            "Gender": self.gender,
            "ParentID": self.parent_id,
            "StudentClassID": self.class_id,
            "ParentContact": self.parent_contact,
            "Address": self.address,
        }

    def __repr__(self):
        return f"<Student {self.admission_number}>"

class Subject(db.Model):
    __tablename__ = 'subject'

    subject_id = db.Column('SubjectID', db.String(50), primary_key=True)
    subject_name = db.Column('SubjectName', db.String(100), nullable=False)
    class_level = db.Column('ClassLevel', db.String(20), nullable=False, index=True)
    teacher_id = db.Column('TeacherID', db.String(50), db.ForeignKey('teacher.TeacherID'), nullable=False, index=True)

    teacher = db.relationship('Teacher', back_populates='subjects')

    def to_dict(self):
        return {
            "SubjectID": self.subject_id,
            "SubjectName": self.subject_name,
            "ClassLevel": self.class_level,
            "TeacherID": self.teacher_id,
        }

    def __repr__(self):
        return f"<Subject {self.subject_name}>"

# --- Academic Records ---

class Registration(db.Model):
    __tablename__ = 'registration'
    __table_args__ = (UniqueConstraint('StudentID', 'SubjectID', 'Term', name='uq_registration_student_subject_term'),)

    registration_id = db.Column('RegistrationID', db.String(50), primary_key=True)
    student_id = db.Column('StudentID', db.String(50), db.ForeignKey('student.AdmissionNumber'), nullable=False)
    subject_id = db.Column('SubjectID', db.String(50), db.ForeignKey('subject.SubjectID'), nullable=False)
    term = db.Column('Term', db.String(50), nullable=False)

    student = db.relationship('Student')
    subject = db.relationship('Subject')

    def to_dict(self):
        return {
            "RegistrationID": self.registration_id,
            "StudentID": self.student_id,
            "SubjectID": self.subject_id,
            "Term": self.term,
        }

    def __repr__(self):
        return f"<Registration {self.student_id} -> {self.subject_id} ({self.term})>"

class Grade(db.Model):
    __tablename__ = 'grade'

    grade_id = db.Column('GradeID', db.Integer, primary_key=True)
    student_id = db.Column('StudentID', db.String(50), db.ForeignKey('student.AdmissionNumber'), nullable=False, index=True)
    subject_id = db.Column('SubjectID', db.String(50), db.ForeignKey('subject.SubjectID'), nullable=False, index=True)
    term = db.Column('Term', db.String(50), nullable=False)
    ca = db.Column('CA', db.Integer, nullable=False, default=0)
    exam = db.Column('Exam', db.Integer, nullable=False, default=0)
    total_score = db.Column('TotalScore', db.Integer, nullable=False)
    letter = db.Column('Grade', db.String(2), nullable=False)

    student = db.relationship('Student')
    subject = db.relationship('Subject')

    def to_dict(self):
        return {
            "GradeID": self.grade_id,
            "StudentID": self.student_id,
            "SubjectID": self.subject_id,
            "Term": self.term,
            "CA": self.ca,
            "Exam": self.exam,
            "TotalScore": self.total_score,
            "Grade": self.letter,
        }

    def __repr__(self):
        return f"<Grade {self.student_id} - {self.subject_id}: {self.total_score}>"

class Attendance(db.Model):
    __tablename__ = 'attendance'
    __table_args__ = (UniqueConstraint('StudentID', 'SubjectID', 'Date', name='uq_attendance_student_subject_date'),)

    attendance_id = db.Column('AttendanceID', db.Integer, primary_key=True)
    student_id = db.Column('StudentID', db.String(50), db.ForeignKey('student.AdmissionNumber'), nullable=False, index=True)
    subject_id = db.Column('SubjectID', db.String(50), db.ForeignKey('subject.SubjectID'), nullable=False, index=True)
    date = db.Column('Date', db.Date, nullable=False, default=date.today)
    status = db.Column('Status', Enum(AttendanceStatus), nullable=False)

    student = db.relationship('Student')
    subject = db.relationship('Subject')

    def to_dict(self):
        return {
            "AttendanceID": self.attendance_id,
            "StudentID": self.student_id,
            "SubjectID": self.subject_id,
            "Date": _iso(self.date),
            "Status": self.status.name,
        }

    def __repr__(self):
        return f"<Attendance {self.student_id} on {self.date}: {self.status.name}>"

class Payment(db.Model):
    __tablename__ = 'payment'

    transaction_id = db.Column('TransactionID', db.Integer, primary_key=True)
    student_id = db.Column('StudentID', db.String(50), db.ForeignKey('student.AdmissionNumber'), nullable=False, index=True)
    amount = db.Column('Amount', db.Numeric(12, 2), nullable=False)
    payment_date = db.Column('PaymentDate', db.Date, nullable=False, default=date.today)
    method = db.Column('PaymentMethod', Enum(PaymentMethod), nullable=False)
    term = db.Column('Term', db.String(50), nullable=False)
    confirmation = db.Column('Confirmation', db.Boolean, nullable=False, default=False)
    receipt_generated = db.Column('ReceiptGenerated', db.Boolean, nullable=False, default=False)

    student = db.relationship('Student')

    def to_dict(self):
        return {
            "TransactionID": self.transaction_id,
            "StudentID": self.student_id,
            "Amount": float(self.amount) if self.amount is not None else None,
            "PaymentDate": _iso(self.payment_date),
            "PaymentMethod": self.method.value,
            "Term": self.term,
            "Confirmation": self.confirmation,
            "ReceiptGenerated": self.receipt_generated,
        }

    def __repr__(self):
        return f"<Payment {self.transaction_id} {self.student_id}: {self.amount}>"
