# utils/csv_tools.py
# Loads the demo school from CSV files into the database.

import os
from datetime import datetime
from decimal import Decimal

import pandas as pd
from flask import current_app

from models import (
    Attendance, Grade, Parent, Payment, PaymentMethod, Person, Registration,
    SchoolClass, Student, Subject, Teacher
)
from utils.records import calculate_grade_letter, normalize_gender, normalize_status

DATA_DIR = 'data'


def _read(data_dir, name):
    path = os.path.join(data_dir, f'{name}.csv')
    if not os.path.exists(path):
        return None
    return pd.read_csv(path, dtype=str).fillna('')


def _parse_date(value):
    return datetime.strptime(value, '%Y-%m-%d').date() if value else None


def _blank_to_none(value):
    return value or None


def load_data_from_csv(store, data_dir=DATA_DIR):
    """
    Loads every known CSV in `data_dir`, parents before children.

    Missing files are skipped. Everything commits once at the end; any bad row
    rolls the whole load back.

    Returns:
        dict: number of rows loaded per file.
    """
    log = current_app.logger
    report = {}
    try:
        people = _read(data_dir, 'persons')
        if people is not None:
            for _, row in people.iterrows():
                store.add(Person(person_id=row['PersonID'], first_name=row['FirstName'], last_name=row['LastName']))
            report['persons'] = len(people)

        classes = _read(data_dir, 'classes')
        if classes is not None:
            for _, row in classes.iterrows():
                store.add(SchoolClass(class_id=row['ClassID'], class_name=row['ClassName']))
            report['classes'] = len(classes)
        store.flush()

        teachers = _read(data_dir, 'teachers')
        if teachers is not None:
            for _, row in teachers.iterrows():
                store.add(Teacher(teacher_id=row['TeacherID'], phone_num=row['PhoneNum'], email=row['Email']))
            report['teachers'] = len(teachers)

        parents = _read(data_dir, 'parents')
        if parents is not None:
            for _, row in parents.iterrows():
                store.add(Parent(parent_id=row['ParentID'], phone_num=row['PhoneNum'],
                                 email=row['Email'], address=row['Address']))
            report['parents'] = len(parents)
        store.flush()

        students = _read(data_dir, 'students')
        if students is not None:
            for _, row in students.iterrows():
                store.add(Student(
                    admission_number=row['AdmissionNumber'],
                    date_of_birth=_parse_date(row['DateOfBirth']),
                    gender=normalize_gender(_blank_to_none(row['Gender'])),
                    parent_id=_blank_to_none(row['ParentID']),
                    class_id=row['StudentClassID'],
                    parent_contact=row['ParentContact'],
                    address=row['Address'],
                ))
            report['students'] = len(students)

        subjects = _read(data_dir, 'subjects')
        if subjects is not None:
            for _, row in subjects.iterrows():
                store.add(Subject(subject_id=row['SubjectID'], subject_name=row['SubjectName'],
                                  class_level=row['ClassLevel'], teacher_id=row['TeacherID']))
            report['subjects'] = len(subjects)
        store.flush()

        registrations = _read(data_dir, 'registrations')
        if registrations is not None:
            for _, row in registrations.iterrows():
                store.add(Registration(registration_id=row['RegistrationID'], student_id=row['StudentID'],
                                       subject_id=row['SubjectID'], term=row['Term']))
            report['registrations'] = len(registrations)

        grades = _read(data_dir, 'grades')
        if grades is not None:
            for _, row in grades.iterrows():
                total = int(row['TotalScore'])
                store.add(Grade(
                    student_id=row['StudentID'], subject_id=row['SubjectID'], term=row['Term'],
                    ca=int(row['CA'] or 0), exam=int(row['Exam'] or 0),
                    total_score=total, letter=calculate_grade_letter(total),
                ))
            report['grades'] = len(grades)

        attendance = _read(data_dir, 'attendance')
        if attendance is not None:
            for _, row in attendance.iterrows():
                store.add(Attendance(student_id=row['StudentID'], subject_id=row['SubjectID'],
                                     date=_parse_date(row['Date']), status=normalize_status(row['Status'])))
            report['attendance'] = len(attendance)

        payments = _read(data_dir, 'payments')
        if payments is not None:
            for _, row in payments.iterrows():
                store.add(Payment(
                    student_id=row['StudentID'], amount=Decimal(row['Amount']), term=row['Term'],
                    method=PaymentMethod(row['PaymentMethod']), payment_date=_parse_date(row['PaymentDate']),
                ))
            report['payments'] = len(payments)

        store.commit()
    except Exception:
        store.rollback()
        log.exception("Seed data load failed; nothing was written")
        raise

    for name, count in report.items():
        log.info("Loaded %d %s", count, name)
    return report
