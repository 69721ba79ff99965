# app.py
# Main Flask application file for the school portal JSON API.

import os
import logging
import sqlite3

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, jsonify, request
from flask.logging import default_handler
from flask_login import current_user
from sqlalchemy import event
from sqlalchemy.engine import Engine

from forms import (
    AttendanceForm, AttendanceUpdateForm, ClassForm, ClassUpdateForm, GradeForm,
    GradeUpdateForm, LoginForm, PaymentForm, PaymentUpdateForm, RegistrationForm,
    StudentForm, StudentUpdateForm, SubjectForm, SubjectUpdateForm, TeacherForm,
    TeacherUpdateForm, bind_form
)
from models import db, Person, Role
from utils import dashboards, records
from utils.auth import SESSION_COOKIE, authenticate, login_manager, role_required
from utils.csv_tools import load_data_from_csv
from utils.errors import ApiError, Unauthorized, ValidationError
from utils.session_codec import SessionCodec

# --- APP CONFIGURATION ---

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'a_very_secret_key_that_should_be_changed')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, 'data', 'school.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Flask's own signed session is unused; keep it off the name our token cookie owns.
    SESSION_COOKIE_NAME = 'flask_session'
    # Every account logs in with this password; the username is the PersonID.
    SHARED_PASSWORD = os.environ.get('SHARED_PASSWORD', 'password123')
    APP_ENV = os.environ.get('APP_ENV', 'development')
    SESSION_MAX_AGE = int(os.environ.get('SESSION_MAX_AGE', 24 * 60 * 60))  # seconds
    ID_MAX_ATTEMPTS = int(os.environ.get('ID_MAX_ATTEMPTS', 5))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    DATA_DIR = os.path.join(basedir, 'data')


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


console_handler = logging.StreamHandler()
console_handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s"))


def configure_logging(app):
    # app.logger is shared by every app built in this process.
    app.logger.setLevel(app.config['LOG_LEVEL'])
    app.logger.removeHandler(default_handler)
    if console_handler not in app.logger.handlers:
        app.logger.addHandler(console_handler)


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)
    app.config['SESSION_COOKIE_SECURE'] = app.config['APP_ENV'] == 'production'

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    app.extensions['session_codec'] = SessionCodec(app.config['SECRET_KEY'], app.config['SESSION_MAX_AGE'])

    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()
    return app

# --- ERROR HANDLERS ---

def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def api_error(error):
        body, status = error.to_response()
        return jsonify(body), status

    @app.errorhandler(404)
    def not_found(error): return jsonify(error="Not found"), 404

    @app.errorhandler(405)
    def method_not_allowed(error): return jsonify(error="Method not allowed"), 405

    @app.errorhandler(500)
    def internal_server(error):
        db.session.rollback()
        return jsonify(error="Internal server error"), 500

# --- DATABASE INITIALIZATION ---

def register_commands(app):
    @app.cli.command("init-db")
    def init_db_command():
        print("Dropping and recreating database...")
        db.drop_all()
        db.create_all()
        print("Loading data from CSV files...")
        report = load_data_from_csv(db.session, app.config['DATA_DIR'])
        print(f"Database initialized successfully! Loaded: {report}")

# --- HELPERS ---

api = Blueprint('api', __name__, url_prefix='/api')


def caller():
    return current_user.session


def id_attempts():
    return current_app.config['ID_MAX_ATTEMPTS']


def query_param(name, label, cast=str):
    value = request.args.get(name)
    if not value:
        raise ValidationError(f"{label} is required")
    try:
        return cast(value)
    except ValueError as e:
        raise ValidationError(f"{label} is not valid") from e


def set_session_cookie(response, token):
    response.set_cookie(
        SESSION_COOKIE, token,
        max_age=current_app.config['SESSION_MAX_AGE'],
        httponly=True,
        secure=current_app.config['SESSION_COOKIE_SECURE'],
        samesite='Lax',
    )

# --- AUTHENTICATION ROUTES ---

@api.route('/auth/login', methods=['POST'])
def login():
    form = bind_form(LoginForm)
    session, resolved = authenticate(db.session, form.username.data, form.password.data,
                                     current_app.config['SHARED_PASSWORD'])
    token = current_app.extensions['session_codec'].encode(session)
    current_app.logger.info("Login: %s as %s", session.person_id, session.role.value)
    response = jsonify(user={
        "id": session.person_id,
        "username": session.person_id,
        "role": session.role.value,
        "name": session.name,
        "profile": resolved.profile.to_dict(),
    })
    set_session_cookie(response, token)
    return response

@api.route('/auth/logout', methods=['POST'])
def logout():
    response = jsonify(message="Logged out")
    response.delete_cookie(SESSION_COOKIE, httponly=True, secure=current_app.config['SESSION_COOKIE_SECURE'], samesite='Lax')
    return response

@api.route('/auth/session')
@role_required()
def get_session():
    # A valid token for a deleted person is no longer a session.
    if db.session.get(Person, caller().person_id) is None:
        raise Unauthorized()
    return jsonify(session=caller().to_dict())

@api.route('/demo-users')
def demo_users():
    return jsonify(users=dashboards.demo_users(db.session))

# --- DASHBOARDS ---

@api.route('/student/dashboard')
@role_required(Role.STUDENT)
def student_dashboard():
    return jsonify(dashboards.student_dashboard(db.session, caller()))

@api.route('/teacher/dashboard')
@role_required(Role.TEACHER)
def teacher_dashboard():
    return jsonify(dashboards.teacher_dashboard(db.session, caller()))

@api.route('/teacher/students')
@role_required(Role.TEACHER)
def teacher_students():
    return jsonify(dashboards.teacher_students(db.session, caller()))

@api.route('/teacher/subjects')
@role_required(Role.TEACHER)
def teacher_subjects():
    return jsonify(dashboards.teacher_subjects(db.session, caller()))

@api.route('/teacher/attendance')
@role_required(Role.TEACHER)
def teacher_attendance():
    return jsonify(dashboards.teacher_attendance(db.session, caller()))

@api.route('/teacher/grades')
@role_required(Role.TEACHER)
def teacher_grades():
    return jsonify(dashboards.teacher_grades(db.session, caller()))

@api.route('/parent/dashboard')
@role_required(Role.PARENT)
def parent_dashboard():
    return jsonify(dashboards.parent_dashboard(db.session, caller()))

# --- CLASSES ---

@api.route('/classes', methods=['GET'])
@role_required()
def list_classes():
    return jsonify(classes=dashboards.list_classes(db.session))

@api.route('/classes', methods=['POST'])
@role_required(Role.TEACHER)
def create_class():
    form = bind_form(ClassForm)
    return jsonify({"class": records.create_class(db.session, form.data, id_attempts())}), 201

@api.route('/classes', methods=['PUT'])
@role_required(Role.TEACHER)
def update_class():
    form = bind_form(ClassUpdateForm)
    return jsonify({"class": records.update_class(db.session, form.classId.data, form.present())})

@api.route('/classes', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_class():
    records.delete_class(db.session, query_param('classId', 'Class ID'))
    return jsonify(message="Class deleted successfully")

# --- SUBJECTS ---

@api.route('/subjects', methods=['GET'])
@role_required()
def list_subjects():
    return jsonify(subjects=dashboards.list_subjects(db.session, caller()))

@api.route('/subjects', methods=['POST'])
@role_required(Role.TEACHER)
def create_subject():
    form = bind_form(SubjectForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(subject=records.create_subject(db.session, teacher, form.data, id_attempts())), 201

@api.route('/subjects', methods=['PUT'])
@role_required(Role.TEACHER)
def update_subject():
    form = bind_form(SubjectUpdateForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(subject=records.update_subject(db.session, teacher, form.subjectId.data, form.present()))

@api.route('/subjects', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_subject():
    subject_id = query_param('subjectId', 'Subject ID')
    teacher = dashboards.get_teacher_profile(db.session, caller())
    records.delete_subject(db.session, teacher, subject_id)
    return jsonify(message="Subject deleted successfully")

# --- REGISTRATIONS ---

@api.route('/registrations', methods=['GET'])
@role_required(Role.STUDENT, Role.TEACHER)
def list_registrations():
    return jsonify(registrations=dashboards.list_registrations(db.session, caller()))

@api.route('/registrations', methods=['POST'])
@role_required(Role.STUDENT)
def create_registration():
    form = bind_form(RegistrationForm)
    student = dashboards.get_student_profile(db.session, caller())
    registration = records.create_registration(db.session, student, form.data, id_attempts())
    current_app.logger.info("Registration %s: %s -> %s", registration["RegistrationID"],
                            student.admission_number, registration["SubjectID"])
    return jsonify(registration=registration), 201

@api.route('/registrations', methods=['DELETE'])
@role_required(Role.STUDENT)
def delete_registration():
    registration_id = query_param('registrationId', 'Registration ID')
    student = dashboards.get_student_profile(db.session, caller())
    records.delete_registration(db.session, student, registration_id)
    return jsonify(message="Successfully unregistered from subject")

# --- GRADES ---

@api.route('/grades', methods=['GET'])
@role_required()
def list_grades():
    return jsonify(grades=dashboards.list_grades(db.session, caller()))

@api.route('/grades', methods=['POST'])
@role_required(Role.TEACHER)
def create_grade():
    form = bind_form(GradeForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(grade=records.create_grade(db.session, teacher, form.data)), 201

@api.route('/grades', methods=['PUT'])
@role_required(Role.TEACHER)
def update_grade():
    form = bind_form(GradeUpdateForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(grade=records.update_grade(db.session, teacher, form.gradeId.data, form.present()))

@api.route('/grades', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_grade():
    grade_id = query_param('gradeId', 'Grade ID', int)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    records.delete_grade(db.session, teacher, grade_id)
    return jsonify(message="Grade deleted successfully")

# --- ATTENDANCE ---

@api.route('/attendance', methods=['GET'])
@role_required()
def list_attendance():
    return jsonify(attendance=dashboards.list_attendance(db.session, caller()))

@api.route('/attendance', methods=['POST'])
@role_required(Role.TEACHER)
def record_attendance():
    form = bind_form(AttendanceForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(attendance=records.record_attendance(db.session, teacher, form.data)), 201

@api.route('/attendance', methods=['PUT'])
@role_required(Role.TEACHER)
def update_attendance():
    form = bind_form(AttendanceUpdateForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(attendance=records.update_attendance(db.session, teacher, form.attendanceId.data, form.present()))

@api.route('/attendance', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_attendance():
    attendance_id = query_param('attendanceId', 'Attendance ID', int)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    records.delete_attendance(db.session, teacher, attendance_id)
    return jsonify(message="Attendance record deleted successfully")

# --- PAYMENTS ---

@api.route('/payments', methods=['GET'])
@role_required()
def list_payments():
    return jsonify(payments=dashboards.list_payments(db.session, caller()))

@api.route('/payments', methods=['POST'])
@role_required(Role.TEACHER)
def create_payment():
    form = bind_form(PaymentForm)
    return jsonify(payment=records.create_payment(db.session, form.data)), 201

@api.route('/payments', methods=['PUT'])
@role_required(Role.TEACHER)
def update_payment():
    form = bind_form(PaymentUpdateForm)
    return jsonify(payment=records.update_payment(db.session, form.transactionId.data, form.present()))

@api.route('/payments', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_payment():
    records.delete_payment(db.session, query_param('transactionId', 'Transaction ID', int))
    return jsonify(message="Payment deleted successfully")

# --- STUDENTS ---

@api.route('/students', methods=['GET'])
@role_required(Role.TEACHER)
def list_students():
    return jsonify(dashboards.list_students(db.session))

@api.route('/students', methods=['POST'])
@role_required(Role.TEACHER)
def create_student():
    form = bind_form(StudentForm)
    student = records.create_student(db.session, form.data, id_attempts())
    current_app.logger.info("Admitted student %s", student["AdmissionNumber"])
    return jsonify(message="Student added successfully", student=student)

@api.route('/students', methods=['PUT'])
@api.route('/teacher/update-student', methods=['PUT'])
@role_required(Role.TEACHER)
def update_student():
    form = bind_form(StudentUpdateForm)
    return jsonify(message="Student updated successfully", student=records.update_student(db.session, form.present()))

@api.route('/students', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_student():
    admission_number = query_param('admissionNumber', 'Admission number')
    records.delete_student(db.session, admission_number)
    current_app.logger.info("Removed student %s", admission_number)
    return jsonify(message="Student deleted successfully")

# --- TEACHERS ---

@api.route('/teachers', methods=['GET'])
@role_required()
def list_teachers():
    return jsonify(teachers=dashboards.list_teachers(db.session))

@api.route('/teachers', methods=['POST'])
@role_required(Role.TEACHER)
def create_teacher():
    form = bind_form(TeacherForm)
    teacher = records.create_teacher(db.session, form.data, id_attempts())
    current_app.logger.info("Added teacher %s", teacher["TeacherID"])
    return jsonify(teacher=teacher), 201

@api.route('/teachers', methods=['PUT'])
@role_required(Role.TEACHER)
def update_teacher():
    form = bind_form(TeacherUpdateForm)
    return jsonify(teacher=records.update_teacher(db.session, form.teacherId.data, form.present()))

@api.route('/teachers', methods=['DELETE'])
@role_required(Role.TEACHER)
def delete_teacher():
    records.delete_teacher(db.session, query_param('teacherId', 'Teacher ID'))
    return jsonify(message="Teacher deleted successfully")

# --- LEGACY TEACHER ALIASES ---

@api.route('/teacher/add-subject', methods=['POST'])
@role_required(Role.TEACHER)
def add_subject():
    form = bind_form(SubjectForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(subject=records.create_subject(db.session, teacher, form.data, id_attempts()))

@api.route('/teacher/update-subject', methods=['PUT'])
@role_required(Role.TEACHER)
def legacy_update_subject():
    form = bind_form(SubjectUpdateForm)
    teacher = dashboards.get_teacher_profile(db.session, caller())
    return jsonify(subject=records.update_subject(db.session, teacher, form.subjectId.data, form.present()))

# --- RUN APPLICATION ---

if __name__ == '__main__':
    create_app().run(debug=True)
