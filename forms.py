# forms.py
# Request body validation for the JSON API (WTForms via Flask-WTF).
# Field names match the JSON keys clients already send.

from decimal import Decimal

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, DecimalField, IntegerField, StringField
from wtforms.fields import DateField
from wtforms.validators import (
    AnyOf, DataRequired, InputRequired, Length, NumberRange, Optional, Regexp, StopValidation
)

from utils.errors import ValidationError


def required(name):
    return DataRequired(message=f"{name} is required")


# Largest value a Numeric(12, 2) column holds.
MAX_AMOUNT = Decimal("9999999999.99")


def finite(form, field):
    if field.data is not None and not field.data.is_finite():
        raise StopValidation("Amount must be a finite number.")


class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def first_error(self):
        for field in self:
            if field.errors:
                message = field.errors[0]
                return message if "required" in message else f"{field.name}: {message}"
        return None

    def present(self):
        """Only the fields the client actually sent."""
        return {name: field.data for name, field in self._fields.items() if field.raw_data}


def _form_value(value):
    # WTForms parses strings; BooleanField only treats lowercase 'false' as False.
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def bind_form(form_cls):
    """Validates the JSON body against `form_cls`, raising ValidationError on the first bad field."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    formdata = MultiDict({k: _form_value(v) for k, v in payload.items() if v is not None and v != ""})
    form = form_cls(formdata=formdata)
    if not form.validate():
        raise ValidationError(form.first_error())
    return form

# --- Auth ---

class LoginForm(ApiForm):
    username = StringField('username', validators=[required('username')])
    password = StringField('password', validators=[required('password')])

# --- People & Structure ---

class StudentForm(ApiForm):
    FirstName = StringField('FirstName', validators=[required('FirstName'), Length(max=100)])
    LastName = StringField('LastName', validators=[required('LastName'), Length(max=100)])
    DateOfBirth = DateField('DateOfBirth', validators=[Optional()])
    Gender = StringField('Gender', validators=[Optional(), AnyOf(['Male', 'Female', 'M', 'F'])])
    ParentContact = StringField('ParentContact', validators=[Optional(), Length(max=50)])
    Address = StringField('Address', validators=[Optional(), Length(max=255)])
    StudentClassID = StringField('StudentClassID', validators=[Optional()])
    ParentID = StringField('ParentID', validators=[Optional()])

class StudentUpdateForm(ApiForm):
    admissionNumber = StringField('admissionNumber', validators=[required('admissionNumber')])
    FirstName = StringField('FirstName', validators=[Optional(), Length(max=100)])
    LastName = StringField('LastName', validators=[Optional(), Length(max=100)])
    DateOfBirth = DateField('DateOfBirth', validators=[Optional()])
    Gender = StringField('Gender', validators=[Optional(), AnyOf(['Male', 'Female', 'M', 'F'])])
    ParentContact = StringField('ParentContact', validators=[Optional(), Length(max=50)])
    Address = StringField('Address', validators=[Optional(), Length(max=255)])
    StudentClassID = StringField('StudentClassID', validators=[Optional()])
    ParentID = StringField('ParentID', validators=[Optional()])

class ClassForm(ApiForm):
    ClassName = StringField('ClassName', validators=[DataRequired(message="Class name is required"), Length(max=100)])
    ClassID = StringField('ClassID', validators=[Optional(), Length(max=50)])

class ClassUpdateForm(ApiForm):
    classId = StringField('classId', validators=[DataRequired(message="Class ID is required")])
    ClassName = StringField('ClassName', validators=[Optional(), Length(max=100)])

class SubjectForm(ApiForm):
    SubjectName = StringField('SubjectName', validators=[required('SubjectName'), Length(max=100)])
    ClassLevel = StringField('ClassLevel', validators=[required('ClassLevel'), Length(max=20)])
    SubjectID = StringField('SubjectID', validators=[Optional(), Length(max=50)])

class SubjectUpdateForm(ApiForm):
    subjectId = StringField('subjectId', validators=[DataRequired(message="Subject ID is required")])
    SubjectName = StringField('SubjectName', validators=[Optional(), Length(max=100)])
    ClassLevel = StringField('ClassLevel', validators=[Optional(), Length(max=20)])

# --- Academic Records ---

class RegistrationForm(ApiForm):
    # Registrations are always filed under the current term.
    subjectId = StringField('subjectId', validators=[DataRequired(message="Subject ID is required")])

class GradeForm(ApiForm):
    StudentID = StringField('StudentID', validators=[required('StudentID')])
    SubjectID = StringField('SubjectID', validators=[required('SubjectID')])
    Term = StringField('Term', validators=[required('Term')])
    TotalScore = IntegerField('TotalScore', validators=[InputRequired(message="TotalScore is required"), NumberRange(min=0, max=100)])
    CA = IntegerField('CA', validators=[Optional(), NumberRange(min=0, max=100)])
    Exam = IntegerField('Exam', validators=[Optional(), NumberRange(min=0, max=100)])

class GradeUpdateForm(ApiForm):
    gradeId = IntegerField('gradeId', validators=[DataRequired(message="Grade ID is required")])
    Term = StringField('Term', validators=[Optional()])
    TotalScore = IntegerField('TotalScore', validators=[Optional(), NumberRange(min=0, max=100)])
    CA = IntegerField('CA', validators=[Optional(), NumberRange(min=0, max=100)])
    Exam = IntegerField('Exam', validators=[Optional(), NumberRange(min=0, max=100)])

class AttendanceForm(ApiForm):
    StudentID = StringField('StudentID', validators=[required('StudentID')])
    SubjectID = StringField('SubjectID', validators=[required('SubjectID')])
    Date = DateField('Date', validators=[required('Date')])
    Status = StringField('Status', validators=[required('Status')])

class AttendanceUpdateForm(ApiForm):
    attendanceId = IntegerField('attendanceId', validators=[DataRequired(message="Attendance ID is required")])
    Date = DateField('Date', validators=[Optional()])
    Status = StringField('Status', validators=[Optional()])

class PaymentForm(ApiForm):
    StudentID = StringField('StudentID', validators=[DataRequired(message="Student ID is required.")])
    Amount = DecimalField('Amount', validators=[
        DataRequired(message="Amount is required."), finite,
        NumberRange(min=0.01, max=MAX_AMOUNT, message="Amount must be positive and at most 9999999999.99."),
    ])
    Term = StringField('Term', validators=[DataRequired(message="Term is required.")])
    PaymentMethod = StringField('PaymentMethod', validators=[DataRequired(message="Payment method is required."), AnyOf(['Cash', 'Transfer'])])
    PaymentDate = DateField('PaymentDate', validators=[Optional()])

class PaymentUpdateForm(ApiForm):
    transactionId = IntegerField('transactionId', validators=[DataRequired(message="Transaction ID is required")])
    StudentID = StringField('StudentID', validators=[Optional()])
    Amount = DecimalField('Amount', validators=[
        Optional(), finite,
        NumberRange(min=0.01, max=MAX_AMOUNT, message="Amount must be positive and at most 9999999999.99."),
    ])
    Term = StringField('Term', validators=[Optional()])
    PaymentMethod = StringField('PaymentMethod', validators=[Optional(), AnyOf(['Cash', 'Transfer'])])
    PaymentDate = DateField('PaymentDate', validators=[Optional()])
    Confirmation = BooleanField('Confirmation', validators=[Optional()])
    ReceiptGenerated = BooleanField('ReceiptGenerated', validators=[Optional()])

# --- Staff ---

class TeacherForm(ApiForm):
    FirstName = StringField('FirstName', validators=[required('FirstName'), Length(min=2, max=100, message="First name must be at least 2 characters.")])
    LastName = StringField('LastName', validators=[required('LastName'), Length(min=2, max=100, message="Last name must be at least 2 characters.")])
    Email = StringField('Email', validators=[required('Email'), Length(max=120), Regexp(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', message="Invalid email address.")])
    PhoneNum = StringField('PhoneNum', validators=[required('PhoneNum'), Length(min=10, max=30, message="Phone number must be at least 10 digits.")])
    TeacherID = StringField('TeacherID', validators=[Optional(), Length(max=50)])

class TeacherUpdateForm(ApiForm):
    teacherId = StringField('teacherId', validators=[DataRequired(message="Teacher ID is required")])
    FirstName = StringField('FirstName', validators=[Optional(), Length(min=2, max=100, message="First name must be at least 2 characters.")])
    LastName = StringField('LastName', validators=[Optional(), Length(min=2, max=100, message="Last name must be at least 2 characters.")])
    Email = StringField('Email', validators=[Optional(), Length(max=120), Regexp(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', message="Invalid email address.")])
    PhoneNum = StringField('PhoneNum', validators=[Optional(), Length(min=10, max=30, message="Phone number must be at least 10 digits.")])
