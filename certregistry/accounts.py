import bcrypt
from flask import current_app

from certregistry.errors import NotFound, Unauthorized, ValidationError

REQUIRED_FIELDS = ("rollNumber", "mailId", "password", "studentName")


def _text(data, key):
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def hash_password(password, rounds=10):
    salt = bcrypt.gensalt(rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password, hashed):
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def build_student_record(data, rounds=10):
    if not all(_text(data, k) for k in REQUIRED_FIELDS):
        raise ValidationError("Missing required fields: Roll Number, Email, Password, or Student Name.")
    year = _text(data, "yearOfPass")
    if year:
        try:
            year = int(year)
        except ValueError:
            raise ValidationError("Year of pass must be a number.")
    return {
        "rollNumber": _text(data, "rollNumber"),
        "mailId": _text(data, "mailId").lower(),
        "hashedPassword": hash_password(str(data["password"]), rounds),
        "studentName": _text(data, "studentName"),
        "studentClass": _text(data, "studentClass") or "N/A",
        "department": _text(data, "department") or "N/A",
        "yearOfPass": year or None,
        "percentage": _text(data, "percentage") or "N/A",
    }


def create_student_account(store, data):
    record = build_student_record(data, current_app.config.get("BCRYPT_ROUNDS", 10))
    store.create_student(record)
    current_app.logger.info(f"created student account {record['rollNumber']}")
    return record


def login_student(store, data):
    roll_number = _text(data, "rollNumber")
    password = str(data.get("password") or "")
    if not roll_number or not password:
        raise ValidationError("Roll Number and Password are required.")
    try:
        student = store.get_student(roll_number)
    except NotFound:
        raise NotFound("Invalid Roll Number or account not found.")
    if not check_password(password, student.get("hashedPassword")):
        raise Unauthorized("Invalid Roll Number or password.")
    return {"rollNumber": roll_number, "studentName": student["studentName"]}
