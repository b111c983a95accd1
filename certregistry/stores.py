"""Student and certificate persistence.

Two stores expose the same record shape: ``SqlStore`` over the relational
database and ``JsonStore`` over a single JSON document keyed by roll number.
``MirroredStore`` combines them: writes go to the database first and are
then always applied to the JSON mirror; reads try the database and fall back
to the mirror when it returns nothing or fails.
"""

import json
import logging
import os
import tempfile
import threading

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from certregistry.errors import Conflict, NotFound, StorageError
from certregistry.models import db, Student, Certificate, parse_timestamp

PROFILE_FIELDS = ("studentName", "department", "yearOfPass", "studentClass", "percentage")


def redact(record):
    safe = {k: v for k, v in record.items() if k != "hashedPassword"}
    safe["certificates"] = [dict(c) for c in record.get("certificates", [])]
    return safe


def _joined(cert, student):
    row = dict(cert)
    for key in PROFILE_FIELDS:
        row[key] = student.get(key)
    return row


def _newest_first(certs):
    return sorted(reversed(certs), key=lambda c: c.get("issueTimestamp") or "", reverse=True)


class SqlStore:
    name = "database"

    def has_student(self, roll_number):
        try:
            return db.session.get(Student, roll_number) is not None
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database read failed: {e}") from e

    def create_student(self, record):
        roll_number = record["rollNumber"]
        try:
            if db.session.get(Student, roll_number) is not None:
                raise Conflict(f"Student with Roll Number {roll_number} already exists.")
            s = Student(
                roll_number=roll_number,
                mail_id=record["mailId"],
                hashed_password=record["hashedPassword"],
                student_name=record["studentName"],
                student_class=record.get("studentClass") or "N/A",
                department=record.get("department") or "N/A",
                year_of_pass=record.get("yearOfPass"),
                percentage=record.get("percentage") or "N/A",
            )
            db.session.add(s)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise Conflict(f"Student with Roll Number {roll_number} already exists.") from e
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database insert failed: {e}") from e

    def get_student(self, roll_number):
        try:
            s = db.session.get(Student, roll_number)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database read failed: {e}") from e
        if s is None:
            raise NotFound(f"Student {roll_number} not found.")
        return s.to_record()

    def append_certificate(self, roll_number, cert):
        try:
            if db.session.get(Student, roll_number) is None:
                raise NotFound(f"Student {roll_number} not found.")
            c = Certificate(
                student_id=roll_number,
                certificate_hash=cert["certificateHash"],
                pdf_file_path=cert["pdfFilePath"],
                photo_file_path=cert["photoFilePath"],
                qr_code_path=cert["qrCodePath"],
                blockchain_tx_hash=cert.get("blockchainTxHash"),
                issue_timestamp=parse_timestamp(cert["issueTimestamp"]),
            )
            db.session.add(c)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database insert failed: {e}") from e

    def list_certificates(self, roll_number):
        try:
            s = db.session.get(Student, roll_number)
            if s is None:
                return []
            rows = (
                Certificate.query.filter_by(student_id=roll_number)
                .order_by(Certificate.issue_timestamp.desc(), Certificate.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database read failed: {e}") from e
        student = s.to_record()
        return [_joined(r.to_record(), student) for r in rows]

    def find_certificate_by_hash(self, cert_hash):
        try:
            c = Certificate.query.filter_by(certificate_hash=cert_hash).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database read failed: {e}") from e
        if c is None:
            raise NotFound(f"Certificate {cert_hash} not found.")
        row = _joined(c.to_record(), c.student.to_record())
        row["studentId"] = c.student_id
        return row

    def export_students(self):
        """Every student with nested certificates, credential hash included."""
        try:
            students = Student.query.order_by(Student.roll_number).all()
            records = []
            for s in students:
                record = s.to_record()
                record["certificates"] = [c.to_record() for c in s.certificates]
                records.append(record)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StorageError(f"database read failed: {e}") from e
        return records

    def list_all_students(self):
        return [redact(r) for r in self.export_students()]


class JsonStore:
    name = "json mirror"

    def __init__(self, path, logger=None):
        self.path = path
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()

    def _load(self):
        try:
            if not os.path.exists(self.path):
                return {}
            with open(self.path, "r", encoding="utf-8") as f:
                data = f.read()
            return json.loads(data) if data.strip() else {}
        except (OSError, ValueError) as e:
            self.logger.error(f"could not read {self.path}: {e}")
            raise StorageError("The JSON mirror could not be read.") from e

    def _save(self, data):
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=4)
            os.replace(tmp, self.path)
        except OSError as e:
            self.logger.error(f"could not write {self.path}: {e}")
            raise StorageError("The JSON mirror could not be written.") from e

    @staticmethod
    def _record(roll_number, entry):
        record = dict(entry)
        record["rollNumber"] = roll_number
        record.setdefault("certificates", [])
        return record

    def has_student(self, roll_number):
        return roll_number in self._load()

    def create_student(self, record):
        roll_number = record["rollNumber"]
        with self._lock:
            data = self._load()
            if roll_number in data:
                raise Conflict(f"Student with Roll Number {roll_number} already exists.")
            entry = {k: v for k, v in record.items() if k != "rollNumber"}
            entry["certificates"] = list(record.get("certificates", []))
            data[roll_number] = entry
            self._save(data)

    def get_student(self, roll_number):
        data = self._load()
        if roll_number not in data:
            raise NotFound(f"Student {roll_number} not found.")
        record = self._record(roll_number, data[roll_number])
        record.pop("certificates")
        return record

    def append_certificate(self, roll_number, cert):
        with self._lock:
            data = self._load()
            if roll_number not in data:
                raise NotFound(f"Student {roll_number} not found.")
            data[roll_number].setdefault("certificates", []).append(dict(cert))
            self._save(data)

    def list_certificates(self, roll_number):
        data = self._load()
        if roll_number not in data:
            return []
        student = data[roll_number]
        return [_joined(c, student) for c in _newest_first(student.get("certificates", []))]

    def find_certificate_by_hash(self, cert_hash, student_id=None):
        data = self._load()
        if student_id is not None:
            candidates = [student_id] if student_id in data else []
        else:
            candidates = list(data)
        for roll_number in candidates:
            student = data[roll_number]
            for c in student.get("certificates", []):
                if c.get("certificateHash") == cert_hash:
                    row = _joined(c, student)
                    row["studentId"] = roll_number
                    return row
        raise NotFound(f"Certificate {cert_hash} not found.")

    def export_students(self):
        return [self._record(k, v) for k, v in self._load().items()]

    def list_all_students(self):
        return [redact(r) for r in self.export_students()]

    def replace_all(self, records):
        data = {}
        for r in records:
            data[r["rollNumber"]] = {k: v for k, v in r.items() if k != "rollNumber"}
        with self._lock:
            self._save(data)
        return len(data)


class MirroredStore:
    """Database first, JSON mirror always; reads fall back to the mirror."""

    def __init__(self, primary, mirror, logger, read_fallback=True):
        self.primary = primary
        self.mirror = mirror
        self.logger = logger
        self.read_fallback = read_fallback

    def _read(self, op, *args, empty=None):
        missing = None
        try:
            result = getattr(self.primary, op)(*args)
            if result or empty is None:
                return result
        except StorageError as e:
            self.logger.warning(f"{op}: {self.primary.name} failed, falling back to {self.mirror.name}: {e}")
            if not self.read_fallback:
                raise
            return getattr(self.mirror, op)(*args)
        except NotFound as e:
            if not self.read_fallback:
                raise
            missing = e
        else:
            if not self.read_fallback:
                return result
        # The database answered; an unreadable mirror does not change that answer.
        try:
            return getattr(self.mirror, op)(*args)
        except StorageError as e:
            self.logger.warning(f"{op}: {self.mirror.name} unavailable, using the {self.primary.name} answer: {e}")
            if missing is not None:
                raise missing
            return result

    def has_student(self, roll_number):
        try:
            if self.primary.has_student(roll_number):
                return True
        except StorageError as e:
            self.logger.warning(f"has_student: {self.primary.name} failed: {e}")
        try:
            return self.mirror.has_student(roll_number)
        except StorageError as e:
            self.logger.warning(f"has_student: {self.mirror.name} failed: {e}")
            return False

    def create_student(self, record):
        roll_number = record["rollNumber"]
        if self.has_student(roll_number):
            raise Conflict(f"Student with Roll Number {roll_number} already exists.")
        primary_ok = True
        try:
            self.primary.create_student(record)
        except StorageError as e:
            primary_ok = False
            self.logger.warning(f"create_student {roll_number}: {self.primary.name} insert failed, continuing with {self.mirror.name}: {e}")
        try:
            self.mirror.create_student(record)
        except StorageError as e:
            if not primary_ok:
                raise StorageError(f"Could not store student {roll_number} in any store.") from e
            self.logger.error(f"create_student {roll_number}: {self.mirror.name} write failed: {e}")

    def get_student(self, roll_number):
        return self._read("get_student", roll_number)

    def append_certificate(self, roll_number, cert, student=None):
        primary_ok = True
        try:
            self.primary.append_certificate(roll_number, cert)
        except (StorageError, NotFound) as e:
            primary_ok = False
            self.logger.warning(f"append_certificate {roll_number}: {self.primary.name} insert failed, continuing with {self.mirror.name}: {e}")
        try:
            if student is not None and not self.mirror.has_student(roll_number):
                backfill = {k: v for k, v in student.items() if k != "certificates"}
                backfill.setdefault("hashedPassword", "")
                try:
                    self.mirror.create_student(backfill)
                except Conflict:
                    self.logger.info(f"append_certificate {roll_number}: already back-filled into {self.mirror.name}")
            self.mirror.append_certificate(roll_number, cert)
        except (StorageError, NotFound) as e:
            if not primary_ok:
                raise StorageError(f"Could not store certificate {cert['certificateHash']} in any store.") from e
            self.logger.error(f"append_certificate {roll_number}: {self.mirror.name} write failed: {e}")

    def list_certificates(self, roll_number):
        return self._read("list_certificates", roll_number, empty=[])

    def find_certificate_by_hash(self, cert_hash, student_id=None):
        try:
            return self.primary.find_certificate_by_hash(cert_hash)
        except StorageError as e:
            self.logger.warning(f"find_certificate_by_hash: {self.primary.name} failed, falling back to {self.mirror.name}: {e}")
            if not self.read_fallback:
                raise
        except NotFound:
            if not self.read_fallback:
                raise
            try:
                return self.mirror.find_certificate_by_hash(cert_hash, student_id)
            except StorageError as e:
                self.logger.warning(f"find_certificate_by_hash: {self.mirror.name} unavailable: {e}")
                raise NotFound(f"Certificate {cert_hash} not found.") from e
        return self.mirror.find_certificate_by_hash(cert_hash, student_id)

    def list_all_students(self):
        return self._read("list_all_students", empty=[])

    def sync_mirror(self):
        """Rebuild the JSON mirror from the database."""
        records = self.primary.export_students()
        count = self.mirror.replace_all(records)
        self.logger.info(f"sync_mirror: wrote {count} student records to {self.mirror.name}")
        return count
