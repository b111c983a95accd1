from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


def format_timestamp(value):
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value):
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed.replace(tzinfo=None)


class Student(db.Model):
    __tablename__ = "students"

    roll_number = db.Column(db.String(64), primary_key=True)
    mail_id = db.Column(db.String(255), nullable=False)
    hashed_password = db.Column(db.String(255), nullable=False)
    student_name = db.Column(db.String(255), nullable=False)
    student_class = db.Column(db.String(64), nullable=False, default="N/A")
    department = db.Column(db.String(255), nullable=False, default="N/A")
    year_of_pass = db.Column(db.Integer, nullable=True)
    percentage = db.Column(db.String(32), nullable=False, default="N/A")
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_record(self):
        return {
            "rollNumber": self.roll_number,
            "mailId": self.mail_id,
            "hashedPassword": self.hashed_password,
            "studentName": self.student_name,
            "studentClass": self.student_class,
            "department": self.department,
            "yearOfPass": self.year_of_pass,
            "percentage": self.percentage,
        }


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(64), db.ForeignKey("students.roll_number"), nullable=False)
    certificate_hash = db.Column(db.String(66), unique=True, nullable=False)
    pdf_file_path = db.Column(db.String(512), nullable=False)
    photo_file_path = db.Column(db.String(512), nullable=False)
    qr_code_path = db.Column(db.String(512), nullable=False)
    blockchain_tx_hash = db.Column(db.String(66), nullable=True)
    issue_timestamp = db.Column(db.DateTime, nullable=False)

    student = db.relationship("Student", backref=db.backref("certificates", lazy=True, order_by="Certificate.id"))

    def to_record(self):
        return {
            "certificateHash": self.certificate_hash,
            "pdfFilePath": self.pdf_file_path,
            "photoFilePath": self.photo_file_path,
            "qrCodePath": self.qr_code_path,
            "blockchainTxHash": self.blockchain_tx_hash,
            "issueTimestamp": format_timestamp(self.issue_timestamp),
        }
