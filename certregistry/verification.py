from flask import current_app

from certregistry.errors import NotFound, StorageError, ValidationError
from certregistry.hashing import is_certificate_hash
from certregistry.models import parse_timestamp


def _issue_date(value):
    if not value:
        return "N/A"
    try:
        return parse_timestamp(value).strftime("%d/%m/%Y, %H:%M:%S")
    except ValueError:
        return value


def student_metadata(store, student_id):
    """Profile-only metadata for a hash registered on chain but not stored locally."""
    if not student_id:
        return None
    try:
        student = store.get_student(student_id)
    except NotFound:
        return None
    except StorageError as e:
        current_app.logger.warning(f"student lookup for {student_id} failed: {e}")
        return None
    return {
        "studentId": student_id,
        "studentName": student.get("studentName"),
        "department": student.get("department"),
        "yearOfPass": student.get("yearOfPass"),
        "issueDate": "N/A",
        "pdfDownloadUrl": "N/A",
        "photoFilePath": "N/A",
    }


def certificate_metadata(store, cert_hash, student_id):
    try:
        row = store.find_certificate_by_hash(cert_hash, student_id)
    except NotFound:
        return student_metadata(store, student_id)
    except StorageError as e:
        current_app.logger.warning(f"metadata lookup for {cert_hash} failed: {e}")
        return None
    return {
        "studentId": row.get("studentId"),
        "studentName": row.get("studentName"),
        "department": row.get("department"),
        "yearOfPass": row.get("yearOfPass"),
        "issueDate": _issue_date(row.get("issueTimestamp")),
        "pdfDownloadUrl": row.get("pdfFilePath"),
        "photoFilePath": row.get("photoFilePath"),
    }


def verify_hash(store, registry, cert_hash):
    if isinstance(cert_hash, str):
        cert_hash = cert_hash.strip()
    if not is_certificate_hash(cert_hash):
        raise ValidationError("Invalid certificate hash format. Must be a 0x-prefixed bytes32 hex string (66 characters long).")
    cert_hash = cert_hash[:2] + cert_hash[2:].lower()

    details = registry.get_certificate_details(cert_hash)
    metadata = None
    if details.registered:
        status = "VALID"
        metadata = certificate_metadata(store, cert_hash, details.student_id or None)
    else:
        status = "INVALID"
    return {
        "status": status,
        "blockchainDetails": {
            "issuer": details.issuer,
            "timestamp": str(details.timestamp),
            "isValid": details.is_valid,
            "studentId": details.student_id,
        },
        "metadata": metadata,
    }
