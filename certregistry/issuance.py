"""Certificate issuance pipeline.

stage uploads -> find student -> hash -> QR image -> chain submit/confirm ->
persist. A failure after staging removes every file the request created.
Nothing is undone on chain: a registered hash stays registered even when
persistence fails afterwards.
"""

import os
import time
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from werkzeug.utils import secure_filename

from certregistry.errors import CertRegistryError, NotFound, ValidationError
from certregistry.hashing import certificate_hash
from certregistry.models import format_timestamp
from certregistry.qr import generate_qr


@dataclass
class StagedUploads:
    pdf_path: str
    photo_path: str


@dataclass
class HashedDocument:
    cert_hash: str


@dataclass
class QrImage:
    path: str


@dataclass
class IssuedCertificate:
    student_id: str
    record: dict

    @property
    def cert_hash(self):
        return self.record["certificateHash"]

    @property
    def tx_hash(self):
        return self.record["blockchainTxHash"]

    @property
    def qr_code_path(self):
        return self.record["qrCodePath"]


def _present(f):
    return f is not None and bool(f.filename)


def upload_filename(original):
    name = secure_filename(original.replace(" ", "_")) or "upload"
    return f"{int(time.time() * 1000)}-{name}"


def save_upload(f, folder):
    os.makedirs(folder, exist_ok=True)
    filename = upload_filename(f.filename)
    path = os.path.join(folder, filename)
    base, ext = os.path.splitext(filename)
    i = 1
    while os.path.exists(path):
        path = os.path.join(folder, f"{base}_{i}{ext}")
        i += 1
    f.save(path)
    return path


def public_path(path, public_folder):
    rel = os.path.relpath(path, public_folder).replace(os.sep, "/")
    return "/" + rel


def qr_path(folder, student_id):
    return os.path.join(folder, f"{secure_filename(student_id) or 'student'}-{time.time_ns() // 1000}.png")


def cleanup(paths):
    for p in paths:
        if not p or not os.path.exists(p):
            continue
        try:
            os.remove(p)
        except OSError as e:
            current_app.logger.error(f"could not remove {p}: {e}")


def stage_uploads(pdf_file, photo_file, config):
    pdf_path = save_upload(pdf_file, config["CERTIFICATE_FOLDER"])
    try:
        photo_path = save_upload(photo_file, config["PHOTO_FOLDER"])
    except Exception:
        cleanup([pdf_path])
        raise
    return StagedUploads(pdf_path, photo_path)


def hash_document(staged):
    return HashedDocument(certificate_hash(staged.pdf_path))


def render_qr(hashed, student_id, config):
    path = qr_path(config["QR_FOLDER"], student_id)
    generate_qr(hashed.cert_hash, path)
    return QrImage(path)


def persist(store, student, staged, hashed, qr, receipt, config):
    public = config["PUBLIC_FOLDER"]
    record = {
        "certificateHash": hashed.cert_hash,
        "pdfFilePath": public_path(staged.pdf_path, public),
        "photoFilePath": public_path(staged.photo_path, public),
        "qrCodePath": public_path(qr.path, public),
        "blockchainTxHash": receipt.tx_hash,
        "issueTimestamp": format_timestamp(datetime.utcnow()),
    }
    store.append_certificate(student["rollNumber"], record, student=student)
    return IssuedCertificate(student["rollNumber"], record)


def issue_certificate(store, registry, pdf_file, photo_file, student_id):
    if not _present(pdf_file) or not _present(photo_file):
        raise ValidationError("Both PDF certificate and student photo must be uploaded.")
    student_id = (student_id or "").strip()
    if not student_id:
        raise ValidationError("Student ID is required.")

    config = current_app.config
    logger = current_app.logger
    staged = stage_uploads(pdf_file, photo_file, config)
    created = [staged.pdf_path, staged.photo_path]
    try:
        try:
            student = store.get_student(student_id)
        except NotFound:
            raise NotFound(f"Student with ID {student_id} must be registered first via the 'Create Student Account' page.")
        hashed = hash_document(staged)
        qr = render_qr(hashed, student_id, config)
        created.append(qr.path)
        receipt = registry.submit_certificate(hashed.cert_hash, student_id)
        logger.info(f"certificate {hashed.cert_hash} registered for {student_id} in tx {receipt.tx_hash} (block {receipt.block_number})")
        try:
            issued = persist(store, student, staged, hashed, qr, receipt, config)
        except CertRegistryError:
            logger.error(f"certificate {hashed.cert_hash} is on chain (tx {receipt.tx_hash}) but was not stored")
            raise
    except CertRegistryError as e:
        logger.warning(f"certificate issuance for {student_id} failed: {e.message}")
        cleanup(created)
        raise
    except Exception as e:
        logger.exception("Certificate Issuance Error")
        cleanup(created)
        raise CertRegistryError(f"Failed to issue certificate. Details: {e}") from e
    return issued
