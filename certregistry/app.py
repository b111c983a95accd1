import os

import click
from flask import Flask, request, jsonify, send_from_directory
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from certregistry.accounts import create_student_account, login_student
from certregistry.chain import RegistryClient
from certregistry.config import Config
from certregistry.errors import CertRegistryError, NotFound
from certregistry.issuance import issue_certificate
from certregistry.models import db
from certregistry.stores import SqlStore, JsonStore, MirroredStore
from certregistry.verification import verify_hash


def _body():
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _profile(student):
    return {
        "rollNumber": student["rollNumber"],
        "name": student.get("studentName"),
        "department": student.get("department"),
        "yearOfPass": student.get("yearOfPass"),
        "class": student.get("studentClass"),
        "percentage": student.get("percentage"),
        "mailId": student.get("mailId"),
    }


def _certificate_row(row):
    return {
        "id": row.get("certificateHash"),
        "name": row.get("studentName") or "",
        "pdfDownloadUrl": row.get("pdfFilePath"),
        "photoFilePath": row.get("photoFilePath"),
        "qrCodePath": row.get("qrCodePath"),
        "blockchainTxHash": row.get("blockchainTxHash"),
        "issueTimestamp": row.get("issueTimestamp"),
        "department": row.get("department"),
        "yearOfPass": row.get("yearOfPass"),
        "studentClass": row.get("studentClass"),
        "percentage": row.get("percentage"),
    }


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    CORS(app)

    db.init_app(app)
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            app.logger.warning(f"Database unavailable, serving from the JSON mirror: {e}")

    store = MirroredStore(
        SqlStore(),
        JsonStore(app.config["STUDENT_DB_PATH"], logger=app.logger),
        app.logger,
        read_fallback=app.config["MIRROR_READ_FALLBACK"],
    )
    app.extensions["store"] = store
    app.extensions["registry"] = RegistryClient.from_config(app.config, Config.build_web3_provider(), logger=app.logger)

    def registry():
        return app.extensions["registry"]

    @app.errorhandler(CertRegistryError)
    def handle_domain_error(e):
        return jsonify({"success": False, "message": e.message}), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"success": False, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        app.logger.exception(f"Unhandled error on {request.path}")
        return jsonify({"success": False, "message": "An internal server error occurred."}), 500

    @app.route("/api/admin/create-student-account", methods=["POST"])
    def create_student():
        record = create_student_account(store, _body())
        return jsonify({"success": True, "message": f"Student {record['rollNumber']} account created successfully."})

    @app.route("/api/admin/issue-certificate", methods=["POST"])
    def issue():
        issued = issue_certificate(
            store,
            registry(),
            request.files.get("pdfFile"),
            request.files.get("studentPhoto"),
            request.form.get("studentId"),
        )
        return jsonify({
            "success": True,
            "message": "Certificate issued and blockchain transaction confirmed.",
            "studentId": issued.student_id,
            "hash": issued.cert_hash,
            "txHash": issued.tx_hash,
            "qrCodePath": issued.qr_code_path,
        })

    @app.route("/api/student/login", methods=["POST"])
    def login():
        result = login_student(store, _body())
        return jsonify({"success": True, "message": "Login successful.", **result})

    @app.route("/api/student/certificates/<roll_number>", methods=["GET"])
    def student_certificates(roll_number):
        try:
            student = store.get_student(roll_number)
        except NotFound:
            raise NotFound("Student roll number not found.")
        rows = store.list_certificates(roll_number)
        return jsonify({
            "success": True,
            "profile": _profile(student),
            "certificates": [_certificate_row(r) for r in rows],
        })

    @app.route("/api/admin/all-records", methods=["GET"])
    def all_records():
        return jsonify({"success": True, "records": store.list_all_students()})

    @app.route("/api/verifier/verify-hash", methods=["POST"])
    def verify():
        result = verify_hash(store, registry(), _body().get("certificateHash"))
        return jsonify({"success": True, **result})

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "service": "certificate-registry"}), 200

    @app.route("/")
    def index():
        index_path = os.path.join(app.config["PUBLIC_FOLDER"], "index.html")
        if os.path.exists(index_path):
            return send_from_directory(app.config["PUBLIC_FOLDER"], "index.html")
        return jsonify({"status": "ok", "service": "certificate-registry"}), 200

    @app.route("/<path:filename>", methods=["GET"])
    def public_file(filename):
        return send_from_directory(app.config["PUBLIC_FOLDER"], filename)

    @app.cli.command("sync-mirror")
    def sync_mirror_command():
        """Rebuild the JSON mirror from the database."""
        count = store.sync_mirror()
        click.echo(f"Wrote {count} student records to {app.config['STUDENT_DB_PATH']}")

    return app


app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    app.run(host="0.0.0.0", port=port)
