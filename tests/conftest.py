import io
import os
import tempfile

import pytest

_ENV_DIR = tempfile.mkdtemp(prefix="certregistry-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_ENV_DIR, 'import.db')}")
os.environ.setdefault("STUDENT_DB_PATH", os.path.join(_ENV_DIR, "student_db.json"))
os.environ.setdefault("PUBLIC_FOLDER", os.path.join(_ENV_DIR, "public"))

from certregistry.app import create_app  # noqa: E402
from certregistry.chain import CertificateDetails, ChainReceipt, ZERO_ADDRESS  # noqa: E402

ISSUER = "0x9C9ad0F8cbCADbDf2f8E548730b5Cc6F826633A2"


class FakeRegistry:
    """In-memory stand-in for the registry contract."""

    def __init__(self):
        self.records = {}
        self.calls = []
        self.fail = None
        self._tx = 0

    def submit_certificate(self, cert_hash, student_id):
        self.calls.append(("submit", cert_hash, student_id))
        if self.fail is not None:
            raise self.fail
        self._tx += 1
        self.records[cert_hash] = CertificateDetails(
            issuer=ISSUER, timestamp=1700000000 + self._tx, is_valid=True, student_id=student_id
        )
        return ChainReceipt(tx_hash="0x" + f"{self._tx:064x}", block_number=self._tx)

    def get_certificate_details(self, cert_hash):
        self.calls.append(("details", cert_hash))
        return self.records.get(cert_hash, CertificateDetails(ZERO_ADDRESS, 0, False, ""))


@pytest.fixture
def app(tmp_path):
    public = tmp_path / "public"
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "PUBLIC_FOLDER": str(public),
        "CERTIFICATE_FOLDER": str(public / "certificates"),
        "PHOTO_FOLDER": str(public / "imgs"),
        "QR_FOLDER": str(public / "imgs" / "qrcodes"),
        "STUDENT_DB_PATH": str(tmp_path / "student_db.json"),
        "BCRYPT_ROUNDS": 4,
    })
    app.extensions["registry"] = FakeRegistry()
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def registry(app):
    return app.extensions["registry"]


@pytest.fixture
def store(app):
    return app.extensions["store"]


def stored_files(app):
    found = []
    for root, _dirs, files in os.walk(app.config["PUBLIC_FOLDER"]):
        found.extend(os.path.join(root, f) for f in files)
    return sorted(found)


def create_student(client, roll="R100", name="Asha", password="pw123", **extra):
    body = {"rollNumber": roll, "mailId": f"{roll.lower()}@example.edu", "password": password, "studentName": name}
    body.update(extra)
    return client.post("/api/admin/create-student-account", json=body)


def issue(client, student_id="R100", document=b"%PDF-1.4 certificate", photo=b"\x89PNG photo"):
    data = {
        "studentId": student_id,
        "pdfFile": (io.BytesIO(document), "final certificate.pdf"),
        "studentPhoto": (io.BytesIO(photo), "photo.png"),
    }
    return client.post("/api/admin/issue-certificate", data=data, content_type="multipart/form-data")
