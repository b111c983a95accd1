import os


class Config:
    _root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    _default_db = os.path.join(_root, "local.db")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL") or f"sqlite:///{_default_db}"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PUBLIC_FOLDER = os.getenv("PUBLIC_FOLDER") or os.path.join(_root, "public")
    CERTIFICATE_FOLDER = os.getenv("CERTIFICATE_FOLDER") or os.path.join(PUBLIC_FOLDER, "certificates")
    PHOTO_FOLDER = os.getenv("PHOTO_FOLDER") or os.path.join(PUBLIC_FOLDER, "imgs")
    QR_FOLDER = os.getenv("QR_FOLDER") or os.path.join(PHOTO_FOLDER, "qrcodes")
    STUDENT_DB_PATH = os.getenv("STUDENT_DB_PATH") or os.path.join(_root, "student_db.json")
    MIRROR_READ_FALLBACK = os.getenv("MIRROR_READ_FALLBACK", "1").lower() not in {"0", "false", "no"}
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(20 * 1024 * 1024)))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))
    GANACHE_HOST = os.getenv("GANACHE_HOST")
    GANACHE_PORT = os.getenv("GANACHE_PORT")
    WEB3_PROVIDER = os.getenv("WEB3_PROVIDER")
    CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS")
    CONTRACT_ABI_PATH = os.getenv("CONTRACT_ABI_PATH") or os.path.join(_root, "build", "contracts", "CertificateRegistry.json")
    ADMIN_WALLET = os.getenv("ADMIN_WALLET")
    ADMIN_PRIVATE_KEY = os.getenv("ADMIN_PRIVATE_KEY")

    @staticmethod
    def build_web3_provider():
        p = os.getenv("WEB3_PROVIDER")
        if p:
            return p
        h = os.getenv("GANACHE_HOST")
        r = os.getenv("GANACHE_PORT")
        if h and r:
            return f"http://{h}:{r}"
        return os.getenv("HTTP_PROVIDER", "http://127.0.0.1:7545")
