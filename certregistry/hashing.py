import hashlib
import re

HASH_PREFIX = "0x"
_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def sha256_file(path):
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def certificate_hash(path):
    return HASH_PREFIX + sha256_file(path)


def is_certificate_hash(value):
    return isinstance(value, str) and len(value) == 66 and bool(_HASH_RE.match(value))
