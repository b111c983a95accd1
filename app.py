"""
Entrypoint for the certificate registry API: issues student certificates,
records their hashes on the registry contract and verifies them.
The application lives under the `certregistry/` package; prefer:
  gunicorn certregistry.app:app
"""

import os
from certregistry.app import app  # noqa: F401

if __name__ == "__main__":
    from certregistry.app import app as _app
    port = int(os.getenv("PORT", "5000"))
    _app.run(host="0.0.0.0", port=port)
