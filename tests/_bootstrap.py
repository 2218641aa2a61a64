"""Test helper that normalizes sys.path and environment defaults."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


_DEFAULT_ENV_VARS: dict[str, str] = {
    "PODIO_CLIENT_ID": "test-client-id",
    "PODIO_CLIENT_SECRET": "test-client-secret",
    "PODIO_PACKING_SPEC_APP_ID": "29797638",
    "PODIO_PACKING_SPEC_APP_TOKEN": "packing-app-token",
    "PODIO_CONTACTS_APP_ID": "26969025",
    "PODIO_CONTACTS_APP_TOKEN": "contacts-app-token",
    "TOKEN_ENCRYPTION_SECRET": "test-secret",
    "STORAGE_SQLITE_PATH": str(Path(tempfile.gettempdir()) / "podio-portal-tests.db"),
}

for key, value in _DEFAULT_ENV_VARS.items():
    os.environ.setdefault(key, value)
