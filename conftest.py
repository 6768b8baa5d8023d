"""Root conftest: puts .env.test into the environment before settings load.

Real environment variables win, so CI can point the suite elsewhere.
"""
from __future__ import annotations

import os
from pathlib import Path

_ENV_FILE = Path(os.environ.get("GUEST_MESSAGING_TEST_ENV", Path(__file__).resolve().parent / ".env.test"))

if _ENV_FILE.exists():
    for raw in _ENV_FILE.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip().strip("'\""))
