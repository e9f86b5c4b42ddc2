from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(scope="session")
def app():
    # Must be set before importing modules that read settings at import time.
    os.environ["OPENAI_API_KEY"] = "sk-test"
    os.environ["PUBLIC_BASE_URL"] = "https://relay.example.com"
    os.environ["TWILIO_RECORD_CALLS"] = "true"

    import importlib

    # Ensure clean import with the test settings.
    for module_name in [
        "config.settings",
        "integrations.twilio_client",
        "integrations.outbound_call",
        "api.dependencies",
        "api.twilio_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
