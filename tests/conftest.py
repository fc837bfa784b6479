import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from fastapi.testclient import TestClient

from catalog_chat.app import create_app
from catalog_chat.catalog import load_catalog
from catalog_chat.config import Settings

NEON_BOX = {"name": "Neon Box A", "price": 500000}


class StubGenerator:
    """Generator stub used to avoid external API calls in tests."""

    def __init__(self, reply: str = "Stub reply.", error: Exception = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "products.json"
    path.write_text(
        json.dumps(
            {
                "products": [
                    {"keywords": ["neon box", "harga"], "data": NEON_BOX},
                    {"keywords": ["huruf timbul"], "data": {"name": "Huruf Timbul", "price": 350000}},
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(tmp_path, catalog_file):
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-test",
        catalog_path=catalog_file,
        prompts_dir=tmp_path / "prompts",
        max_history_tokens=1500,
        generation_timeout_sec=5,
        generation_temperature=0.2,
        max_output_tokens=256,
        session_ttl_sec=0,
        max_sessions=0,
    )


@pytest.fixture
def stub_generator():
    return StubGenerator()


@pytest.fixture
def app(settings, stub_generator):
    return create_app(settings=settings, generator=stub_generator)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def catalog(catalog_file):
    return load_catalog(catalog_file)
