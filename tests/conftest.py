import json
from pathlib import Path

import pytest

from planalign.alignment.extractor import extract

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load(name: str):
    return json.loads((FIXTURES_DIR / name).read_text(encoding="utf-8"))


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def detox_protocol():
    return _load("detox_protocol.json")


@pytest.fixture
def legacy_protocol():
    return _load("legacy_protocol.json")


@pytest.fixture
def plan_partial():
    return _load("plan_partial.json")


@pytest.fixture
def plan_aligned():
    return _load("plan_aligned.json")


@pytest.fixture
def detox_elements(detox_protocol):
    return extract(detox_protocol)
