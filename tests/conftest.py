from __future__ import annotations

from pathlib import Path

import pytest

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.fixture(scope="session")
def data_dir() -> Path:
    return DATA_DIR


@pytest.fixture
def pb_token(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setenv("PB_API_TOKEN", "env-token")
    monkeypatch.delenv("PB_USE_EU", raising=False)
    return "env-token"


@pytest.fixture
def company_csv() -> str:
    return (DATA_DIR / "companies.csv").read_text(encoding="utf-8")


@pytest.fixture
def note_csv() -> str:
    return (DATA_DIR / "notes.csv").read_text(encoding="utf-8")
