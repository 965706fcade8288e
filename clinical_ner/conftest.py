from dataclasses import fields

import pytest

from clinical_ner.client import METRICS, Metrics
from clinical_ner.config import Settings


@pytest.fixture
def settings():
    return Settings(api_key="test-key")


@pytest.fixture
def two_results():
    # Shape of a MetaMapLite JSON response for "chest pain and fever"
    return [
        {
            "matchedtext": "chest pain",
            "start": 0,
            "length": 10,
            "evlist": [
                {
                    "conceptinfo": {
                        "cui": "C0008031",
                        "preferredname": "Chest Pain",
                        "semantictypes": ["sosy"],
                    }
                }
            ],
        },
        {
            "matchedtext": "fever",
            "start": 15,
            "length": 5,
            "evlist": [
                {
                    "conceptinfo": {
                        "cui": "C0015967",
                        "preferredname": "Fever",
                        "semantictypes": ["sosy", "fndg"],
                    }
                }
            ],
        },
    ]


@pytest.fixture(autouse=True)
def fresh_metrics(monkeypatch):
    fresh = Metrics()
    for f in fields(Metrics):
        monkeypatch.setattr(METRICS, f.name, getattr(fresh, f.name))
    return METRICS


@pytest.fixture
def no_dotenv(monkeypatch):
    # a developer's own .env must not leak into environment-driven tests
    monkeypatch.setattr("clinical_ner.config.load_dotenv", lambda *args, **kwargs: False)
