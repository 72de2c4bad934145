import pytest
from unittest.mock import MagicMock

from narrative.engine import NarrativeEngine
from narrative.path_engine.path_engine import PathExpressionEngine
from narrative.system.models import EngineSettings
from narrative.template_evaluator.include_resolvers import DictIncludeResolver
from narrative.template_evaluator.template_evaluator import TemplateEvaluator


# --- Core Components ---

@pytest.fixture
def path_engine():
    """Provides a fresh PathExpressionEngine."""
    return PathExpressionEngine()

@pytest.fixture
def include_resolver():
    """Provides an in-memory resolver with a few sub-templates registered."""
    return DictIncludeResolver({
        "greeting": "Hi {{include.name}}!",
        "bullet": "- {{include.text}}\n",
        "self": "again {% include self %}",
        "peek": "[{% if include.exists() %}bag{% endif %}]",
    })

@pytest.fixture
def evaluator(path_engine, include_resolver):
    """Provides a TemplateEvaluator wired to the default engine and the dict resolver."""
    return TemplateEvaluator(path_engine, include_resolver=include_resolver)

@pytest.fixture
def engine(include_resolver):
    """Provides a NarrativeEngine with the dict resolver and a small include depth."""
    return NarrativeEngine(include_resolver=include_resolver, settings=EngineSettings(max_include_depth=8))

@pytest.fixture
def mock_include_resolver():
    """Provides a mock IncludeResolver; configure fetch_include per test."""
    resolver = MagicMock(name="MockIncludeResolver")
    resolver.fetch_include.return_value = "mock include"
    return resolver


# --- Data Items ---

@pytest.fixture
def patient_item():
    """A nested record shaped like typical domain data."""
    return {
        "name": "World",
        "active": True,
        "user": {"name": "Ann", "roles": ["admin", "editor"]},
        "items": [1, 2, 3],
        "contacts": [
            {"system": "phone", "value": "555-0100", "tags": ["home"]},
            {"system": "email", "value": "ann@example.org", "tags": []},
        ],
    }
