"""Tests for the NarrativeEngine facade."""
import logging
from unittest.mock import MagicMock

import pytest

from narrative import NarrativeEngine
from narrative.path_engine.path_engine import PathExpressionEngine
from narrative.system.errors import CyclicIncludeError, ExpressionEvaluationError, TemplateSyntaxError, UnresolvedIncludeError
from narrative.system.models import EngineSettings
from narrative.template_evaluator.include_resolvers import DictIncludeResolver


def test_render(engine, patient_item):
    assert engine.render("Dear {{user.name}},", patient_item) == "Dear Ann,"

def test_default_expression_engine():
    engine = NarrativeEngine()
    assert isinstance(engine.expression_engine, PathExpressionEngine)
    assert engine.settings == EngineSettings()
    assert engine.include_resolver is None

def test_parse_once_evaluate_many(engine):
    document = engine.parse("{{name}};", "greeting")
    assert document.name == "greeting"
    assert engine.evaluate(document, {"name": "a"}) == "a;"
    assert engine.evaluate(document, {"name": "b"}) == "b;"

def test_parse_errors_propagate(engine):
    with pytest.raises(TemplateSyntaxError):
        engine.parse("{% if x %}", "broken")

def test_environment_from_settings():
    engine = NarrativeEngine(settings=EngineSettings(environment={"site": "North"}))
    assert engine.render("{{%site}}", {}) == "North"

def test_set_environment_variable(engine):
    engine.set_environment_variable("site", "South")
    assert engine.render("at {{%site}}", {}) == "at South"

def test_settings_environment_applied_to_custom_engine():
    expression_engine = MagicMock(name="MockExpressionEngine")
    NarrativeEngine(expression_engine=expression_engine, settings=EngineSettings(environment={"k": "v"}))
    expression_engine.set_environment_variable.assert_called_once_with("k", "v")

def test_include_resolver_can_be_set_later():
    engine = NarrativeEngine()
    with pytest.raises(UnresolvedIncludeError):
        engine.render("{% include footer %}", {})
    engine.include_resolver = DictIncludeResolver({"footer": "-- end"})
    assert engine.render("{% include footer %}", {}) == "-- end"
    assert engine.evaluator.include_resolver is engine.include_resolver

def test_max_include_depth_from_settings(engine):
    with pytest.raises(CyclicIncludeError) as excinfo:
        engine.render("{% include self %}", {})
    assert excinfo.value.max_depth == 8

def test_evaluation_failure_is_logged_and_raised(engine, caplog):
    with caplog.at_level(logging.ERROR, logger="narrative.engine"):
        with pytest.raises(ExpressionEvaluationError):
            engine.render("{{missing}}", {}, source_name="letter")
    assert "Evaluation of template 'letter' failed" in caplog.text

def test_app_context_reaches_evaluator(engine, mocker):
    evaluate_spy = mocker.spy(engine.evaluator, "evaluate")
    engine.render("x", {}, app_context="ctx")
    assert evaluate_spy.call_args.args[2] == "ctx"
