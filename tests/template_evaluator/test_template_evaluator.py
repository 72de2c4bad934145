"""Tests for the TemplateEvaluator component."""
from unittest.mock import MagicMock

import pytest

from narrative.system.errors import (
    CyclicIncludeError, ExpressionEvaluationError, TemplateSyntaxError, UnresolvedIncludeError,
)
from narrative.template_evaluator.template_environment import IncludeParameterBag, TemplateEnvironment
from narrative.template_evaluator.template_evaluator import TemplateEvaluator
from narrative.template_parser.template_parser import parse_template


@pytest.fixture
def render(evaluator, path_engine):
    """Returns a function that parses and renders source with the shared evaluator."""
    def _render(source, item, app_context=None):
        document = parse_template(source, "test", path_engine)
        return evaluator.evaluate(document, item, app_context)
    return _render


# --- Literals and statements ---

@pytest.mark.parametrize("source", ["", "plain text", "braces { } and % signs }} %}", "multi\nline\n"])
def test_marker_free_template_renders_unchanged(render, source, patient_item):
    assert render(source, patient_item) == source
    assert render(source, {}) == source

def test_statement_interpolation(render):
    assert render("Hello {{name}}!", {"name": "World"}) == "Hello World!"

def test_statement_renders_collections_and_booleans(render, patient_item):
    assert render("{{items}} {{active}} {{user.nickname}}|", patient_item) == "123 true |"

def test_unresolved_statement_fails(render):
    with pytest.raises(ExpressionEvaluationError, match="Unresolved name 'missing'"):
        render("before {{missing}} after", {})


# --- Conditionals ---

@pytest.mark.parametrize("active, expected", [(False, "NO"), (True, "YES")])
def test_if_else(render, active, expected):
    assert render("{% if active %}YES{% else %}NO{% endif %}", {"active": active}) == expected

def test_if_with_empty_else(render):
    assert render("{% if active %}YES{% endif %}", {"active": False}) == ""

def test_if_only_evaluates_chosen_branch(render):
    # The else branch would fail if it were evaluated
    assert render("{% if active %}ok{% else %}{{missing}}{% endif %}", {"active": True}) == "ok"


# --- Loops ---

def test_loop(render):
    assert render("{% loop x in items %}{{x}},{% endloop %}", {"items": [1, 2, 3]}) == "1,2,3,"

def test_loop_over_empty_sequence(render):
    assert render("{% loop x in items %}{{x}},{% endloop %}", {"items": []}) == ""

def test_loop_variable_not_visible_after_loop(render):
    with pytest.raises(ExpressionEvaluationError, match="Unresolved name 'x'"):
        render("{% loop x in items %}{{x}}{% endloop %}{{x}}", {"items": [1, 2]})

def test_loop_variable_not_visible_in_sibling_loop(render):
    with pytest.raises(ExpressionEvaluationError, match="Unresolved name 'x'"):
        render("{% loop x in items %}{% endloop %}{% loop y in items %}{{x}}{% endloop %}", {"items": [1]})

def test_loop_variable_shadows_item_field(render):
    assert render("{% loop x in items %}{{x}},{% endloop %}{{x}}", {"x": "HEAD", "items": [1, 2, 3]}) == "1,2,3,HEAD"

def test_loop_over_field_named_like_variable(render):
    source = "{% loop name in name %}[{{name.family}}]{% endloop %}"
    item = {"name": [{"family": "Smith"}, {"family": "Jones"}]}
    assert render(source, item) == "[Smith][Jones]"

def test_nested_loops_see_outer_variable(render, patient_item):
    source = "{% loop c in contacts %}{% loop t in c.tags %}{{c.system}}:{{t}};{% endloop %}{% endloop %}"
    assert render(source, patient_item) == "phone:home;"

def test_inner_loop_shadows_outer_variable(render):
    source = "{% loop x in outer %}{% loop x in inner %}{{x}}{% endloop %}{{x}}|{% endloop %}"
    assert render(source, {"outer": ["a", "b"], "inner": [1, 2]}) == "12a|12b|"

def test_nesting_is_compositional(render, patient_item):
    source = (
        "{% loop c in contacts %}"
        "[{% if c.tags.exists() %}{% loop t in c.tags %}#{{t}}{% endloop %}{% else %}none{% endif %}]"
        "{% endloop %}"
    )
    assert render(source, patient_item) == "[#home][none]"


# --- Includes ---

def test_include_with_parameter(render):
    source = '{% include "greeting" name=user.name %}'
    assert render(source, {"user": {"name": "Ann"}}) == "Hi Ann!"

def test_include_parameters_bound_in_caller_context(render, patient_item):
    source = "{% loop c in contacts %}{% include bullet text=c.value %}{% endloop %}"
    assert render(source, patient_item) == "- 555-0100\n- ann@example.org\n"

def test_include_does_not_see_caller_variables(render, include_resolver):
    include_resolver.register("leaky", "{{x}}")
    with pytest.raises(ExpressionEvaluationError, match="Unresolved name 'x'"):
        render("{% loop x in items %}{% include leaky %}{% endloop %}", {"items": [1]})

def test_include_sees_parameter_bag_and_data_item(render, include_resolver):
    include_resolver.register("card", "{{include.title}} for {{name}}")
    assert render("{% include card title='Summary' %}", {"name": "Ann"}) == "Summary for Ann"

def test_include_bag_shadows_item_include_field(render):
    item = {"user": {"name": "Ann"}, "include": {"name": "X"}}
    assert render('{% include "greeting" name=user.name %}', item) == "Hi Ann!"

def test_include_bag_bound_without_parameters(render):
    assert render("{% include peek %}", {}) == "[bag]"

def test_unknown_include(render):
    with pytest.raises(UnresolvedIncludeError) as excinfo:
        render("{% include nowhere %}", {})
    assert excinfo.value.include_name == "nowhere"

def test_include_without_resolver(path_engine):
    evaluator = TemplateEvaluator(path_engine)
    document = parse_template("{% include greeting %}", "test", path_engine)
    with pytest.raises(UnresolvedIncludeError, match="No include resolver"):
        evaluator.evaluate(document, {})

def test_include_source_syntax_error_propagates(render, include_resolver):
    include_resolver.register("broken", "{% if x %}")
    with pytest.raises(TemplateSyntaxError) as excinfo:
        render("{% include broken %}", {})
    assert excinfo.value.template_name == "broken"

def test_include_is_fetched_on_every_evaluation(path_engine, mock_include_resolver):
    evaluator = TemplateEvaluator(path_engine, include_resolver=mock_include_resolver)
    document = parse_template("{% include part %}", "test", path_engine)
    assert evaluator.evaluate(document, {}) == "mock include"
    assert evaluator.evaluate(document, {}) == "mock include"
    assert mock_include_resolver.fetch_include.call_count == 2
    mock_include_resolver.fetch_include.assert_called_with("part")

def test_self_include_is_cyclic(render):
    with pytest.raises(CyclicIncludeError) as excinfo:
        render("{% include self %}", {})
    assert excinfo.value.max_depth == 32
    assert len(excinfo.value.include_chain) == 33
    assert set(excinfo.value.include_chain) == {"self"}

def test_include_depth_is_configurable(path_engine, include_resolver):
    include_resolver.register("a", "{% include b %}")
    include_resolver.register("b", "B")
    shallow = TemplateEvaluator(path_engine, include_resolver=include_resolver, max_include_depth=1)
    document = parse_template("{% include a %}", "test", path_engine)
    with pytest.raises(CyclicIncludeError):
        shallow.evaluate(document, {})
    deep_enough = TemplateEvaluator(path_engine, include_resolver=include_resolver, max_include_depth=2)
    assert deep_enough.evaluate(document, {}) == "B"


# --- Re-evaluation and compile cache ---

def test_document_reused_with_different_items(evaluator, path_engine, mocker):
    compile_spy = mocker.spy(path_engine, "compile")
    document = parse_template("{% loop x in items %}{{x}}{% endloop %}/{{name}}", "test", path_engine)
    assert evaluator.evaluate(document, {"items": [1, 2], "name": "a"}) == "12/a"
    assert evaluator.evaluate(document, {"items": [], "name": "b"}) == "/b"
    assert evaluator.evaluate(document, {"items": ["z"], "name": "c"}) == "z/c"
    # One compile per expression, regardless of how often it ran
    assert compile_spy.call_count == 3
    assert document.body[0].iterable.is_compiled

def test_failed_evaluation_returns_nothing(evaluator, path_engine):
    document = parse_template("lots of text {{name}} then {{missing}}", "test", path_engine)
    result = None
    with pytest.raises(ExpressionEvaluationError):
        result = evaluator.evaluate(document, {"name": "x"})
    assert result is None


# --- Host resolver and engine calls ---

def test_resolve_constant_uses_scope_chain_only(evaluator):
    parent = TemplateEnvironment(bindings={"x": 1})
    child = parent.extend({"y": 2})
    assert evaluator.resolve_constant(child, "x") == 1
    assert evaluator.resolve_constant(child, "y") == 2
    assert evaluator.resolve_constant(child, "z") is None
    assert evaluator.resolve_constant({"x": 1}, "x") is None

def test_engine_receives_environment_item_and_host():
    engine = MagicMock(name="MockExpressionEngine")
    engine.compile.return_value = "compiled"
    engine.evaluate_to_string.return_value = "value"
    evaluator = TemplateEvaluator(engine)
    item = {"k": "v"}
    document = parse_template("<{{ k }}>", "test", engine)

    assert evaluator.evaluate(document, item, app_context="app") == "<value>"

    engine.compile.assert_called_once_with("k")
    env, root, current, compiled, host = engine.evaluate_to_string.call_args.args
    assert isinstance(env, TemplateEnvironment)
    assert env.external_context == "app"
    assert root is item and current is item
    assert compiled == "compiled"
    assert host is evaluator

def test_include_environment_keeps_external_context(include_resolver):
    engine = MagicMock(name="MockExpressionEngine")
    engine.compile.return_value = "compiled"
    engine.evaluate.return_value = ["Ann"]
    engine.evaluate_to_string.return_value = "x"
    engine.parse_partial.side_effect = lambda text, offset: ("param", len(text))
    evaluator = TemplateEvaluator(engine, include_resolver=include_resolver)
    document = parse_template("{% include greeting name=user.name %}", "test", engine)

    evaluator.evaluate(document, {}, app_context="app")

    caller_env = engine.evaluate.call_args.args[0]
    include_env = engine.evaluate_to_string.call_args.args[0]
    assert caller_env.include_chain == ()
    assert include_env.include_chain == ("greeting",)
    assert include_env.external_context == "app"
    bag = include_env.lookup("include")
    assert isinstance(bag, IncludeParameterBag)
    assert dict(bag) == {"name": ["Ann"]}
