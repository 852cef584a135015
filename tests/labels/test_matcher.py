import pytest

from fleetsetup.labels.expression import Atom, escape
from fleetsetup.labels.matcher import LabelMatcher
from fleetsetup.nodes.models import Node


def node(name, *labels):
    return Node(name=name, root_path="/w", labels=frozenset(labels))


@pytest.mark.parametrize("expression", [None, "", "   ", "\t\n"])
def test_blank_expression_matches_every_node(expression):
    m = LabelMatcher()
    assert m.matches(node("n1"), expression)
    assert m.matches(node("n2", "linux"), expression)
    assert m.effective_expression(expression) == ""


def test_expression_is_evaluated_against_labels():
    m = LabelMatcher()
    assert m.matches(node("n1", "linux", "docker"), "linux && docker")
    assert not m.matches(node("n2", "linux"), "linux && docker")


def test_node_name_counts_as_label():
    assert LabelMatcher().matches(node("build-01"), "build-01 || gpu")


def test_malformed_text_falls_back_to_literal_label():
    m = LabelMatcher()
    legacy = "my build host"

    assert m.compile(legacy) == Atom(legacy)
    assert m.effective_expression(legacy) == '"my build host"'
    assert m.matches(node("x", "my build host"), legacy)
    assert not m.matches(node("my"), legacy)
    assert not m.matches(node("y", "build"), legacy)


def test_unbalanced_input_never_raises():
    m = LabelMatcher()
    for text in ["(linux", "linux &&", '"open', "))", "a <->"]:
        assert m.matches(node("n1", "linux"), text) is False
        assert m.matches(node("n2", text), text) is True


def test_valid_expression_is_returned_verbatim():
    assert LabelMatcher().effective_expression("linux && !arm") == "linux && !arm"


def test_compiled_expressions_are_cached():
    m = LabelMatcher()
    assert m.compile("a || b") is m.compile("a || b")


def test_deeply_nested_text_never_raises():
    m = LabelMatcher()
    deep = "(" * 2000 + "linux" + ")" * 2000
    chain = " && ".join(["a"] * 500)

    assert m.matches(node("n1", "linux"), deep) is False
    assert m.matches(node("n2", deep), deep) is True
    assert m.matches(node("n3", "a"), chain) is False
    assert m.effective_expression(chain) == escape(chain)
