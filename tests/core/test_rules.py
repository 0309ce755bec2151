"""Test validation rule expressions."""

import pytest

from relorm.core.rules import RuleTerm, ValidationRule, parse_rule, register_rule
from relorm.errors import InvalidRuleError


def test_parse_single_and_combined_terms():
    assert parse_rule("notEmpty") == [RuleTerm("notEmpty")]
    assert parse_rule("between(1,120)") == [RuleTerm("between", (1, 120))]
    assert parse_rule("notEmpty && digit") == [RuleTerm("notEmpty"), RuleTerm("digit")]
    assert parse_rule("regex('^[a-z]+$') && length(2, 5)") == [
        RuleTerm("regex", ("^[a-z]+$",)),
        RuleTerm("length", (2, 5)),
    ]


@pytest.mark.parametrize("expr", ["", "   ", "unknownRule", "between(1,", "notEmpty &&", "between(x)", "1abc"])
def test_invalid_expressions_raise(expr):
    with pytest.raises(InvalidRuleError):
        parse_rule(expr)


@pytest.mark.parametrize("age,valid", [(0, False), (1, True), (60, True), (120, True), (121, False), ("abc", False)])
def test_between_includes_boundaries(age, valid):
    rule = ValidationRule(field="age", label="Age", expr="between(1,120)")

    assert (rule.check(age) == []) is valid


def test_not_empty():
    rule = ValidationRule(field="name", label="Name", expr="notEmpty")

    for value in (None, "", "   ", []):
        violations = rule.check(value)
        assert len(violations) == 1
        assert violations[0].message == "Name must not be empty"
    assert rule.check("shi") == []
    assert rule.check(0) == []


def test_all_failing_terms_are_reported():
    rule = ValidationRule(field="tel", label="Phone", expr="digit && length(5) && regex('^1')")

    violations = rule.check("2a")

    assert [v.rule for v in violations] == ["digit", "length(5)", "regex('^1')"]
    assert all(v.field == "tel" and v.label == "Phone" for v in violations)


def test_rules_other_than_not_empty_accept_none():
    rule = ValidationRule(field="tel", label="Phone", expr="digit && between(1, 9)")

    assert rule.check(None) == []


def test_builtin_vocabulary():
    assert ValidationRule(field="f", label="F", expr="digit").check("110") == []
    assert ValidationRule(field="f", label="F", expr="digit").check("110a") != []
    assert ValidationRule(field="f", label="F", expr="numeric").check("1.5") == []
    assert ValidationRule(field="f", label="F", expr="min(3)").check(2) != []
    assert ValidationRule(field="f", label="F", expr="max(3)").check(3) == []
    assert ValidationRule(field="f", label="F", expr="email").check("a@b.io") == []
    assert ValidationRule(field="f", label="F", expr="email").check("nope") != []
    assert ValidationRule(field="f", label="F", expr="in('a', 'b')").check("c") != []


def test_between_message_includes_bounds():
    violations = ValidationRule(field="age", label="Age", expr="between(1,120)").check(200)

    assert violations[0].message == "Age must be between 1 and 120"


def test_label_only_rule_checks_nothing():
    rule = ValidationRule(field="avatar", label="Avatar")

    assert rule.terms == []
    assert rule.check(None) == []


def test_register_custom_rule():
    register_rule("even", lambda value: value % 2 == 0, "{label} must be even")
    rule = ValidationRule(field="n", label="Number", expr="notEmpty && even")

    assert rule.check(4) == []
    assert rule.check(3)[0].message == "Number must be even"


def test_message_placeholders_beyond_term_arguments():
    register_rule("multipleOf", lambda value, n=2: value % n == 0, "{label} must be a multiple of {0}")

    with_args = ValidationRule(field="n", label="Number", expr="multipleOf(3)")
    without_args = ValidationRule(field="n", label="Number", expr="multipleOf")

    assert with_args.check(4)[0].message == "Number must be a multiple of 3"
    assert without_args.check(3)[0].message == "Number failed rule 'multipleOf'"
    assert ValidationRule(field="age", label="Age", expr="between(1)").check(5)[0].message == (
        "Age failed rule 'between(1)'"
    )


def test_register_rule_rejects_bad_names():
    with pytest.raises(InvalidRuleError):
        register_rule("bad name", lambda value: True)
