"""Test the public package surface."""

import typing

import relorm
from relorm import Entity


def test_public_names_resolve():
    for name in relorm.__all__:
        assert getattr(relorm, name) is not None
    assert relorm.DuckDBAdapter.__name__ == "DuckDBAdapter"


def test_entity_annotations_resolve_to_builtins():
    # Entity defines a ``set`` method, so class-body annotations must not bind to it
    hints = typing.get_type_hints(Entity._delete)

    assert typing.get_origin(hints["visited"]) is set
