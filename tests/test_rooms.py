import pytest

from duochat.rooms import derive_key


def test_example_key():
    assert derive_key("u1", "u2") == "u1_u2"


@pytest.mark.parametrize("a,b", [("u1", "u2"), ("zed", "amy"), ("65f0c1", "65f0c0"), ("x", "x")])
def test_symmetric(a, b):
    assert derive_key(a, b) == derive_key(b, a)


def test_distinct_peers_distinct_keys():
    assert derive_key("a", "b") != derive_key("a", "c")


def test_separator_inside_ids_does_not_collide():
    assert derive_key("a_b", "c") != derive_key("a", "b_c")
    assert derive_key("a\\", "_b") != derive_key("a", "\\_b")
