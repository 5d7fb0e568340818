from fractions import Fraction
from typing import Any, Optional, Union

import pytest

from clasp.clasp_datatypes import AmbiguousMatchError, NoMatchError, Parameter, Signature
from clasp.clasp_matcher import (
    best_match, exact_types, first_compatible, is_compatible, signature_score, specificity,
)


def sig(*types, defaults=0):
    params = []
    for i, tp in enumerate(types):
        params.append(Parameter(f"p{i}", tp, has_default=i >= len(types) - defaults))
    return Signature(tuple(params))


class Animal:
    pass


class Dog(Animal):
    pass


class Puppy(Dog):
    pass


@pytest.mark.parametrize("parameter_type, value, expected", [
    (str, "x", 1),
    (int, 3, 1),
    (int, True, Fraction(3, 4)),
    (Dog, Puppy(), Fraction(3, 4)),
    (Animal, Puppy(), Fraction(5, 8)),
    (float, 3, Fraction(1, 2)),
    (complex, 1.5, Fraction(1, 2)),
    (object, "x", Fraction(1, 4)),
    (Any, 3, Fraction(1, 4)),
    (str, None, 0),
    (Optional[int], None, 0),
    (Union[int, str], "x", 1),
])
def test_specificity_scores(parameter_type, value, expected):
    assert specificity(parameter_type, value) == expected


@pytest.mark.parametrize("parameter_type, value", [
    (int, None),
    (bool, None),
    (float, None),
    (int, "3"),
    (str, 3),
    (Puppy, Dog()),
])
def test_incompatible_values(parameter_type, value):
    assert specificity(parameter_type, value) is None
    assert not is_compatible(parameter_type, value)


def test_generic_parameter_checked_against_origin():
    assert is_compatible(list[int], [1, 2])
    assert not is_compatible(list[int], (1, 2))


def test_signature_score_respects_arity_and_defaults():
    s = sig(str, int, defaults=1)
    assert signature_score(s, ["a"]) == 1
    assert signature_score(s, ["a", 2]) == 2
    assert signature_score(s, []) is None
    assert signature_score(s, ["a", 2, 3]) is None


def test_most_specific_candidate_wins_regardless_of_order():
    general = sig(object, int)
    specific = sig(str, int)
    assert best_match([general, specific], ["Hello", 42]) is specific
    assert best_match([specific, general], ["Hello", 42]) is specific


def test_nearer_supertype_beats_farther_one():
    far = sig(Animal)
    near = sig(Dog)
    assert best_match([far, near], [Puppy()]) is near


def test_tie_goes_to_first_declared():
    first = sig(object)
    second = sig(object)
    assert best_match([first, second], [1]) is first


def test_strict_tie_is_ambiguous():
    first = sig(object)
    second = sig(object)
    with pytest.raises(AmbiguousMatchError) as excinfo:
        best_match([first, second], [1], strict=True)
    assert excinfo.value.candidates == (first, second)


class A: pass
class B(A): pass
class C(B): pass
class D(C): pass
class E(D): pass
class F(E): pass
class G(F): pass


def test_equal_totals_from_different_distances_tie():
    # (E, A) and (D, D) both total 7/6 against (G, G).
    first = sig(E, A)
    second = sig(D, D)
    assert signature_score(first, [G(), G()]) == signature_score(second, [G(), G()]) == Fraction(7, 6)
    assert best_match([first, second], [G(), G()]) is first
    with pytest.raises(AmbiguousMatchError):
        best_match([first, second], [G(), G()], strict=True)


def test_no_candidate_raises():
    with pytest.raises(NoMatchError, match=r"\(str\)"):
        best_match([sig(int), sig(int, int)], ["x"])


def test_none_argument_prefers_reference_parameter():
    chosen = best_match([sig(int), sig(str)], [None])
    assert chosen.parameter_types == (str,)


def test_first_compatible_ignores_ranking():
    general = sig(object, int)
    specific = sig(str, int)
    assert first_compatible([general, specific], ["Hello", 42]) is general
    with pytest.raises(NoMatchError):
        first_compatible([specific], [1, 2])


def test_exact_types_lookup():
    a = sig(str, int)
    b = sig(object, int)
    assert exact_types([a, b], (object, int)) is b
    with pytest.raises(NoMatchError, match="declares parameter types"):
        exact_types([a, b], (int,))
