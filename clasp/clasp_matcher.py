"""
Best-match resolution of argument values against candidate signatures.

The same algorithm picks constructors and methods. Every argument is scored
against its parameter type; a candidate's score is the sum of its argument
scores, and the highest total wins. Ties go to the candidate declared first
unless strict matching is requested.

Per-argument scores, kept as exact fractions:

    exact runtime type                          1.0
    nominal supertype at MRO distance d         0.5 + 0.25 / d
    virtual / structural / numeric promotion    0.5
    object, Any, unannotated                    0.25
    None against a reference-like parameter     0.0
"""

from __future__ import annotations

import logging
import types
import typing
from fractions import Fraction
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

from clasp.clasp_datatypes import AmbiguousMatchError, NoMatchError, Signature, type_display_name

logger = logging.getLogger(__name__)

# Equal totals must compare equal, so no floats.
EXACT = Fraction(1)
NOMINAL = Fraction(1, 2)
STRUCTURAL = Fraction(1, 2)
ANY = Fraction(1, 4)
NEUTRAL = Fraction(0)

# Parameters of these types never accept None (unless wrapped in Optional).
VALUE_TYPES = (bool, int, float, complex)

# PEP 484 numeric tower: int is acceptable where float is, int/float where complex is.
_NUMERIC_PROMOTIONS = {
    float: (int,),
    complex: (int, float),
}

C = TypeVar("C")


def _is_any(tp: Any) -> bool:
    return tp is object or tp is typing.Any or isinstance(tp, TypeVar)


def _union_members(tp: Any) -> Optional[tuple]:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        return typing.get_args(tp)
    return None


def specificity(parameter_type: Any, value: Any) -> Optional[Fraction]:
    """Score how well `value` fits `parameter_type`. None means incompatible."""
    members = _union_members(parameter_type)
    if members is not None:
        best = None
        for member in members:
            sc = specificity(member, value)
            if sc is not None and (best is None or sc > best):
                best = sc
        return best

    if value is None:
        if parameter_type is None or parameter_type is type(None):
            return NEUTRAL
        if parameter_type in VALUE_TYPES:
            return None
        return NEUTRAL

    if _is_any(parameter_type):
        return ANY

    # Parameterized generics are checked against their origin only.
    origin = typing.get_origin(parameter_type)
    if origin is not None:
        if origin is typing.Literal:
            return EXACT if value in typing.get_args(parameter_type) else None
        if origin is typing.ClassVar or origin is typing.Final or origin is typing.Annotated:
            args = typing.get_args(parameter_type)
            return specificity(args[0], value) if args else ANY
        parameter_type = origin

    if not isinstance(parameter_type, type):
        # NewType, ParamSpec and friends: accept anything at the weakest score.
        return ANY

    value_type = type(value)
    if value_type is parameter_type:
        return EXACT

    mro = value_type.__mro__
    if parameter_type in mro:
        distance = mro.index(parameter_type)
        return NOMINAL + Fraction(1, 4 * distance)

    for promoted in _NUMERIC_PROMOTIONS.get(parameter_type, ()):
        if isinstance(value, promoted):
            return STRUCTURAL

    try:
        if isinstance(value, parameter_type):
            return STRUCTURAL
    except TypeError:
        # Non-runtime-checkable protocols can't be tested; treat them as opaque.
        return ANY
    return None


def is_compatible(parameter_type: Any, value: Any) -> bool:
    return specificity(parameter_type, value) is not None


def signature_score(signature: Signature, args: Sequence[Any]) -> Optional[Fraction]:
    """Total specificity of `args` against `signature`, or None when it doesn't apply."""
    if not signature.accepts(len(args)):
        return None
    total = NEUTRAL
    for param, arg in zip(signature.parameters, args):
        sc = specificity(param.type, arg)
        if sc is None:
            return None
        total += sc
    return total


def _describe_args(args: Sequence[Any]) -> str:
    return "(" + ", ".join("None" if a is None else type(a).__name__ for a in args) + ")"


def _default_signature(candidate: Any) -> Signature:
    if isinstance(candidate, Signature):
        return candidate
    return candidate.signature


def best_match(
    candidates: Iterable[C],
    args: Sequence[Any],
    signature_of: Callable[[C], Signature] = _default_signature,
    strict: bool = False,
) -> C:
    """Pick the candidate with the highest total specificity for `args`.

    Candidates are scanned in order and only a strictly higher score replaces
    the current best, so the first declared candidate wins a tie. With
    `strict=True` a tie raises AmbiguousMatchError instead.

    Raises:
        NoMatchError: If no candidate accepts the arguments
    """
    candidates = list(candidates)
    scored: List[tuple] = []
    for cand in candidates:
        sc = signature_score(signature_of(cand), args)
        if sc is not None:
            scored.append((sc, cand))

    if not scored:
        raise NoMatchError(
            f"No candidate matches arguments {_describe_args(args)}; "
            f"tried {[signature_of(c) for c in candidates]!r}"
        )

    best_score, best = scored[0]
    for sc, cand in scored[1:]:
        if sc > best_score:
            best_score, best = sc, cand

    tied = tuple(c for sc, c in scored if sc == best_score)
    if len(tied) > 1:
        if strict:
            raise AmbiguousMatchError(
                f"Ambiguous match for arguments {_describe_args(args)}: "
                f"{len(tied)} candidates have tied scores",
                candidates=tied,
            )
        logger.debug("Tie between %d candidates, using first declared %r", len(tied), best)

    logger.debug("Matched %s -> %r (score %s)", _describe_args(args), best, best_score)
    return best


def first_compatible(
    candidates: Iterable[C],
    args: Sequence[Any],
    signature_of: Callable[[C], Signature] = _default_signature,
) -> C:
    """First candidate (in declared order) accepting `args` by assignment, no ranking."""
    candidates = list(candidates)
    for cand in candidates:
        if signature_score(signature_of(cand), args) is not None:
            return cand
    raise NoMatchError(
        f"No candidate accepts arguments {_describe_args(args)}; "
        f"tried {[signature_of(c) for c in candidates]!r}"
    )


def exact_types(
    candidates: Iterable[C],
    parameter_types: Sequence[Any],
    signature_of: Callable[[C], Signature] = _default_signature,
) -> C:
    """The candidate whose declared parameter types equal `parameter_types`."""
    wanted = tuple(parameter_types)
    for cand in candidates:
        if signature_of(cand).parameter_types == wanted:
            return cand
    shown = ", ".join(type_display_name(t) for t in wanted)
    raise NoMatchError(f"No candidate declares parameter types ({shown})")
