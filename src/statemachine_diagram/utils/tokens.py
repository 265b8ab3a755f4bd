"""
Guard and action token normalization shared by extraction and rendering.

Guards and actions reach the diagram either as a named predicate (the name of a
method on the owner, e.g. ``hungry``) or as an anonymous callable. Both are
reduced to a stable text token before anything is serialized, so every output
format sees plain strings.

TOKENS:
    NamedPredicate('hungry')              -> 'hungry?'   (conditions)
    NamedPredicate(':roar')               -> 'roar'      (actions)
    AnonymousPredicate('/app/dragon.py', 12) -> 'lambda@dragon.py:12'
    AnonymousPredicate()                  -> 'lambda'
    None / ''                             -> ''

FLAT STRINGS:
    The diagram edge only carries one guard string and one action string:
        guard:  'hungry? && !tired?'
        action: 'roar, stretch'
    parse_guard() and split_actions() recover the structured form.

USAGE:
    from statemachine_diagram.utils.tokens import condition_token, parse_guard

    condition_token('hungry')                # 'hungry?'
    parse_guard('hungry? && !tired?')        # {'if': ['hungry?'], 'unless': ['tired?']}
"""
import functools
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

GUARD_SEPARATOR = ' && '
ACTION_SEPARATOR = ', '
LAMBDA_TOKEN = 'lambda'


@dataclass(frozen=True)
class NamedPredicate:
    """A guard or action referenced by method name"""
    name: str


@dataclass(frozen=True)
class AnonymousPredicate:
    """A guard or action given as a callable, with its source position if known"""
    file: Optional[str] = None
    line: Optional[int] = None

    @property
    def token(self) -> str:
        if self.file and self.line:
            return f"{LAMBDA_TOKEN}@{os.path.basename(self.file)}:{self.line}"
        return LAMBDA_TOKEN


def as_reference(value: Any):
    """
    Coerce a user supplied guard/action into a NamedPredicate or AnonymousPredicate.

    Strings become named predicates. Python callables become anonymous
    predicates carrying the file and first line of their code object, when
    one can be found. None passes through.
    """
    if value is None or isinstance(value, (NamedPredicate, AnonymousPredicate)):
        return value
    if isinstance(value, str):
        return NamedPredicate(value)
    if callable(value):
        code = getattr(value, '__code__', None)
        if code is None:
            code = getattr(getattr(value, '__func__', None), '__code__', None)
        if code is None:
            return AnonymousPredicate()
        return AnonymousPredicate(code.co_filename, code.co_firstlineno)
    return NamedPredicate(str(value))


def condition_name(text: Any) -> str:
    """Strip whitespace and a leading symbol marker from a condition/action name."""
    if text is None:
        return ''
    name = str(text).strip()
    if name.startswith(':'):
        name = name[1:]
    return name


@functools.singledispatch
def condition_token(condition) -> str:
    """Normalize a guard condition to its display token."""
    if callable(condition):
        return condition_token(as_reference(condition))
    return condition_name(condition)


@condition_token.register(type(None))
def _(condition) -> str:
    return ''


@condition_token.register(str)
def _(condition) -> str:
    return condition_token(NamedPredicate(condition))


@condition_token.register(NamedPredicate)
def _(condition) -> str:
    name = condition_name(condition.name)
    if not name:
        return ''
    return name if name.endswith('?') else f"{name}?"


@condition_token.register(AnonymousPredicate)
def _(condition) -> str:
    return condition.token


@functools.singledispatch
def action_token(action) -> str:
    """Normalize an action handler (event action or callback method) to its display token."""
    if callable(action):
        return action_token(as_reference(action))
    return condition_name(action)


@action_token.register(type(None))
def _(action) -> str:
    return ''


@action_token.register(str)
def _(action) -> str:
    return condition_name(action)


@action_token.register(NamedPredicate)
def _(action) -> str:
    return condition_name(action.name)


@action_token.register(AnonymousPredicate)
def _(action) -> str:
    return action.token


def unique(items: Iterable[Any]) -> List[Any]:
    """Order preserving de-duplication that also drops empty tokens"""
    seen = set()
    result = []
    for item in items:
        if item is None or item == '' or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def guard_display(if_tokens: Iterable[str], unless_tokens: Iterable[str]) -> Optional[str]:
    """Join guard tokens into the flat 'a? && !b?' form, or None if there are none."""
    parts = [token for token in if_tokens if token]
    parts.extend(f"!{token}" for token in unless_tokens if token)
    return GUARD_SEPARATOR.join(parts) if parts else None


def parse_guard(text: Optional[str]) -> Dict[str, List[str]]:
    """Split a flat guard string back into its 'if' and 'unless' tokens."""
    terms: Dict[str, List[str]] = {'if': [], 'unless': []}
    if not text:
        return terms

    for segment in re.split(r'\s*&&\s*', str(text)):
        segment = segment.strip()
        if not segment:
            continue
        if segment.startswith('!'):
            terms['unless'].append(condition_name(segment[1:]))
        else:
            terms['if'].append(condition_name(segment))

    terms['if'] = unique(terms['if'])
    terms['unless'] = unique(terms['unless'])
    return terms


def split_actions(text: Optional[str]) -> List[str]:
    """Split a flat 'a, b' action string back into its tokens."""
    if not text:
        return []
    return unique(condition_name(part) for part in str(text).split(','))
