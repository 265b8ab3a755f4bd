"""
Machine model - the declarative state machine definition consumed by the diagram builders

The builders never look inside a running state machine. They only read the
structure below, which is what a YAML config (see loader.py) or a host library
adapter produces:

    MachineModel
      states      [State(name, initial, final, value)]
      events      [Event(name, action, branches)]
                    Branch(if_condition, unless_condition, state_requirements)
                      StateRequirement(from_matcher, to_matcher)
      callbacks   {'before': [Callback], 'after': [Callback], 'around': [Callback]}

MATCHERS:
  AllMatcher          any state ('*')
  WhitelistMatcher    the listed states
  BlacklistMatcher    every state except the listed ones
  LoopbackMatcher     target equal to the source (no target declared)

  filter(names) keeps the caller's ordering, so resolving a from-matcher against
  machine.state_names() yields states in priority order. values is the
  explicit list (empty for AllMatcher / LoopbackMatcher).

NULL STATE:
  A state named None is a real state (rendered as 'nil_state'). It is distinct
  from a matcher that resolves to no states at all.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..utils.tokens import as_reference

CALLBACK_TYPES = ('before', 'after', 'around')


def humanize(name: Optional[str]) -> str:
    """Default human readable name: underscores become spaces"""
    if name is None:
        return 'nil'
    return str(name).replace('_', ' ')


class Matcher:
    """Base class for state/event matchers"""

    @property
    def values(self) -> List[Any]:
        return []

    def filter(self, names: Iterable[Any]) -> List[Any]:
        return [name for name in names if self.matches(name)]

    def matches(self, value: Any, from_state: Any = None) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.values!r})"


class AllMatcher(Matcher):
    """Matches every value"""

    def matches(self, value: Any, from_state: Any = None) -> bool:
        return True

    def __eq__(self, other) -> bool:
        return isinstance(other, AllMatcher)

    def __hash__(self) -> int:
        return hash(AllMatcher)


class WhitelistMatcher(Matcher):
    """Matches only the listed values"""

    def __init__(self, values: Iterable[Any]):
        self._values = list(values)

    @property
    def values(self) -> List[Any]:
        return list(self._values)

    def matches(self, value: Any, from_state: Any = None) -> bool:
        return value in self._values

    def __eq__(self, other) -> bool:
        return isinstance(other, WhitelistMatcher) and other._values == self._values

    def __hash__(self) -> int:
        return hash(('whitelist', tuple(self._values)))


class BlacklistMatcher(Matcher):
    """Matches everything except the listed values"""

    def __init__(self, values: Iterable[Any]):
        self._values = list(values)

    @property
    def values(self) -> List[Any]:
        return list(self._values)

    def matches(self, value: Any, from_state: Any = None) -> bool:
        return value not in self._values

    def __eq__(self, other) -> bool:
        return isinstance(other, BlacklistMatcher) and other._values == self._values

    def __hash__(self) -> int:
        return hash(('blacklist', tuple(self._values)))


class LoopbackMatcher(Matcher):
    """Matches a target only when it equals the source state"""

    def filter(self, names: Iterable[Any]) -> List[Any]:
        return list(names)

    def matches(self, value: Any, from_state: Any = None) -> bool:
        return value == from_state

    def __eq__(self, other) -> bool:
        return isinstance(other, LoopbackMatcher)

    def __hash__(self) -> int:
        return hash(LoopbackMatcher)


@dataclass
class StateRequirement:
    """One from-matcher/to-matcher pair within a branch"""
    from_matcher: Matcher = field(default_factory=AllMatcher)
    to_matcher: Matcher = field(default_factory=LoopbackMatcher)


@dataclass
class Branch:
    """A guarded clause of an event: requirements sharing one if/unless guard"""
    state_requirements: List[StateRequirement] = field(default_factory=list)
    if_condition: Any = None
    unless_condition: Any = None

    def __post_init__(self):
        self.if_condition = as_reference(self.if_condition)
        self.unless_condition = as_reference(self.unless_condition)


@dataclass
class Event:
    name: str
    branches: List[Branch] = field(default_factory=list)
    action: Any = None
    human: Optional[str] = None

    def __post_init__(self):
        self.action = as_reference(self.action)

    def human_name(self) -> str:
        return self.human or humanize(self.name)


@dataclass
class State:
    name: Optional[str]
    initial: bool = False
    final: Optional[bool] = None  # None: derived from the machine's transitions
    value: Any = None
    human: Optional[str] = None

    def __post_init__(self):
        if self.value is None:
            self.value = self.name

    def human_name(self) -> str:
        return self.human or humanize(self.name)


@dataclass
class Callback:
    """
    A before/after/around transition callback.

    The callback applies to a rendered requirement when its event matcher accepts
    the event and one of its own state requirements accepts a concrete
    (from, to) pair of that requirement. A callback without state requirements
    applies to every pair.
    """
    kind: str
    methods: List[Any] = field(default_factory=list)
    event_matcher: Matcher = field(default_factory=AllMatcher)
    state_requirements: List[StateRequirement] = field(default_factory=list)

    def __post_init__(self):
        if self.kind not in CALLBACK_TYPES:
            raise ValueError(f"Unknown callback type: {self.kind}")
        self.methods = [as_reference(method) for method in self.methods if method is not None]

    def matches(self, branch: Branch, from_names: List[Any], to_names: List[Any],
                event_name: str, pairs: Optional[List[Tuple[Any, Any]]] = None) -> bool:
        """
        Branch-match predicate used when collecting callback actions.

        ``pairs`` are the concrete (from, to) hops of the rendered requirement.
        Without them every from/to combination is tried; a loopback requirement
        must pass its (s, s) pairs, since its to-set is its from-set.

        ``branch`` is the branch being rendered; callback if/unless conditions are
        runtime checks on the owner object and are not evaluated here.
        """
        if not self.event_matcher.matches(event_name):
            return False
        if not from_names:
            return False
        if not self.state_requirements:
            return True

        if pairs is None:
            pairs = [(source, target) for source in from_names for target in to_names]

        for requirement in self.state_requirements:
            for source, target in pairs:
                if (requirement.from_matcher.matches(source) and
                        requirement.to_matcher.matches(target, from_state=source)):
                    return True
        return False


@dataclass
class MachineModel:
    """A state machine definition: owner, states, events and callbacks"""
    owner: Any
    name: str
    states: List[State] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    callbacks: Dict[str, List[Callback]] = field(default_factory=dict)
    initial: Any = None  # state name, or callable(context) -> state name

    def __post_init__(self):
        for kind in CALLBACK_TYPES:
            self.callbacks.setdefault(kind, [])

        if isinstance(self.initial, str) and not any(state.initial for state in self.states):
            state = self.state(self.initial)
            if state is not None:
                state.initial = True

    @property
    def owner_name(self) -> str:
        if isinstance(self.owner, type):
            return self.owner.__name__
        return str(self.owner)

    def states_by_priority(self) -> List[State]:
        """Initial state(s) first, then the remaining states in declaration order"""
        initial = [state for state in self.states if state.initial]
        rest = [state for state in self.states if not state.initial]
        return initial + rest

    def state_names(self) -> List[Optional[str]]:
        return [state.name for state in self.states_by_priority()]

    def state(self, name: Any) -> Optional[State]:
        for state in self.states:
            if state.name == name:
                return state
        return None

    def event(self, name: str) -> Optional[Event]:
        for event in self.events:
            if event.name == name:
                return event
        return None

    def initial_state(self, context: Any = None) -> Optional[State]:
        """Resolve the initial state, calling a dynamic initial with ``context``"""
        if callable(self.initial):
            return self.state(self.initial(context))
        for state in self.states:
            if state.initial:
                return state
        if self.initial is not None:
            return self.state(self.initial)
        return None

    def is_final(self, state: State) -> bool:
        """A state is final when no requirement can move the machine out of it"""
        if state.final is not None:
            return state.final

        for event in self.events:
            for branch in event.branches:
                for requirement in branch.state_requirements:
                    if (requirement.from_matcher.matches(state.name) and
                            not requirement.to_matcher.matches(state.name, from_state=state.name)):
                        return False
        return True


