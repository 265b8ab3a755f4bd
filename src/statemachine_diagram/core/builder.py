"""
DiagramBuilder - extracts the Diagram IR from a machine definition

Walks a MachineModel and produces a Diagram (ordered states, ordered
transition edges) plus the metadata index used by the renderer to recover
structured guard/action detail.

TRAVERSAL:
  States:       machine.states_by_priority(), one node each
  Transitions:  events (declared order)
                  -> branches (declared order)
                    -> state requirements (declared order)
                      -> (from, to) pairs, from-major

REQUIREMENT RESOLUTION (resolve_requirement):
  from-set  = from_matcher.filter(machine.state_names())
  to-set    = [first declared target]          when targets are declared
            = from-set, paired element-wise   when none are declared (loopback)
  An undeclared target state makes the requirement malformed; it is logged and
  skipped, and extraction continues with the next requirement.

GUARDS / ACTIONS:
  guard   'hungry? && !tired?'   from branch.if_condition / unless_condition
  action  'roar, stretch'        event action, then matching before callbacks,
                                 then matching after callbacks (de-duplicated)
  around callbacks are kept in the metadata only.

USAGE:
    builder = DiagramBuilder(machine, {'human_names': True})
    diagram = builder.build()
    builder.state_metadata['sleeping']['type']    # 'initial'
    builder.transition_metadata[0].conditions     # {'if': ['hungry?'], 'unless': []}
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import MalformedRequirementError
from ..utils.tokens import action_token, condition_token, guard_display, unique
from .diagram import Diagram, StateNode, TransitionEdge, TransitionMetadata, state_id
from .model import CALLBACK_TYPES, Branch, Event, MachineModel, State, StateRequirement
from .options import RenderOptions

logger = logging.getLogger(__name__)

Pair = Tuple[Any, Any]


def resolve_requirement(requirement: StateRequirement,
                        state_names: List[Any]) -> Tuple[List[Any], List[Any], List[Pair]]:
    """
    Resolve a state requirement against the machine's ordered state names.

    Returns (from_states, to_states, pairs). For a loopback requirement
    to_states equals from_states and every pair is (s, s).
    """
    try:
        from_states = requirement.from_matcher.filter(state_names)
        targets = requirement.to_matcher.values
    except (AttributeError, TypeError) as e:
        raise MalformedRequirementError(f"Cannot resolve requirement {requirement!r}: {e}") from e

    if not targets:
        return from_states, list(from_states), [(state, state) for state in from_states]

    target = targets[0]
    if target not in state_names:
        raise MalformedRequirementError(f"Target state {target!r} is not a declared state")
    return from_states, [target], [(state, target) for state in from_states]


def branch_guards(branch: Branch) -> Dict[str, List[str]]:
    """If/unless tokens of a branch (at most one of each)"""
    return {
        'if': unique([condition_token(branch.if_condition)]),
        'unless': unique([condition_token(branch.unless_condition)]),
    }


class DiagramBuilder:
    """
    Builds the Diagram IR for one machine.

    Single use: construct against one machine, call build() once, then read
    diagram / state_metadata / transition_metadata. Pass ``state_scope`` to
    restrict emission to a set of state names (scoped renders).
    """

    def __init__(self, machine: MachineModel, options: Any = None,
                 state_scope: Optional[Iterable[Any]] = None):
        self.machine = machine
        self.options = RenderOptions.coerce(options)
        self.state_scope: Optional[Set[Any]] = set(state_scope) if state_scope is not None else None
        self.state_metadata: Dict[str, Dict[str, Any]] = {}
        self.transition_metadata: List[TransitionMetadata] = []
        self._states: List[StateNode] = []
        self._transitions: List[TransitionEdge] = []
        self._built: Optional[Diagram] = None

    @property
    def diagram(self) -> Diagram:
        return Diagram(title=self.title, states=tuple(self._states),
                       transitions=tuple(self._transitions))

    @property
    def diagram_id(self) -> str:
        return f"{self.machine.owner_name}_{self.machine.name}"

    @property
    def title(self) -> str:
        return f"{self.machine.owner_name} {self.machine.name} State Machine"

    @property
    def description(self) -> str:
        return f"State machine for {self.machine.owner_name}#{self.machine.name}"

    def build(self) -> Diagram:
        if self._built is None:
            self.build_states()
            self.add_transitions()
            self._built = self.diagram
            logger.debug(f"[{self.diagram_id}] Built diagram: {len(self._states)} states, "
                         f"{len(self._transitions)} transitions")
        return self._built

    # States

    def build_states(self) -> None:
        for state in self.machine.states_by_priority():
            if self._in_scope(state.name):
                self.add_state_node(state)

    def add_state_node(self, state: State) -> None:
        node_id = state_id(state.name)
        if node_id in self.state_metadata:
            return

        self._states.append(StateNode(id=node_id, label=self._state_label(state),
                                      type=self._state_type(state)))
        self.state_metadata[node_id] = {
            'type': self._state_type(state),
            'metadata': {
                'initial': state.initial,
                'final': self.machine.is_final(state),
                'value': state.value,
            },
        }

    def _state_label(self, state: State) -> str:
        if self.options.human_names:
            return state.human_name()
        return state_id(state.name)

    def _state_type(self, state: State) -> str:
        if state.initial:
            return 'initial'
        if self.machine.is_final(state):
            return 'final'
        return 'normal'

    # Transitions

    def add_transitions(self) -> None:
        for event in self.machine.events:
            self.add_event_transitions(event)

    def add_event_transitions(self, event: Event) -> None:
        for branch in event.branches:
            self.add_branch_transitions(branch, event)

    def add_branch_transitions(self, branch: Branch, event: Event) -> None:
        state_names = self.machine.state_names()
        conditions = branch_guards(branch)
        guard = guard_display(conditions['if'], conditions['unless'])

        for requirement in branch.state_requirements:
            try:
                from_states, to_states, pairs = resolve_requirement(requirement, state_names)
            except MalformedRequirementError as e:
                logger.warning(f"[{self.diagram_id}] Skipping requirement of event '{event.name}': {e}")
                continue

            callbacks = {
                kind: self._callback_tokens(kind, branch, event, from_states, to_states, pairs)
                for kind in CALLBACK_TYPES
            }
            event_action = action_token(event.action) or None
            actions = unique([event_action] + callbacks['before'] + callbacks['after'])

            for source, target in pairs:
                if not (self._in_scope(source) and self._in_scope(target)):
                    continue
                self._add_transition(source, target, event, branch, guard, conditions,
                                     callbacks, event_action, actions)

    def _add_transition(self, source: Any, target: Any, event: Event, branch: Branch,
                        guard: Optional[str], conditions: Dict[str, List[str]],
                        callbacks: Dict[str, List[str]], event_action: Optional[str],
                        actions: List[str]) -> None:
        label = self._transition_label(event)
        metadata = TransitionMetadata(
            source=source,
            target=target,
            event=event.name,
            if_conditions=tuple(conditions['if']),
            unless_conditions=tuple(conditions['unless']),
            before=tuple(callbacks['before']),
            after=tuple(callbacks['after']),
            around=tuple(callbacks['around']),
            event_action=event_action,
            requirements=len(branch.state_requirements),
            label=label,
        )
        edge = TransitionEdge(
            source_state_id=state_id(source),
            target_state_id=state_id(target),
            label=label,
            guard=guard,
            action=', '.join(actions) if actions else None,
            metadata=metadata,
        )
        self._transitions.append(edge)
        self.transition_metadata.append(metadata)

    def _transition_label(self, event: Event) -> str:
        if self.options.human_names:
            return event.human_name()
        return str(event.name)

    def _callback_tokens(self, kind: str, branch: Branch, event: Event,
                         from_states: List[Any], to_states: List[Any],
                         pairs: List[Pair]) -> List[str]:
        tokens = []
        for callback in self.machine.callbacks.get(kind, []):
            if callback.matches(branch, from_states, to_states, event.name, pairs=pairs):
                tokens.extend(action_token(method) for method in callback.methods)
        return unique(tokens)

    def _in_scope(self, name: Any) -> bool:
        return self.state_scope is None or name in self.state_scope
