"""
SchemaBuilder - compact machine schema for external tool interchange

Produces the MachineSchema record consumed by the state-machines CLI tooling.
This is a second, independent traversal of the machine: unlike the Diagram,
transitions of one event that share (target, guards, unless) are merged into a
single entry whose sources are the de-duplicated union of all contributing
sources.

SCHEMA:
    {"name": "Troll#regeneration",
     "initial": "normal",
     "states": ["normal", "accelerated", "berserk", "suppressed"],
     "events": [{"name": "take_fire_damage",
                 "transitions": [{"sources": ["normal", "accelerated", "berserk"],
                                  "target": "suppressed"}]}],
     "async_mode": false}

  Empty guards/unless lists, a missing payload and the (always empty)
  superstates list are omitted rather than emitted empty.
"""
import json
import logging
from typing import Any, Dict, List

from ..errors import MalformedRequirementError
from .builder import branch_guards, resolve_requirement
from .model import Event, MachineModel
from .options import RenderOptions

logger = logging.getLogger(__name__)

NIL_STATE_NAME = 'nil'


def schema_state_name(name: Any) -> str:
    return NIL_STATE_NAME if name is None else str(name)


def merge_transitions(transitions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group raw transitions by (target, guards, unless), merging their sources in first-seen order"""
    grouped: Dict[tuple, Dict[str, Any]] = {}
    for transition in transitions:
        key = (
            transition['target'],
            tuple(transition.get('guards', ())),
            tuple(transition.get('unless', ())),
        )
        merged = grouped.get(key)
        if merged is None:
            grouped[key] = dict(transition, sources=list(transition['sources']))
            continue
        for source in transition['sources']:
            if source not in merged['sources']:
                merged['sources'].append(source)
    return list(grouped.values())


class SchemaBuilder:
    """Builds the MachineSchema dict for one machine"""

    def __init__(self, machine: MachineModel, options: Any = None):
        self.machine = machine
        self.options = RenderOptions.coerce(options)

    def build(self) -> Dict[str, Any]:
        schema = {
            'name': self.machine_name,
            'initial': self.initial_state(),
            'states': self.state_names(),
            'superstates': self.build_superstates(),
            'events': self.build_events(),
            'async_mode': False,
        }
        if not schema['superstates']:
            del schema['superstates']
        if schema['initial'] is None:
            del schema['initial']
        return schema

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.build(), **kwargs)

    @property
    def machine_name(self) -> str:
        return f"{self.machine.owner_name}#{self.machine.name}"

    def initial_state(self):
        """
        Initial state name. A dynamic initial is called with the machine owner;
        if it fails or names no known state, the first declared state is used.
        """
        try:
            state = self.machine.initial_state(self.machine.owner)
        except Exception as e:
            logger.debug(f"[{self.machine_name}] Dynamic initial state failed, "
                         f"using first declared state: {e}")
            state = None
        if state is not None:
            return schema_state_name(state.name)
        if self.machine.states:
            return schema_state_name(self.machine.states[0].name)
        return None

    def state_names(self) -> List[str]:
        return [schema_state_name(name) for name in self.machine.state_names()]

    def build_superstates(self) -> List[Any]:
        # Machine models have no superstate concept
        return []

    def build_events(self) -> List[Dict[str, Any]]:
        events = []
        for event in self.machine.events:
            entry = {
                'name': str(event.name),
                'transitions': self.build_event_transitions(event),
            }
            guards = self.event_guards(event)
            if guards:
                entry['guards'] = guards
            events.append(entry)
        return events

    def build_event_transitions(self, event: Event) -> List[Dict[str, Any]]:
        state_names = self.machine.state_names()
        transitions = []

        for branch in event.branches:
            conditions = branch_guards(branch)
            for requirement in branch.state_requirements:
                try:
                    _, _, pairs = resolve_requirement(requirement, state_names)
                except MalformedRequirementError as e:
                    logger.warning(f"[{self.machine_name}] Skipping requirement of event '{event.name}': {e}")
                    continue

                for source, target in pairs:
                    transition = {
                        'sources': [schema_state_name(source)],
                        'target': schema_state_name(target),
                    }
                    if conditions['if']:
                        transition['guards'] = list(conditions['if'])
                    if conditions['unless']:
                        transition['unless'] = list(conditions['unless'])
                    transitions.append(transition)

        return merge_transitions(transitions)

    def event_guards(self, event: Event) -> List[str]:
        guards = []
        for branch in event.branches:
            for token in branch_guards(branch)['if']:
                if token not in guards:
                    guards.append(token)
        return guards
