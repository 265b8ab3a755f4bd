"""
Machine configuration loader - builds a MachineModel from YAML

Two layouts are accepted.

DIAGRAM LAYOUT:
    owner: Dragon
    name: mood
    initial: sleeping
    states:
      - sleeping
      - hunting
      - name: dead
        final: true
        human_name: Dead
    events:
      wake_up:
        action: roar
        transitions:
          - {from: sleeping, to: hunting, if: hungry}
          - {from: sleeping, to: hoarding, unless: hungry}
      die:
        - {from: {except: dead}, to: dead}
      find_treasure:
        - {from: hoarding}                       # no target: loopback
      engage:
        - requirements:                          # several requirements, one guard
            - {from: idle, to: combat}
            - {from: resting, to: combat}
          if: can_fight
    callbacks:
      before:
        - {do: [prepare], on: wake_up, from: sleeping}
      after:
        - {do: log_transition}

ENGINE LAYOUT (statemachine engine configs):
    name: Worker
    metadata: {machine_name: worker}
    initial_state: waiting
    states: [waiting, processing, stopped]
    events: [new_job, job_done, stop]
    transitions:
      - {from: waiting, to: processing, event: new_job}
      - {from: '*', to: stopped, event: stop}

MATCHERS:
    name / [names]          -> WhitelistMatcher
    '*' / all / any         -> AllMatcher (also a missing 'from')
    {except: name/[names]}  -> BlacklistMatcher
    missing 'to' / 'same'   -> LoopbackMatcher
    ~ (null)                -> the null state

USAGE:
    machine = load_machine('config/dragon_mood.yaml')
    machine = machine_from_config({'states': [...], 'events': {...}})
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from ..errors import ConfigError
from .model import (
    CALLBACK_TYPES,
    AllMatcher,
    BlacklistMatcher,
    Branch,
    Callback,
    Event,
    LoopbackMatcher,
    MachineModel,
    Matcher,
    State,
    StateRequirement,
    WhitelistMatcher,
)

logger = logging.getLogger(__name__)

WILDCARDS = ('*', 'all', 'any')
LOOPBACK_TARGETS = ('same', 'loopback')
DEFAULT_OWNER = 'Machine'
DEFAULT_NAME = 'state'


def load_yaml(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML configuration file, raising ConfigError on failure."""
    config_path = Path(file_path)
    if not config_path.exists():
        raise ConfigError("Configuration file not found", str(file_path))

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parse error: {e}", str(file_path)) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError("Top level of the configuration must be a mapping", str(file_path))
    return config


def load_machine(file_path: Union[str, Path]) -> MachineModel:
    """Load a machine definition from a YAML file"""
    config = load_yaml(file_path)
    machine = machine_from_config(config, source=str(file_path))
    logger.debug(f"Loaded machine {machine.owner_name}#{machine.name} from {file_path}")
    return machine


def machine_from_config(config: Dict[str, Any], source: Optional[str] = None) -> MachineModel:
    """Build a MachineModel from an already parsed configuration mapping"""
    if not isinstance(config, dict):
        raise ConfigError("Configuration must be a mapping", source)

    if 'transitions' in config:
        events = _engine_events(config, source)
    else:
        events = _diagram_events(config.get('events') or {}, source)

    states = _states(config, events, source)
    callbacks = _callbacks(config.get('callbacks') or {}, source)

    machine = MachineModel(
        owner=config.get('owner') or DEFAULT_OWNER,
        name=_machine_name(config),
        states=states,
        events=events,
        callbacks=callbacks,
    )
    _apply_initial(machine, config, source)
    return machine


def _machine_name(config: Dict[str, Any]) -> str:
    if 'transitions' in config:
        metadata = config.get('metadata') or {}
        return str(metadata.get('machine_name') or config.get('name') or DEFAULT_NAME)
    return str(config.get('name') or DEFAULT_NAME)


def _state_name(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _names(value: Any) -> List[Optional[str]]:
    if isinstance(value, (list, tuple)):
        return [_state_name(item) for item in value]
    return [_state_name(value)]


def parse_state_matcher(value: Any, source: Optional[str] = None) -> Matcher:
    """Matcher for a 'from' (or callback 'to'/'on') value"""
    if isinstance(value, str) and value in WILDCARDS:
        return AllMatcher()
    if isinstance(value, dict):
        if set(value) != {'except'}:
            raise ConfigError(f"Unknown matcher shape: {value!r}", source)
        return BlacklistMatcher(_names(value['except']))
    return WhitelistMatcher(_names(value))


def parse_target_matcher(entry: Dict[str, Any], source: Optional[str] = None) -> Matcher:
    """Matcher for a transition target; a missing target is a loopback"""
    if 'to' not in entry:
        return LoopbackMatcher()
    value = entry['to']
    if isinstance(value, str) and value in LOOPBACK_TARGETS:
        return LoopbackMatcher()
    if isinstance(value, dict) or (isinstance(value, str) and value in WILDCARDS):
        raise ConfigError(f"Transition target must name states, got {value!r}", source)
    return WhitelistMatcher(_names(value))


def _requirement(entry: Dict[str, Any], source: Optional[str]) -> StateRequirement:
    if not isinstance(entry, dict):
        raise ConfigError(f"State requirement must be a mapping, got {entry!r}", source)
    from_matcher = parse_state_matcher(entry['from'], source) if 'from' in entry else AllMatcher()
    return StateRequirement(from_matcher=from_matcher, to_matcher=parse_target_matcher(entry, source))


def _branch(entry: Dict[str, Any], source: Optional[str]) -> Branch:
    if not isinstance(entry, dict):
        raise ConfigError(f"Transition must be a mapping, got {entry!r}", source)
    if 'requirements' in entry:
        requirements = [_requirement(item, source) for item in entry['requirements'] or []]
    else:
        requirements = [_requirement(entry, source)]
    return Branch(state_requirements=requirements,
                  if_condition=entry.get('if'),
                  unless_condition=entry.get('unless'))


def _diagram_events(events_config: Any, source: Optional[str]) -> List[Event]:
    if not isinstance(events_config, dict):
        raise ConfigError("'events' must map event names to transitions", source)

    events = []
    for name, definition in events_config.items():
        if definition is None:
            definition = {}
        if isinstance(definition, list):
            definition = {'transitions': definition}
        if not isinstance(definition, dict):
            raise ConfigError(f"Event '{name}' must be a mapping or a list of transitions", source)

        events.append(Event(
            name=str(name),
            branches=[_branch(entry, source) for entry in definition.get('transitions') or []],
            action=definition.get('action'),
            human=definition.get('human_name'),
        ))
    return events


def _engine_events(config: Dict[str, Any], source: Optional[str]) -> List[Event]:
    """Fold the engine's flat transition list into events, declared events first"""
    events: Dict[str, Event] = {}
    for name in config.get('events') or []:
        events.setdefault(str(name), Event(name=str(name)))

    for entry in config.get('transitions') or []:
        if not isinstance(entry, dict) or 'event' not in entry:
            raise ConfigError(f"Transition must be a mapping with an 'event': {entry!r}", source)
        name = str(entry['event'])
        event = events.setdefault(name, Event(name=name))
        event.branches.append(_branch(entry, source))

    return list(events.values())


def _states(config: Dict[str, Any], events: List[Event], source: Optional[str]) -> List[State]:
    if 'states' not in config:
        return [State(name=name) for name in _referenced_states(events)]

    states = []
    for entry in config.get('states') or []:
        if isinstance(entry, dict):
            if 'name' not in entry:
                raise ConfigError(f"State entry needs a 'name': {entry!r}", source)
            state = State(
                name=_state_name(entry['name']),
                initial=bool(entry.get('initial', False)),
                final=entry.get('final'),
                value=entry.get('value'),
                human=entry.get('human_name'),
            )
        else:
            state = State(name=_state_name(entry))

        if any(existing.name == state.name for existing in states):
            logger.debug(f"Ignoring duplicate state '{state.name}'")
            continue
        states.append(state)
    return states


def _referenced_states(events: List[Event]) -> List[Optional[str]]:
    """State names in order of first reference, used when 'states' is omitted"""
    names: List[Optional[str]] = []
    for event in events:
        for branch in event.branches:
            for requirement in branch.state_requirements:
                for matcher in (requirement.from_matcher, requirement.to_matcher):
                    if isinstance(matcher, WhitelistMatcher):
                        names.extend(name for name in matcher.values if name not in names)
    return names


def _apply_initial(machine: MachineModel, config: Dict[str, Any], source: Optional[str]) -> None:
    key = 'initial' if 'initial' in config else 'initial_state' if 'initial_state' in config else None
    if key is None or any(state.initial for state in machine.states):
        return

    name = _state_name(config[key])
    state = machine.state(name)
    if state is None:
        raise ConfigError(f"Initial state '{name}' is not in states list", source)
    state.initial = True
    machine.initial = name


def _callbacks(callbacks_config: Any, source: Optional[str]) -> Dict[str, List[Callback]]:
    if not isinstance(callbacks_config, dict):
        raise ConfigError("'callbacks' must map callback types to lists", source)

    callbacks: Dict[str, List[Callback]] = {kind: [] for kind in CALLBACK_TYPES}
    for kind, entries in callbacks_config.items():
        if kind not in CALLBACK_TYPES:
            raise ConfigError(f"Unknown callback type '{kind}'", source)
        for entry in entries or []:
            callbacks[kind].append(_callback(kind, entry, source))
    return callbacks


def _callback(kind: str, entry: Any, source: Optional[str]) -> Callback:
    if isinstance(entry, str):
        return Callback(kind=kind, methods=[entry])
    if not isinstance(entry, dict) or 'do' not in entry:
        raise ConfigError(f"Callback must be a method name or a mapping with 'do': {entry!r}", source)

    methods = entry['do'] if isinstance(entry['do'], list) else [entry['do']]
    event_matcher = parse_state_matcher(entry['on'], source) if 'on' in entry else AllMatcher()

    requirements = []
    if 'from' in entry or 'to' in entry:
        to_value = entry.get('to', '*')
        if isinstance(to_value, str) and to_value in LOOPBACK_TARGETS:
            to_matcher = LoopbackMatcher()
        else:
            to_matcher = parse_state_matcher(to_value, source)
        requirements.append(StateRequirement(
            from_matcher=parse_state_matcher(entry['from'], source) if 'from' in entry else AllMatcher(),
            to_matcher=to_matcher,
        ))

    return Callback(kind=kind, methods=methods, event_matcher=event_matcher,
                    state_requirements=requirements)
