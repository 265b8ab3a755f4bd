"""
Diagram Renderer - writes a machine as text, JSON, YAML or machine schema

MAIN FUNCTIONS:
- draw_machine()     - Build the Diagram for a machine and write it to a sink
- draw_state()       - Scoped render: one state and everything connected to it
- draw_event()       - Scoped render: the transitions of one event
- draw_branch()      - Scoped render: the transitions of one branch
- machine_schema()   - MachineSchema dict (grouped transitions)
- render()           - draw_machine() into a string

FORMATS (options['format']):
  text            default; unknown formats fall back to it
  json / yaml     {"type": "state_diagram", "version", "checksum", "data"}
  machine_schema  SchemaBuilder output, bypasses the Diagram entirely

TEXT LAYOUT:
    State: sleeping                         (scoped renders only)

    === Dragon mood State Machine ===

    States:
      - sleeping [*]
      - hunting
      - dead (O)

    Transitions:
      - sleeping -> hunting [wake_up] (if: hungry?) (action: roar)

METADATA RECOMBINATION:
  A TransitionEdge only carries flat guard/action strings. Structured guard
  ({if, unless}) and action lists are rebuilt from the edge's attached
  TransitionMetadata. Edges that arrive without it (e.g. Diagram.from_dict)
  are looked up by (source, target, label) in the builder's metadata index,
  and finally parsed from the flat strings.

USAGE:
    draw_machine(machine)                                # text to stdout
    draw_machine(machine, io=f, format='json')
    draw_state(machine, 'sleeping', io=f)
    schema = machine_schema(machine)
"""
import io as io_module
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional, Set, TextIO, Tuple

import yaml

from ..core.builder import DiagramBuilder, resolve_requirement
from ..core.diagram import Diagram, TransitionEdge, TransitionMetadata, envelope, state_id
from ..core.model import Branch, Event, MachineModel, State
from ..core.options import FORMATS, RenderOptions
from ..core.schema_builder import SchemaBuilder
from ..errors import MalformedRequirementError
from ..utils.tokens import condition_name, parse_guard, split_actions, unique

logger = logging.getLogger(__name__)

MetadataIndex = Dict[Tuple[str, str, str], List[TransitionMetadata]]


def draw_machine(machine: MachineModel, io: Optional[TextIO] = None, **options) -> Diagram:
    """Build the diagram for ``machine`` and write it to ``io`` (stdout by default)"""
    render_options = RenderOptions.from_mapping(options)
    builder = DiagramBuilder(machine, render_options)
    diagram = builder.build()
    output_diagram(diagram, io, render_options, builder)
    return diagram


def render(machine: MachineModel, **options) -> str:
    buffer = io_module.StringIO()
    draw_machine(machine, io=buffer, **options)
    return buffer.getvalue()


def machine_schema(machine: MachineModel, **options) -> Dict[str, Any]:
    return SchemaBuilder(machine, options).build()


def output_diagram(diagram: Diagram, io: Optional[TextIO], options: Any,
                   builder: Optional[DiagramBuilder] = None) -> None:
    """Write an already built diagram in the requested format"""
    sink = io if io is not None else sys.stdout
    render_options = RenderOptions.coerce(options)

    if render_options.format not in FORMATS:
        logger.debug(f"Unknown diagram format '{render_options.format}', falling back to text")
    output_format = render_options.resolved_format

    if output_format == 'machine_schema' and builder is None:
        logger.debug("machine_schema output needs the machine; falling back to text")
        output_format = 'text'

    if output_format == 'json':
        sink.write(json.dumps(diagram_hash_with_metadata(diagram, builder)) + '\n')
    elif output_format == 'yaml':
        sink.write(yaml.safe_dump(diagram_hash_with_metadata(diagram, builder),
                                  sort_keys=False, default_flow_style=False))
    elif output_format == 'machine_schema':
        schema = SchemaBuilder(builder.machine, render_options)
        sink.write(schema.to_json() + '\n')
    else:
        sink.write(diagram_to_text(diagram, render_options, builder) + '\n')


# Scoped renders

def draw_state(machine: MachineModel, state: Any, io: Optional[TextIO] = None, **options) -> Diagram:
    """Render one state together with every state connected to it by any transition"""
    focal = state.name if isinstance(state, State) else state
    involved: Set[Any] = {focal}
    branches = [(event, branch) for event in machine.events for branch in event.branches]
    for source, target in _resolved_pairs(machine, branches):
        if source == focal:
            involved.add(target)
        if target == focal:
            involved.add(source)

    render_options = RenderOptions.from_mapping(options).merge(state_filter=state_id(focal))
    builder = DiagramBuilder(machine, render_options, state_scope=involved)
    diagram = builder.build()
    output_diagram(diagram, io, render_options, builder)
    return diagram


def draw_event(machine: MachineModel, event: Any, io: Optional[TextIO] = None, **options) -> Diagram:
    """Render the transitions of a single event and the states they touch"""
    event = _event(machine, event)
    involved = _endpoints(_resolved_pairs(machine, [(event, branch) for branch in event.branches]))

    render_options = RenderOptions.from_mapping(options).merge(event_filter=str(event.name))
    builder = DiagramBuilder(machine, render_options, state_scope=involved)
    builder.build_states()
    builder.add_event_transitions(event)
    diagram = builder.diagram
    output_diagram(diagram, io, render_options, builder)
    return diagram


def draw_branch(machine: MachineModel, event: Any, branch: Branch,
                io: Optional[TextIO] = None, **options) -> Diagram:
    """Render the transitions of one branch of an event"""
    event = _event(machine, event)
    involved = _endpoints(_resolved_pairs(machine, [(event, branch)]))

    render_options = RenderOptions.from_mapping(options)
    builder = DiagramBuilder(machine, render_options, state_scope=involved)
    builder.build_states()
    builder.add_branch_transitions(branch, event)
    diagram = builder.diagram
    output_diagram(diagram, io, render_options, builder)
    return diagram


def _event(machine: MachineModel, event: Any) -> Event:
    if isinstance(event, Event):
        return event
    found = machine.event(event)
    if found is None:
        raise KeyError(f"Unknown event: {event}")
    return found


def _resolved_pairs(machine: MachineModel,
                    branches: Iterable[Tuple[Event, Branch]]) -> List[Tuple[Any, Any]]:
    state_names = machine.state_names()
    pairs = []
    for event, branch in branches:
        for requirement in branch.state_requirements:
            try:
                _, _, resolved = resolve_requirement(requirement, state_names)
            except MalformedRequirementError as e:
                logger.debug(f"Ignoring requirement of event '{event.name}' for scope: {e}")
                continue
            pairs.extend(resolved)
    return pairs


def _endpoints(pairs: Iterable[Tuple[Any, Any]]) -> Set[Any]:
    involved: Set[Any] = set()
    for source, target in pairs:
        involved.add(source)
        involved.add(target)
    return involved


# Structured (JSON / YAML) output

def diagram_hash_with_metadata(diagram: Diagram,
                               builder: Optional[DiagramBuilder] = None) -> Dict[str, Any]:
    """Serialize the diagram into the envelope, with structured guard/action fields"""
    data = diagram.to_dict()
    index = build_transition_metadata_index(builder)

    for transition, transition_hash in zip(diagram.transitions, data['transitions']):
        metadata = find_transition_metadata(index, transition)
        transition_hash.pop('guard', None)
        transition_hash.pop('action', None)

        guard_terms = guard_terms_for(transition, metadata)
        guard_payload = {kind: terms for kind, terms in guard_terms.items() if terms}
        if guard_payload:
            transition_hash['guard'] = guard_payload

        actions = action_list_for(transition, metadata)
        if actions:
            transition_hash['action'] = actions

    return envelope(data, diagram.version)


def build_transition_metadata_index(builder: Optional[DiagramBuilder]) -> MetadataIndex:
    """Index the builder's transition metadata by (source, target, label)"""
    index: MetadataIndex = {}
    if builder is None:
        return index
    for metadata in builder.transition_metadata:
        index.setdefault(metadata.key, []).append(metadata)
    return index


def find_transition_metadata(index: MetadataIndex,
                             transition: TransitionEdge) -> Optional[TransitionMetadata]:
    if transition.metadata is not None:
        return transition.metadata
    candidates = index.get(transition.key)
    return candidates[0] if candidates else None


def guard_terms_for(transition: TransitionEdge,
                    metadata: Optional[TransitionMetadata] = None) -> Dict[str, List[str]]:
    guard_terms = parse_guard(transition.guard)
    if metadata is not None:
        for kind in ('if', 'unless'):
            guard_terms[kind] = unique(
                guard_terms[kind] + [condition_name(item) for item in metadata.conditions.get(kind, [])])
    return guard_terms


def action_list_for(transition: TransitionEdge,
                    metadata: Optional[TransitionMetadata] = None) -> List[str]:
    actions = split_actions(transition.action)
    if metadata is not None:
        if metadata.event_action:
            actions.append(metadata.event_action)
        actions.extend(metadata.before)
        actions.extend(metadata.after)
    return unique(actions)


# Text output

def diagram_to_text(diagram: Diagram, options: Any = None,
                    builder: Optional[DiagramBuilder] = None) -> str:
    render_options = RenderOptions.coerce(options)
    output = []

    if render_options.state_filter:
        output.append(f"State: {render_options.state_filter}")
        output.append('')
    elif render_options.event_filter:
        output.append(f"Event: {render_options.event_filter}")
        output.append('')

    output.append(f"=== {diagram.title} ===")
    output.append('')

    state_metadata = builder.state_metadata if builder is not None else {}
    output.append('States:')
    for state in diagram.states:
        state_type = state_metadata.get(state.id, {}).get('type', state.type)
        marker = {'initial': ' [*]', 'final': ' (O)'}.get(state_type, '')
        output.append(f"  - {state.label or state.id}{marker}")

    output.append('')
    output.append('Transitions:')

    index = build_transition_metadata_index(builder)
    for transition in diagram.transitions:
        metadata = find_transition_metadata(index, transition)
        output.append(
            f"  - {transition.source_state_id} -> {transition.target_state_id} "
            f"[{transition.label or ''}]"
            f"{format_guard_condition(transition, metadata)}"
            f"{format_action_callback(transition, metadata)}"
        )

    return '\n'.join(output)


def format_guard_condition(transition: TransitionEdge,
                           metadata: Optional[TransitionMetadata] = None) -> str:
    guard_terms = guard_terms_for(transition, metadata)
    parts = [f"(if: {condition})" for condition in guard_terms['if']]
    parts.extend(f"(unless: {condition})" for condition in guard_terms['unless'])
    return f" {' '.join(parts)}" if parts else ''


def format_action_callback(transition: TransitionEdge,
                           metadata: Optional[TransitionMetadata] = None) -> str:
    actions = action_list_for(transition, metadata)
    return f" (action: {', '.join(actions)})" if actions else ''
