"""
Diagram IR - format independent graph of one state machine

A Diagram is the flattened, ungrouped view: one StateNode per state and one
TransitionEdge per concrete from -> to hop of an event. Each edge carries a
single guard string and a single action string; the structured detail
(if/unless token lists, callback names) travels alongside in TransitionMetadata
attached to the edge when the builder creates it.

SERIALIZED SHAPE (Diagram.to_dict):
    {"title": "Dragon mood State Machine",
     "states": [{"id": "sleeping", "label": "sleeping", "type": "initial"}, ...],
     "transitions": [{"source": "sleeping", "target": "hunting",
                      "label": "wake_up", "guard": "hungry?"}, ...]}

ENVELOPE (envelope()):
    {"type": "state_diagram", "version": 1, "checksum": "<sha256>", "data": {...}}

  The checksum is SHA-256 over the canonical JSON of ``data`` (sorted keys,
  compact separators), so identical input always yields an identical checksum.
"""
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

NIL_STATE_ID = 'nil_state'
DIAGRAM_TYPE = 'state_diagram'
DIAGRAM_VERSION = 1

STATE_TYPES = ('initial', 'final', 'normal')


def state_id(name: Any) -> str:
    """Stable node id for a state name; the null state maps to 'nil_state'"""
    if name is None:
        return NIL_STATE_ID
    text = str(name)
    return text if text else NIL_STATE_ID


@dataclass(frozen=True)
class StateNode:
    id: str
    label: str
    type: str = 'normal'

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'label': self.label, 'type': self.type}


@dataclass(frozen=True)
class TransitionMetadata:
    """
    Extraction-time detail for one edge.

    Token sequences are stored as tuples; ``conditions`` and ``callbacks``
    return fresh dict-of-list views of them.
    """
    source: Any
    target: Any
    event: str
    if_conditions: Tuple[str, ...] = ()
    unless_conditions: Tuple[str, ...] = ()
    before: Tuple[str, ...] = ()
    after: Tuple[str, ...] = ()
    around: Tuple[str, ...] = ()
    event_action: Optional[str] = None
    requirements: int = 0
    label: Optional[str] = None

    @property
    def conditions(self) -> Dict[str, List[str]]:
        return {'if': list(self.if_conditions), 'unless': list(self.unless_conditions)}

    @property
    def callbacks(self) -> Dict[str, List[str]]:
        return {'before': list(self.before), 'after': list(self.after), 'around': list(self.around)}

    @property
    def key(self) -> Tuple[str, str, str]:
        return (state_id(self.source), state_id(self.target), self.label or str(self.event))


@dataclass(frozen=True)
class TransitionEdge:
    source_state_id: str
    target_state_id: str
    label: str
    guard: Optional[str] = None
    action: Optional[str] = None
    metadata: Optional[TransitionMetadata] = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source_state_id, self.target_state_id, self.label)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'source': self.source_state_id,
            'target': self.target_state_id,
            'label': self.label,
        }
        if self.guard:
            data['guard'] = self.guard
        if self.action:
            data['action'] = self.action
        return data


@dataclass(frozen=True)
class Diagram:
    title: str
    states: Tuple[StateNode, ...] = ()
    transitions: Tuple[TransitionEdge, ...] = ()
    version: int = DIAGRAM_VERSION

    def state(self, node_id: str) -> Optional[StateNode]:
        for node in self.states:
            if node.id == node_id:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'states': [node.to_dict() for node in self.states],
            'transitions': [edge.to_dict() for edge in self.transitions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Diagram':
        """Rebuild a diagram from to_dict() output (edges come back without metadata)"""
        states = tuple(
            StateNode(id=item['id'], label=item.get('label') or item['id'],
                      type=item.get('type') if item.get('type') in STATE_TYPES else 'normal')
            for item in data.get('states', [])
        )
        transitions = tuple(
            TransitionEdge(
                source_state_id=item['source'],
                target_state_id=item['target'],
                label=item.get('label', ''),
                guard=item.get('guard') if isinstance(item.get('guard'), str) else None,
                action=item.get('action') if isinstance(item.get('action'), str) else None,
            )
            for item in data.get('transitions', [])
        )
        return cls(title=data.get('title', ''), states=states, transitions=transitions)


def checksum(data: Any) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def envelope(data: Dict[str, Any], version: int = DIAGRAM_VERSION) -> Dict[str, Any]:
    """Wrap serialized diagram data in the typed, checksummed envelope"""
    return {
        'type': DIAGRAM_TYPE,
        'version': version,
        'checksum': checksum(data),
        'data': data,
    }
