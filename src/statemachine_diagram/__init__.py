"""State Machine Diagram - graph extraction and rendering for declarative state machines"""

__version__ = "0.1.0"

from .core.builder import DiagramBuilder
from .core.diagram import Diagram, StateNode, TransitionEdge, TransitionMetadata
from .core.loader import load_machine, machine_from_config
from .core.model import MachineModel
from .core.schema_builder import SchemaBuilder
from .errors import ConfigError, DiagramError
from .tools.renderer import draw_branch, draw_event, draw_machine, draw_state, machine_schema, render

__all__ = [
    "DiagramBuilder",
    "SchemaBuilder",
    "Diagram",
    "StateNode",
    "TransitionEdge",
    "TransitionMetadata",
    "MachineModel",
    "load_machine",
    "machine_from_config",
    "draw_machine",
    "draw_state",
    "draw_event",
    "draw_branch",
    "machine_schema",
    "render",
    "ConfigError",
    "DiagramError",
]
