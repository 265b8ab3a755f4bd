"""
Render options shared by the builders and the renderer.

OPTIONS:
    format          text (default) | json | yaml | machine_schema
    human_names     use human readable state/event names as labels
    state_filter    header text for a single-state render ('State: X')
    event_filter    header text for a single-event render ('Event: Y')

Options arrive as keyword arguments from callers and the CLI; unknown keys
are ignored, and an unknown format falls back to text at render time.
"""
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

FORMATS = ('text', 'json', 'yaml', 'machine_schema')
DEFAULT_FORMAT = 'text'


@dataclass(frozen=True)
class RenderOptions:
    format: str = DEFAULT_FORMAT
    human_names: bool = False
    state_filter: Optional[str] = None
    event_filter: Optional[str] = None

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> 'RenderOptions':
        if not options:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in options.items() if key in known and value is not None}
        if 'format' in values:
            values['format'] = str(values['format'])
        if 'human_names' in values:
            values['human_names'] = bool(values['human_names'])
        return cls(**values)

    @classmethod
    def coerce(cls, options: Any) -> 'RenderOptions':
        if isinstance(options, RenderOptions):
            return options
        return cls.from_mapping(options)

    def merge(self, **changes) -> 'RenderOptions':
        return replace(self, **changes)

    @property
    def resolved_format(self) -> str:
        return self.format if self.format in FORMATS else DEFAULT_FORMAT
