#!/usr/bin/env python3
"""State Machine Diagram CLI

Renders a YAML machine definition as text, JSON, YAML or machine schema.

ARGUMENTS:
    config              YAML machine definition (diagram or engine layout)
    --format            text (default) | json | yaml | machine_schema
    --human-names       Use human readable state/event names as labels
    --state NAME        Only render NAME and the states connected to it
    --event NAME        Only render the transitions of event NAME
    --output FILE       Write to FILE instead of stdout
    --summary           Print states/transitions tables instead of a diagram
    --debug             Debug logging (stderr)
    --log-file FILE     Also write log records to FILE

USAGE:
    statemachine-diagram config/dragon_mood.yaml
    statemachine-diagram config/worker.yaml --format json --output docs/worker.json
    statemachine-diagram config/worker.yaml --event stop
    statemachine-diagram config/worker.yaml --summary

Exit codes:
    0 - Diagram written
    1 - Configuration error (missing file, invalid YAML, unknown state/event)
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from tabulate import tabulate

from ..core.builder import DiagramBuilder
from ..core.diagram import NIL_STATE_ID
from ..core.loader import load_machine
from ..core.model import MachineModel
from ..core.options import FORMATS
from ..errors import ConfigError
from ..utils.logging_setup import setup_logging
from .renderer import action_list_for, draw_event, draw_machine, draw_state, guard_terms_for

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Render state machine diagrams from YAML machine definitions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Text diagram on stdout
  statemachine-diagram config/dragon_mood.yaml

  # JSON envelope with checksum
  statemachine-diagram config/dragon_mood.yaml --format json

  # Schema for the state-machines CLI tool
  statemachine-diagram config/dragon_mood.yaml --format machine_schema
        """
    )
    parser.add_argument('config', help='YAML machine definition')
    parser.add_argument('--format', default='text',
                        help=f"Output format: {', '.join(FORMATS)} (default: text)")
    parser.add_argument('--human-names', action='store_true',
                        help='Use human readable names for states and events')
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument('--state', help='Render only this state and its neighbours')
    scope.add_argument('--event', help='Render only the transitions of this event')
    parser.add_argument('--output', help='Output file (default: stdout)')
    parser.add_argument('--summary', action='store_true',
                        help='Print states and transitions tables')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--log-file', help='Also write log records to this file')
    return parser


def print_summary(machine: MachineModel, out, human_names: bool = False) -> None:
    """Print states and transitions of a machine as tables"""
    builder = DiagramBuilder(machine, {'human_names': human_names})
    diagram = builder.build()

    states = [[state.id, state.label, state.type] for state in diagram.states]
    out.write(f"{diagram.title}\n\n")
    out.write(tabulate(states, headers=['State', 'Label', 'Type'], tablefmt='simple') + '\n\n')

    rows = []
    for transition in diagram.transitions:
        guards = guard_terms_for(transition, transition.metadata)
        guard_text = ' '.join(
            [f"if {term}" for term in guards['if']] + [f"unless {term}" for term in guards['unless']])
        rows.append([
            transition.source_state_id,
            transition.target_state_id,
            transition.label,
            guard_text,
            ', '.join(action_list_for(transition, transition.metadata)),
        ])
    out.write(tabulate(rows, headers=['From', 'To', 'Event', 'Guard', 'Actions'], tablefmt='simple') + '\n')
    out.write(f"\nStates: {len(diagram.states)}  Transitions: {len(diagram.transitions)}\n")


def _render(machine: MachineModel, args, out) -> None:
    options = {'format': args.format, 'human_names': args.human_names}

    if args.summary:
        print_summary(machine, out, human_names=args.human_names)
    elif args.state is not None:
        name = None if args.state == NIL_STATE_ID else args.state
        if machine.state(name) is None:
            raise ConfigError(f"Unknown state '{args.state}'", args.config)
        draw_state(machine, name, io=out, **options)
    elif args.event is not None:
        if machine.event(args.event) is None:
            raise ConfigError(f"Unknown event '{args.event}'", args.config)
        draw_event(machine, args.event, io=out, **options)
    else:
        draw_machine(machine, io=out, **options)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.WARNING, log_file=args.log_file)

    try:
        machine = load_machine(args.config)
        logger.info(f"Rendering {machine.owner_name}#{machine.name} as {args.format}")

        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w') as f:
                _render(machine, args, f)
            logger.info(f"Wrote {output_path}")
        else:
            _render(machine, args, sys.stdout)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
