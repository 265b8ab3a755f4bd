"""
Tests for the statemachine-diagram command line interface.
"""
import json
import logging
from pathlib import Path

import pytest

from statemachine_diagram.tools.cli import build_parser, main
from statemachine_diagram.utils.logging_setup import PACKAGE_LOGGER

DRAGON = str(Path(__file__).parents[2] / 'examples' / 'machines' / 'dragon_mood.yaml')
WORKER = str(Path(__file__).parents[2] / 'examples' / 'machines' / 'worker.yaml')


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers main() attached so later tests don't write to closed capture streams"""
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if getattr(handler, '_statemachine_diagram', False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


def test_text_to_stdout(capsys):
    """Test the default invocation prints the text diagram"""
    assert main([DRAGON]) == 0
    out = capsys.readouterr().out
    assert out.startswith('=== Dragon mood State Machine ===\n')
    assert '  - sleeping -> hunting [wake_up] (if: hungry?) (action: stretch_wings)\n' in out


def test_json_format(capsys):
    assert main([DRAGON, '--format', 'json']) == 0
    document = json.loads(capsys.readouterr().out)
    assert document['type'] == 'state_diagram'
    assert len(document['data']['transitions']) == 7


def test_machine_schema_format(capsys):
    assert main([WORKER, '--format', 'machine_schema']) == 0
    schema = json.loads(capsys.readouterr().out)
    assert schema['name'] == 'Machine#worker'
    assert schema['initial'] == 'waiting'
    stop = next(event for event in schema['events'] if event['name'] == 'stop')
    assert stop['transitions'] == [
        {'sources': ['waiting', 'processing', 'error_cleanup', 'stopped'], 'target': 'stopped'},
    ]


def test_event_scope(capsys):
    """Test --event renders only that event with an 'Event:' header"""
    assert main([WORKER, '--event', 'cleanup_done']) == 0
    out = capsys.readouterr().out
    assert out.startswith('Event: cleanup_done\n\n=== Machine worker State Machine ===\n')
    assert '  - error_cleanup -> waiting [cleanup_done]\n' in out
    assert '[stop]' not in out


def test_state_scope(capsys):
    assert main([DRAGON, '--state', 'rampaging']) == 0
    assert capsys.readouterr().out.startswith('State: rampaging\n\n')


def test_unknown_state(capsys):
    """Test an unknown --state is reported as a configuration error"""
    assert main([DRAGON, '--state', 'flying']) == 1
    captured = capsys.readouterr()
    assert captured.out == ''
    assert "Unknown state 'flying'" in captured.err


def test_unknown_event(capsys):
    assert main([DRAGON, '--event', 'fly']) == 1
    assert "Unknown event 'fly'" in capsys.readouterr().err


def test_missing_config(tmp_path, capsys):
    """Test a missing file exits with 1 and logs the path"""
    missing = tmp_path / 'missing.yaml'
    assert main([str(missing)]) == 1
    err = capsys.readouterr().err
    assert 'Configuration error' in err
    assert str(missing) in err


def test_output_file(tmp_path, capsys):
    """Test --output writes the diagram to a file, creating parent directories"""
    output = tmp_path / 'docs' / 'dragon.json'
    assert main([DRAGON, '--format', 'json', '--output', str(output)]) == 0

    assert capsys.readouterr().out == ''
    assert json.loads(output.read_text())['data']['title'] == 'Dragon mood State Machine'


def test_summary(capsys):
    """Test --summary prints tables of states and transitions"""
    assert main([DRAGON, '--summary']) == 0
    out = capsys.readouterr().out
    assert out.startswith('Dragon mood State Machine\n')
    assert 'State' in out and 'Label' in out and 'Type' in out
    assert 'From' in out and 'Guard' in out and 'Actions' in out
    assert 'unless hungry?' in out
    assert 'States: 4  Transitions: 7' in out


def test_human_names(capsys):
    assert main([WORKER, '--human-names']) == 0
    assert '  - error cleanup\n' in capsys.readouterr().out


def test_log_file(tmp_path):
    """Test --debug with --log-file records the render in the log file"""
    log_file = tmp_path / 'diagram.log'
    assert main([DRAGON, '--debug', '--log-file', str(log_file), '--output', str(tmp_path / 'out.txt')]) == 0

    for handler in logging.getLogger(PACKAGE_LOGGER).handlers:
        handler.flush()
    assert 'Rendering Dragon#mood as text' in log_file.read_text()


def test_state_and_event_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args([DRAGON, '--state', 'a', '--event', 'b'])
