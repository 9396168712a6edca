"""Tests for the fsmdsl command line."""
import json

import pytest

from conftest import BLINKER, DOOR, REFERENCE, TRAFFIC_LIGHT
from fsmdsl.cli import main


@pytest.fixture
def write_fsm(tmp_path):
    def write(text, name='machine.fsm'):
        path = tmp_path / name
        path.write_text(text, encoding='utf-8')
        return str(path)
    return write


class TestValidate:
    """Test cases for 'fsmdsl validate'."""

    def test_valid_file(self, write_fsm, capsys):
        path = write_fsm(TRAFFIC_LIGHT)

        assert main(['validate', path]) == 0
        assert 'T is valid' in capsys.readouterr().out

    def test_warnings_still_succeed(self, write_fsm, capsys):
        path = write_fsm(REFERENCE)

        assert main(['validate', path]) == 0
        assert 'warning[timer-event-unused]' in capsys.readouterr().err

    def test_errors_fail_with_location(self, write_fsm, capsys):
        path = write_fsm('fsm M {\n  [*] --> A\n  state A\n  A --> Z : go\n}')

        assert main(['validate', path]) == 1
        assert f'{path}:4:3: error[unknown-target]' in capsys.readouterr().err

    def test_syntax_error(self, write_fsm, capsys):
        path = write_fsm('fsm T {\n  state }')

        assert main(['validate', path]) == 1
        err = capsys.readouterr().err
        assert f'{path}:2:9: error[syntax]' in err
        assert 'identifier' in err

    def test_missing_file(self, tmp_path, capsys):
        assert main(['validate', str(tmp_path / 'nope.fsm')]) == 1
        assert 'not found' in capsys.readouterr().err


class TestGenerate:
    """Test cases for 'fsmdsl generate'."""

    def test_to_stdout(self, write_fsm, capsys):
        path = write_fsm(DOOR, 'door.fsm')

        assert main(['generate', path]) == 0
        out = capsys.readouterr().out
        assert 'class DoorMachine' in out
        assert 'From: door.fsm' in out

    def test_to_file(self, write_fsm, tmp_path, capsys):
        path = write_fsm(DOOR)
        output = tmp_path / 'out' / 'door_machine.py'

        assert main(['generate', '-o', str(output), path]) == 0
        assert 'class DoorMachine' in output.read_text(encoding='utf-8')
        assert 'Generated' in capsys.readouterr().out

    def test_unknown_target(self, write_fsm, capsys):
        path = write_fsm(DOOR)

        assert main(['generate', '--target', 'cobol', path]) == 1
        assert "Unknown code generation target 'cobol'" in capsys.readouterr().err


class TestExport:
    """Test cases for 'fsmdsl export'."""

    def test_graph_json(self, write_fsm, capsys):
        path = write_fsm(TRAFFIC_LIGHT)

        assert main(['export', path]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [node['id'] for node in data['nodes']] == ['[*]', 'Red', 'Green']

    def test_scxml(self, write_fsm, capsys):
        path = write_fsm(TRAFFIC_LIGHT)

        assert main(['export', '--format', 'scxml', path]) == 0
        assert '<scxml' in capsys.readouterr().out


class TestSimulate:
    """Test cases for 'fsmdsl simulate'."""

    def test_event_replay(self, write_fsm, capsys):
        path = write_fsm(TRAFFIC_LIGHT)

        assert main(['simulate', path, 'go', 'bogus']) == 0
        assert capsys.readouterr().out.splitlines() == [
            'load -> Red []',
            '#1 Red --go--> Green []',
            "#2 Green: unmatched 'bogus'",
            'final state: Green',
        ]

    def test_guards_and_ticks(self, write_fsm, capsys):
        path = write_fsm(BLINKER)

        assert main(['simulate', '--guard', 'fast=true', path, 'start', '@100']) == 0
        out = capsys.readouterr().out
        assert "tick 100 (clock 100) -> ['Tick']" in out
        assert "#2 Blinking --Tick--> Blinking ['stop_timer(t)', 'blink()', 'start_timer(t)']" in out

    def test_bad_guard_option(self, write_fsm):
        path = write_fsm(BLINKER)
        with pytest.raises(SystemExit):
            main(['simulate', '--guard', 'fast', path])
