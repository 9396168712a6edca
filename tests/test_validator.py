"""Tests for SemanticValidator."""
import pytest

from conftest import BLINKER, DOOR, REFERENCE
from fsmdsl import (
    Choice,
    ChoiceBranch,
    InitialMarker,
    InvalidModelError,
    MachineDecl,
    State,
    Timer,
    Transition,
    compile_text,
    load_definition,
    validate,
)


def codes(issues):
    return [issue.code for issue in issues]


def machine(**kwargs):
    """Hand-built declarations around a minimal valid core"""
    defaults = dict(
        name='M',
        initial=[InitialMarker('A')],
        states=[State('A'), State('B')],
        transitions=[Transition('A', 'B', 'go')],
    )
    defaults.update(kwargs)
    return MachineDecl(**defaults)


class TestValidModels:
    """Test cases for models that pass validation."""

    def test_minimal_machine(self):
        """A clean model yields a definition and no issues."""
        result = validate(machine())

        assert result.ok
        assert result.errors == []
        assert result.warnings == []
        assert result.definition.initial == 'A'
        assert list(result.definition.states) == ['A', 'B']

    @pytest.mark.parametrize('text', [REFERENCE, DOOR, BLINKER])
    def test_sample_sources_are_valid(self, text):
        """The shared sample machines validate."""
        assert compile_text(text).ok

    def test_warnings_do_not_block(self):
        """Unreachable states are warnings; the definition is still produced."""
        result = validate(machine(states=[State('A'), State('B'), State('Orphan')]))

        assert result.ok
        assert codes(result.warnings) == ['unreachable-state']
        assert result.warnings[0].identifier == 'Orphan'
        assert result.definition is not None

    def test_definition_is_read_only(self):
        """States of a definition cannot be replaced."""
        fsm = validate(machine()).definition
        with pytest.raises(TypeError):
            fsm.states['C'] = State('C')
        with pytest.raises(AttributeError):
            fsm.initial = 'B'


class TestReferences:
    """Test cases for referential integrity."""

    def test_collects_every_defect(self):
        """Two dangling targets and a missing initial give three errors in one pass."""
        decl = machine(
            initial=[],
            transitions=[Transition('A', 'Nowhere', 'x'), Transition('B', 'Elsewhere', 'y')],
        )

        result = validate(decl)

        assert not result.ok
        assert result.definition is None
        assert len(result.errors) >= 3
        assert codes(result.errors).count('unknown-target') == 2
        assert 'missing-initial' in codes(result.errors)

    def test_unknown_source(self):
        result = validate(machine(transitions=[Transition('Ghost', 'B', 'go')]))
        assert codes(result.errors) == ['unknown-source']

    def test_initial_must_be_a_state(self):
        """An initial marker pointing at a choice is rejected."""
        decl = machine(
            initial=[InitialMarker('C')],
            choices=[Choice('C', (ChoiceBranch('x', 'A'), ChoiceBranch(None, 'B')))],
        )
        result = validate(decl)
        assert 'unknown-initial' in codes(result.errors)

    def test_multiple_initial_markers(self):
        result = validate(machine(initial=[InitialMarker('A'), InitialMarker('B')]))
        assert codes(result.errors) == ['multiple-initial']

    def test_choice_branch_target_checked(self):
        decl = machine(
            transitions=[Transition('A', 'C', 'go')],
            choices=[Choice('C', (ChoiceBranch('x', 'Missing'), ChoiceBranch(None, 'B')))],
        )
        result = validate(decl)
        assert codes(result.errors) == ['unknown-target']
        assert result.errors[0].identifier == 'Missing'

    def test_error_keeps_source_position(self):
        """Errors built from DSL text carry the offending line and column."""
        result = compile_text('fsm M {\n  [*] --> A\n  state A\n  A --> Z : go\n}')

        error = result.errors[0]
        assert error.code == 'unknown-target'
        assert (error.span.line, error.span.column) == (4, 3)
        assert str(error).startswith('4:3: error[unknown-target]')


class TestDuplicates:
    """Test cases for the shared identifier namespace."""

    def test_duplicate_state_timer_choice(self):
        decl = machine(
            states=[State('A'), State('B'), State('A')],
            timers=[Timer('t', 5, 'go'), Timer('t', 6, 'go')],
            choices=[
                Choice('C', (ChoiceBranch('x', 'A'), ChoiceBranch(None, 'B'))),
                Choice('C', (ChoiceBranch('x', 'A'), ChoiceBranch(None, 'B'))),
            ],
        )
        result = validate(decl)
        assert {'duplicate-state', 'duplicate-timer', 'duplicate-choice'} <= set(codes(result.errors))

    def test_state_and_choice_share_namespace(self):
        decl = machine(choices=[Choice('B', (ChoiceBranch('x', 'A'), ChoiceBranch(None, 'A')))])
        result = validate(decl)
        assert 'name-collision' in codes(result.errors)


class TestChoices:
    """Test cases for choice structure."""

    def test_missing_else(self):
        decl = machine(choices=[Choice('C', (ChoiceBranch('x', 'A'),))])
        assert 'choice-missing-else' in codes(validate(decl).errors)

    def test_multiple_else(self):
        decl = machine(choices=[Choice('C', (
            ChoiceBranch('x', 'A'), ChoiceBranch(None, 'A'), ChoiceBranch(None, 'B'),
        ))])
        assert 'choice-multiple-else' in codes(validate(decl).errors)

    def test_needs_a_conditioned_branch(self):
        decl = machine(choices=[Choice('C', (ChoiceBranch(None, 'A'),))])
        assert 'choice-no-branches' in codes(validate(decl).errors)

    def test_choice_cycle_rejected(self):
        """C1 -> C2 -> C1 is an error, reported once."""
        result = compile_text('''
            fsm M {
              [*] --> A
              state A
              state B
              A --> C1 : go
              choice C1 { [x] -> C2 [else] -> B }
              choice C2 { [y] -> C1 [else] -> B }
            }
        ''')

        assert codes(result.errors) == ['choice-cycle']
        assert 'C1 -> C2 -> C1' in result.errors[0].message

    def test_completion_cycle_rejected(self):
        """Event-less transitions looping back through a choice are an error."""
        decl = machine(
            states=[State('A'), State('B')],
            transitions=[Transition('A', 'B', 'go'), Transition('B', 'C')],
            choices=[Choice('C', (ChoiceBranch('again', 'B'), ChoiceBranch(None, 'A')))],
        )
        result = validate(decl)
        assert codes(result.errors) == ['completion-cycle']

    def test_event_transitions_do_not_form_cycles(self):
        """Cycles through evented transitions are ordinary behaviour."""
        decl = machine(transitions=[Transition('A', 'B', 'go'), Transition('B', 'A', 'back')])
        assert validate(decl).ok


class TestTimersAndGuards:
    """Test cases for timer and guard checks."""

    def test_unused_timer_event_is_warning(self):
        decl = machine(timers=[Timer('t', 10, 'Tick')])
        result = validate(decl)
        assert result.ok
        assert codes(result.warnings) == ['timer-event-unused']

    def test_timer_duration_positive(self):
        decl = machine(timers=[Timer('t', 0, 'go')])
        assert codes(validate(decl).errors) == ['timer-duration']

    def test_unknown_timer_in_action(self):
        decl = machine(states=[State('A', entry=('start_timer(nope)',)), State('B')])
        result = validate(decl)
        assert codes(result.errors) == ['unknown-timer']
        assert result.errors[0].identifier == 'nope'

    def test_empty_guard(self):
        decl = machine(transitions=[Transition('A', 'B', 'go', guard='')])
        assert codes(validate(decl).errors) == ['empty-guard']

    def test_shadowed_transition_warning(self):
        """A transition behind an unguarded one for the same event is flagged."""
        decl = machine(states=[State('A'), State('B'), State('D')], transitions=[
            Transition('A', 'B', 'go'),
            Transition('A', 'D', 'go', guard='late'),
        ])
        result = validate(decl)
        assert result.ok
        assert 'shadowed-transition' in codes(result.warnings)

    def test_distinct_guards_not_shadowed(self):
        decl = machine(states=[State('A'), State('B'), State('D')], transitions=[
            Transition('A', 'B', 'go', guard='g1'),
            Transition('A', 'D', 'go', guard='g2'),
        ])
        assert validate(decl).warnings == []


class TestRaiseForErrors:
    """Test cases for the exception path."""

    def test_load_definition_raises(self):
        with pytest.raises(InvalidModelError) as info:
            load_definition('fsm M { state A }')

        assert codes(info.value.errors) == ['missing-initial']
        assert 'missing-initial' in str(info.value)
