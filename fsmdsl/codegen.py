"""
FSM Code Generator (Python + Jinja2)

Generates source code implementing a validated FsmDefinition. Targets
form a closed set (Target); each maps to one pure emitter function.
Generation never touches simulator state and never falls back to a
default target when an unknown one is requested.
"""

import keyword
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from fsmdsl.errors import CodegenError
from fsmdsl.fsm_config import FSMDSL_CONFIG, get_default_target, get_generated_code_header, get_template_dir
from fsmdsl.model import FsmDefinition, parse_timer_action

logger = logging.getLogger(__name__)

# Enum member names Python reserves or that shadow Enum attributes
RESERVED_MEMBER_NAMES = {'name', 'value', 'mro'}


class Target(Enum):
    """Code generation targets"""
    STANDARD = 'standard'

    @classmethod
    def from_name(cls, name) -> 'Target':
        if isinstance(name, Target):
            return name
        for target in cls:
            if target.value == name:
                return target
        known = ', '.join(t.value for t in cls)
        raise CodegenError(f"Unknown code generation target '{name}' (available: {known})", target=name)


class CodeGenerator:
    """
    Template-driven code generator

    Uses Jinja2 templates to render a FsmDefinition for a Target.
    """

    def __init__(self, template_dir=None):
        if template_dir is None:
            template_dir = get_template_dir()

        # Setup Jinja2 environment
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

        # Add custom filters
        self.env.filters['member'] = self._member_name
        self.env.filters['pyrepr'] = repr

    def _member_name(self, identifier):
        """Make a state/event identifier usable as an Enum member name"""
        if keyword.iskeyword(identifier) or identifier.startswith('_') or identifier in RESERVED_MEMBER_NAMES:
            return 'X_' + identifier.lstrip('_')
        return identifier

    def generate(self, fsm: FsmDefinition, target=None, source_name: Optional[str] = None) -> str:
        """
        Generate source code for a validated model

        Args:
            fsm: Validated FsmDefinition
            target: Target or its name (default from configuration)
            source_name: Shown in the generated header

        Returns:
            Generated source text

        Raises:
            CodegenError: unknown target or unrenderable construct
        """
        if target is None:
            target = get_default_target()
        selected = Target.from_name(target)
        if not isinstance(fsm, FsmDefinition):
            raise CodegenError(f"Code generation needs a validated FsmDefinition, got {type(fsm).__name__}",
                               target=selected.value)

        logger.info("Generating %s code for %s: %d states, %d events",
                    selected.value, fsm.name, len(fsm.states), len(fsm.events))
        emitter = EMITTERS[selected]
        return emitter(self, fsm, source_name)

    def _analyze_model(self, fsm: FsmDefinition) -> Dict:
        """
        Collect the tables and feature flags templates need

        Actions are kept as opaque text; timer commands are resolved here
        so generated code never parses action text.
        """
        events = list(fsm.events)
        for event in fsm.timer_events:
            if event not in events:
                events.append(event)

        self._check_member_names('state', list(fsm.states))
        self._check_member_names('event', events)

        transitions: Dict[str, List] = {}
        completions: Dict[str, List] = {}
        for transition in fsm.transitions:
            if transition.is_completion:
                completions.setdefault(transition.source, []).append(transition)
            else:
                transitions.setdefault(transition.source, []).append(transition)

        choices = {}
        for choice in fsm.choices.values():
            # Conditioned branches in order, else last: first-true-wins equals else-as-fallback
            choices[choice.id] = list(choice.conditioned) + [choice.default]

        timer_commands = {}
        all_actions = []
        for state in fsm.states.values():
            all_actions.extend(state.entry + state.exit)
        for transition in fsm.transitions:
            all_actions.extend(transition.actions)
        for choice in fsm.choices.values():
            for branch in choice.branches:
                all_actions.extend(branch.actions)
        for action in all_actions:
            command = parse_timer_action(action)
            if command:
                timer_commands[action] = command

        return {
            'events': events,
            'transitions': transitions,
            'completions': completions,
            'choices': choices,
            'timer_commands': timer_commands,
            'needs_guards': any(t.guard is not None for t in fsm.transitions) or bool(fsm.choices),
            'needs_timers': bool(fsm.timers),
        }

    def _check_member_names(self, kind, identifiers):
        rendered = {}
        for identifier in identifiers:
            member = self._member_name(identifier)
            if member in rendered:
                raise CodegenError(
                    f"{kind} identifiers '{rendered[member]}' and '{identifier}' both render as '{member}'")
            rendered[member] = identifier

    def _render(self, template_name: str, **context) -> str:
        try:
            template = self.env.get_template(template_name)
            return template.render(**context)
        except TemplateError as e:
            raise CodegenError(f"Template {template_name} failed: {e}") from e


def emit_standard(generator: CodeGenerator, fsm: FsmDefinition, source_name: Optional[str]) -> str:
    """Standalone Python module with enums, dispatch tables and a machine class"""
    analysis = generator._analyze_model(fsm)
    return generator._render(
        'standard.jinja2',
        fsm=fsm,
        header=get_generated_code_header(fsm.name, source_name),
        class_name=fsm.name + FSMDSL_CONFIG['codegen']['class_suffix'],
        **analysis,
    )


EMITTERS: Dict[Target, Callable[[CodeGenerator, FsmDefinition, Optional[str]], str]] = {
    Target.STANDARD: emit_standard,
}

_default_generator = None


def generate_code(fsm: FsmDefinition, target=None, source_name: Optional[str] = None) -> str:
    """Generate with a lazily created module-level CodeGenerator"""
    global _default_generator
    if _default_generator is None:
        _default_generator = CodeGenerator()
    return _default_generator.generate(fsm, target, source_name)
