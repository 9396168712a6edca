"""
Semantic Validator

Checks referential and structural integrity of a MachineDecl and, if no
errors are found, freezes it into an FsmDefinition. Every check runs
independently and all findings are collected, so one pass reports every
problem. Errors block simulation and code generation; warnings do not.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from fsmdsl.errors import InvalidModelError
from fsmdsl.model import FsmDefinition, MachineDecl, SourceSpan, parse_timer_action

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    identifier: Optional[str] = None
    span: Optional[SourceSpan] = None

    severity = 'issue'

    def __str__(self):
        location = f"{self.span}: " if self.span else ""
        return f"{location}{self.severity}[{self.code}]: {self.message}"


@dataclass(frozen=True)
class ValidationError(ValidationIssue):
    severity = 'error'


@dataclass(frozen=True)
class ValidationWarning(ValidationIssue):
    severity = 'warning'


@dataclass
class ValidationResult:
    definition: Optional[FsmDefinition] = None
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> FsmDefinition:
        """Return the definition or raise InvalidModelError"""
        if self.errors:
            raise InvalidModelError(self.errors, self.warnings)
        return self.definition


class SemanticValidator:
    """
    Collect-all validator for MachineDecl

    Usage:
        result = SemanticValidator().validate(decl)
    """

    def validate(self, decl: MachineDecl) -> ValidationResult:
        self.decl = decl
        self.errors: List[ValidationError] = []
        self.warnings: List[ValidationWarning] = []

        state_ids = {state.id for state in decl.states}
        choice_ids = {choice.id for choice in decl.choices}
        self.nodes = state_ids | choice_ids
        self.state_ids = state_ids

        self._check_duplicates()
        self._check_initial()
        self._check_transitions()
        self._check_choices()
        self._check_cycles()
        self._check_timers()
        self._check_shadowed_transitions()
        self._check_reachability()

        result = ValidationResult(errors=self.errors, warnings=self.warnings)
        if not self.errors:
            result.definition = FsmDefinition(
                name=decl.name,
                initial=decl.initial[0].target,
                states={state.id: state for state in decl.states},
                choices={choice.id: choice for choice in decl.choices},
                transitions=tuple(decl.transitions),
                timers=tuple(decl.timers),
            )

        logger.debug("Validated %s: %d error(s), %d warning(s)",
                     decl.name, len(self.errors), len(self.warnings))
        return result

    def _error(self, code, message, identifier=None, span=None):
        self.errors.append(ValidationError(code, message, identifier, span))

    def _warning(self, code, message, identifier=None, span=None):
        self.warnings.append(ValidationWarning(code, message, identifier, span))

    def _check_duplicates(self):
        """States, choices and timers: unique ids; states and choices share a namespace"""
        for kind, items in (('state', self.decl.states),
                            ('choice', self.decl.choices),
                            ('timer', self.decl.timers)):
            seen: Set[str] = set()
            for item in items:
                if item.id in seen:
                    self._error(f'duplicate-{kind}', f"{kind} '{item.id}' is declared more than once",
                                item.id, item.span)
                seen.add(item.id)

        state_ids = {state.id for state in self.decl.states}
        reported: Set[str] = set()
        for choice in self.decl.choices:
            if choice.id in state_ids and choice.id not in reported:
                reported.add(choice.id)
                self._error('name-collision',
                            f"'{choice.id}' is declared both as a state and as a choice",
                            choice.id, choice.span)

    def _check_initial(self):
        markers = self.decl.initial
        if not markers:
            self._error('missing-initial', f"machine '{self.decl.name}' has no initial state ([*] --> X)",
                        self.decl.name, self.decl.span)
            return

        for marker in markers[1:]:
            self._error('multiple-initial',
                        f"second initial marker '[*] --> {marker.target}'; only one is allowed",
                        marker.target, marker.span)

        for marker in markers:
            if marker.target not in self.state_ids:
                if marker.target in self.nodes:
                    message = f"initial target '{marker.target}' is a choice, not a state"
                else:
                    message = f"initial target '{marker.target}' is not a declared state"
                self._error('unknown-initial', message, marker.target, marker.span)

    def _check_transitions(self):
        for transition in self.decl.transitions:
            arrow = f"{transition.source} --> {transition.target}"
            if transition.source not in self.nodes:
                self._error('unknown-source',
                            f"transition '{arrow}': source '{transition.source}' is not a declared state or choice",
                            transition.source, transition.span)
            if transition.target not in self.nodes:
                self._error('unknown-target',
                            f"transition '{arrow}': target '{transition.target}' is not a declared state or choice",
                            transition.target, transition.span)
            if transition.guard is not None and not transition.guard:
                self._error('empty-guard', f"transition '{arrow}' has an empty guard",
                            transition.source, transition.span)

    def _check_choices(self):
        for choice in self.decl.choices:
            defaults = [branch for branch in choice.branches if branch.is_default]
            if not defaults:
                self._error('choice-missing-else', f"choice '{choice.id}' has no [else] branch",
                            choice.id, choice.span)
            for extra in defaults[1:]:
                self._error('choice-multiple-else', f"choice '{choice.id}' has more than one [else] branch",
                            choice.id, extra.span)
            if not choice.conditioned:
                self._error('choice-no-branches', f"choice '{choice.id}' has no conditioned branch",
                            choice.id, choice.span)

            for branch in choice.branches:
                if branch.target not in self.nodes:
                    self._error('unknown-target',
                                f"choice '{choice.id}': branch target '{branch.target}' is not a declared state or choice",
                                branch.target, branch.span)
                if branch.condition is not None and not branch.condition:
                    self._error('empty-guard', f"choice '{choice.id}' has a branch with an empty condition",
                                choice.id, branch.span)

    def _check_cycles(self):
        """
        Detect cycles in the transient graph

        Edges leave choices (every branch) and states (every completion
        transition). A cycle there would make one run-to-completion step
        loop forever.
        """
        edges: Dict[str, List[str]] = {}
        spans: Dict[str, Optional[SourceSpan]] = {}
        for choice in self.decl.choices:
            spans.setdefault(choice.id, choice.span)
            for branch in choice.branches:
                if branch.target in self.nodes:
                    edges.setdefault(choice.id, []).append(branch.target)
        for transition in self.decl.transitions:
            if transition.is_completion and transition.source in self.nodes and transition.target in self.nodes:
                spans.setdefault(transition.source, transition.span)
                edges.setdefault(transition.source, []).append(transition.target)

        choice_ids = {choice.id for choice in self.decl.choices}
        reported: Set[frozenset] = set()
        WHITE, GREY, BLACK = 0, 1, 2
        color: Dict[str, int] = {}

        def visit(start):
            # Iterative DFS; stack holds (node, iterator over successors)
            path = [start]
            color[start] = GREY
            stack = [(start, iter(edges.get(start, ())))]
            while stack:
                node, successors = stack[-1]
                advanced = False
                for successor in successors:
                    state = color.get(successor, WHITE)
                    if state == GREY:
                        cycle = path[path.index(successor):] + [successor]
                        self._report_cycle(cycle, choice_ids, spans, reported)
                    elif state == WHITE:
                        color[successor] = GREY
                        path.append(successor)
                        stack.append((successor, iter(edges.get(successor, ()))))
                        advanced = True
                        break
                if not advanced:
                    color[node] = BLACK
                    path.pop()
                    stack.pop()

        for node in edges:
            if color.get(node, WHITE) == WHITE:
                visit(node)

    def _report_cycle(self, cycle, choice_ids, spans, reported):
        key = frozenset(cycle)
        if key in reported:
            return
        reported.add(key)
        rendered = " -> ".join(cycle)
        if all(node in choice_ids for node in cycle):
            self._error('choice-cycle', f"choice cycle {rendered}", cycle[0], spans.get(cycle[0]))
        else:
            self._error('completion-cycle',
                        f"cycle through completion transitions/choices {rendered}",
                        cycle[0], spans.get(cycle[0]))

    def _check_timers(self):
        for timer in self.decl.timers:
            if timer.duration <= 0:
                self._error('timer-duration', f"timer '{timer.id}' needs a positive duration, got {timer.duration}",
                            timer.id, timer.span)

        events = {t.event for t in self.decl.transitions if t.event is not None}
        for timer in self.decl.timers:
            if timer.event not in events:
                self._warning('timer-event-unused',
                              f"timer '{timer.id}' raises '{timer.event}' but no transition handles it",
                              timer.id, timer.span)

        timer_ids = {timer.id for timer in self.decl.timers}
        for owner, span, actions in self._action_sites():
            for action in actions:
                command = parse_timer_action(action)
                if command and command[1] not in timer_ids:
                    self._error('unknown-timer', f"{owner}: '{action}' refers to undeclared timer '{command[1]}'",
                                command[1], span)

    def _action_sites(self):
        """(description, span, actions) for every place actions can appear"""
        for state in self.decl.states:
            yield f"state '{state.id}'", state.span, state.entry + state.exit
        for transition in self.decl.transitions:
            yield f"transition '{transition.source} --> {transition.target}'", transition.span, transition.actions
        for choice in self.decl.choices:
            for branch in choice.branches:
                yield f"choice '{choice.id}'", branch.span, branch.actions

    def _check_shadowed_transitions(self):
        """Later transitions that declaration order makes unreachable"""
        groups: Dict[tuple, List] = {}
        for transition in self.decl.transitions:
            groups.setdefault((transition.source, transition.event), []).append(transition)

        for (source, event), transitions in groups.items():
            guards_seen: Set[str] = set()
            unguarded = False
            for transition in transitions:
                trigger = event if event is not None else '(completion)'
                if unguarded or (transition.guard is not None and transition.guard in guards_seen):
                    self._warning('shadowed-transition',
                                  f"transition '{source} --> {transition.target}' on {trigger} can never fire; "
                                  f"an earlier transition always takes precedence",
                                  source, transition.span)
                if transition.guard is None:
                    unguarded = True
                else:
                    guards_seen.add(transition.guard)

    def _check_reachability(self):
        initial = {marker.target for marker in self.decl.initial}
        incoming: Set[str] = set()
        for transition in self.decl.transitions:
            if transition.source != transition.target:
                incoming.add(transition.target)
        for choice in self.decl.choices:
            for branch in choice.branches:
                incoming.add(branch.target)

        for state in self.decl.states:
            if state.id not in incoming and state.id not in initial:
                self._warning('unreachable-state', f"state '{state.id}' has no incoming transition",
                              state.id, state.span)


def validate(decl: MachineDecl) -> ValidationResult:
    """Validate a MachineDecl; see SemanticValidator"""
    return SemanticValidator().validate(decl)
