"""
FSM data model

Two layers:
- MachineDecl: what the builder read from the DSL, in source order,
  duplicates and dangling references included.
- FsmDefinition: the validated, immutable aggregate produced by the
  validator and consumed by the engine, the code generator and exporters.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# start_timer(t) / stop_timer(t) are the only action texts the core interprets
TIMER_ACTION_RE = re.compile(r'^\s*(start_timer|stop_timer)\s*\(\s*([A-Za-z_][A-Za-z0-9_]*)\s*\)\s*$')


def parse_timer_action(action: str) -> Optional[Tuple[str, str]]:
    """
    Recognize a timer command

    Returns:
        ('start' | 'stop', timer_id) or None for opaque host actions
    """
    match = TIMER_ACTION_RE.match(action)
    if not match:
        return None
    command = 'start' if match.group(1) == 'start_timer' else 'stop'
    return command, match.group(2)


@dataclass(frozen=True)
class SourceSpan:
    """1-based position of a construct in the DSL text"""
    line: int
    column: int

    def __str__(self):
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class State:
    id: str
    description: Optional[str] = None
    entry: Tuple[str, ...] = ()
    exit: Tuple[str, ...] = ()
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class Transition:
    """`source --> target : event [guard] / actions`; no event means completion transition"""
    source: str
    target: str
    event: Optional[str] = None
    guard: Optional[str] = None
    actions: Tuple[str, ...] = ()
    span: Optional[SourceSpan] = field(default=None, compare=False)

    @property
    def is_completion(self) -> bool:
        return self.event is None

    def label(self) -> str:
        """Render as `event [guard] / a(); b()` for diagrams"""
        parts = []
        if self.event:
            parts.append(self.event)
        if self.guard is not None:
            parts.append(f"[{self.guard}]")
        if self.actions:
            parts.append("/ " + "; ".join(self.actions))
        return " ".join(parts)


@dataclass(frozen=True)
class Timer:
    id: str
    duration: int
    event: str
    periodic: bool = False
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class ChoiceBranch:
    """One `[cond] -> target / actions` line; condition None is the else branch"""
    condition: Optional[str]
    target: str
    actions: Tuple[str, ...] = ()
    span: Optional[SourceSpan] = field(default=None, compare=False)

    @property
    def is_default(self) -> bool:
        return self.condition is None


@dataclass(frozen=True)
class Choice:
    id: str
    branches: Tuple[ChoiceBranch, ...] = ()
    span: Optional[SourceSpan] = field(default=None, compare=False)

    @property
    def conditioned(self) -> Tuple[ChoiceBranch, ...]:
        """Guarded branches in evaluation order"""
        return tuple(b for b in self.branches if not b.is_default)

    @property
    def default(self) -> Optional[ChoiceBranch]:
        for branch in self.branches:
            if branch.is_default:
                return branch
        return None


@dataclass(frozen=True)
class InitialMarker:
    """`[*] --> target`"""
    target: str
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass
class MachineDecl:
    """Builder output: declarations in source order, not yet validated"""
    name: str
    initial: List[InitialMarker] = field(default_factory=list)
    states: List[State] = field(default_factory=list)
    choices: List[Choice] = field(default_factory=list)
    transitions: List[Transition] = field(default_factory=list)
    timers: List[Timer] = field(default_factory=list)
    span: Optional[SourceSpan] = field(default=None, compare=False)


@dataclass(frozen=True)
class FsmDefinition:
    """
    Validated FSM model

    Built only by the validator and never mutated afterwards; every
    mapping is exposed read-only and keeps declaration order.
    """
    name: str
    initial: str
    # Read-only mappings are unhashable; the hash covers the remaining fields
    states: Mapping[str, State] = field(hash=False)
    choices: Mapping[str, Choice] = field(default_factory=dict, hash=False)
    transitions: Tuple[Transition, ...] = ()
    timers: Tuple[Timer, ...] = ()
    _dispatch: Mapping = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'states', MappingProxyType(dict(self.states)))
        object.__setattr__(self, 'choices', MappingProxyType(dict(self.choices)))
        object.__setattr__(self, 'transitions', tuple(self.transitions))
        object.__setattr__(self, 'timers', tuple(self.timers))

        # (source, event) -> transitions in declaration order
        dispatch: Dict[Tuple[str, Optional[str]], List[Transition]] = {}
        for transition in self.transitions:
            dispatch.setdefault((transition.source, transition.event), []).append(transition)
        object.__setattr__(self, '_dispatch', MappingProxyType(
            {key: tuple(value) for key, value in dispatch.items()}
        ))

    def is_state(self, identifier: str) -> bool:
        return identifier in self.states

    def is_choice(self, identifier: str) -> bool:
        return identifier in self.choices

    def transitions_from(self, source: str, event: str) -> Tuple[Transition, ...]:
        """Candidate transitions for an event, in tie-break order"""
        return self._dispatch.get((source, event), ())

    def completions_from(self, source: str) -> Tuple[Transition, ...]:
        """Event-less transitions leaving a state, in tie-break order"""
        return self._dispatch.get((source, None), ())

    def timer(self, identifier: str) -> Optional[Timer]:
        for timer in self.timers:
            if timer.id == identifier:
                return timer
        return None

    @property
    def events(self) -> Tuple[str, ...]:
        """Distinct event names referenced by transitions, first appearance first"""
        seen: Dict[str, None] = {}
        for transition in self.transitions:
            if transition.event is not None:
                seen.setdefault(transition.event, None)
        return tuple(seen)

    @property
    def timer_events(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for timer in self.timers:
            seen.setdefault(timer.event, None)
        return tuple(seen)
