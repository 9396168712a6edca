"""
Execution Engine (Simulator)

Run-to-completion interpreter over a validated FsmDefinition. The engine
owns only its runtime state (current state, pending events, armed
timers, logical clock and trace); the model is never mutated.

Dispatch rule (mirrored exactly by the generated 'standard' code):
1. Pop one event; candidates are the transitions leaving the current
   state for that event, in declaration order. The first one without a
   guard, or whose guard evaluates true, is taken. Guard errors are false.
2. Run exit actions of the source, then the transition actions.
3. While the target is a choice, take its first true conditioned branch
   (else the default branch) and run that branch's actions.
4. Enter the target state: run its entry actions.
5. Take completion (event-less) transitions of the new state the same way
   until none is enabled.
Every executed step appends one TraceEntry; unmatched events are recorded
with outcome UNMATCHED and change nothing. If the action handler raises,
the step is rolled back (state, timers, event back at the queue head) and
the exception propagates.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from fsmdsl.errors import SimulationFault
from fsmdsl.fsm_config import FSMDSL_CONFIG, get_trace_limit
from fsmdsl.guards import GuardRegistry
from fsmdsl.model import Choice, ChoiceBranch, FsmDefinition, Transition, parse_timer_action

logger = logging.getLogger(__name__)

GuardEvaluator = Callable[[str, Optional[str], Any], bool]
ActionHandler = Callable[[str], None]


class EngineStatus(Enum):
    IDLE = 'idle'        # no machine loaded
    READY = 'ready'      # waiting for step()
    RUNNING = 'running'  # inside a run-to-completion step


class TraceOutcome(Enum):
    TRANSITION = 'transition'
    UNMATCHED = 'unmatched'


@dataclass(frozen=True)
class PendingEvent:
    name: str
    payload: Any = None
    timer: Optional[str] = None  # set for timer self-posts


@dataclass(frozen=True)
class TraceEntry:
    """One step: where it started, where it ended and what ran in between"""
    sequence: int
    source: str
    target: str
    event: str
    actions: Tuple[str, ...]
    outcome: TraceOutcome = TraceOutcome.TRANSITION
    path: Tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.outcome is TraceOutcome.TRANSITION


@dataclass(frozen=True)
class ArmedTimer:
    timer_id: str
    due: int
    sequence: int
    owner: Optional[str]


@dataclass(frozen=True)
class EngineSnapshot:
    """Point-in-time copy of the runtime state, safe to hand to a renderer"""
    status: EngineStatus
    current: Optional[str]
    pending: Tuple[PendingEvent, ...]
    timers: Tuple[ArmedTimer, ...]
    clock: int
    trace: Tuple[TraceEntry, ...]


class ExecutionEngine:
    """
    Step-through interpreter for one FsmDefinition

    One owner issues load/post_event/step/tick serially; other readers
    use snapshot() or the tuple-returning properties.
    """

    def __init__(self, guard_evaluator: Optional[GuardEvaluator] = None,
                 action_handler: Optional[ActionHandler] = None,
                 trace_limit: Optional[int] = None):
        if trace_limit is None:
            trace_limit = get_trace_limit()
        if trace_limit < 1:
            raise ValueError(f"trace_limit must be positive, got {trace_limit}")

        self._guard = guard_evaluator if guard_evaluator is not None else GuardRegistry()
        self._action_handler = action_handler
        self._trace_limit = trace_limit

        self._fsm: Optional[FsmDefinition] = None
        self._status = EngineStatus.IDLE
        self._current: Optional[str] = None
        self._queue: deque = deque()
        self._timers: Dict[str, list] = {}  # timer id -> [due, sequence, owner]
        self._timer_sequence = 0
        self._clock = 0
        self._trace: deque = deque(maxlen=trace_limit)
        self._sequence = 0
        self.trace_dropped = 0

    # ------------------------------------------------------------------
    # Lifecycle

    def load(self, fsm: FsmDefinition) -> Tuple[str, ...]:
        """
        Reset runtime state and enter the initial state

        Returns:
            Actions executed while entering the initial state
        """
        if not isinstance(fsm, FsmDefinition):
            raise SimulationFault(f"load() needs a validated FsmDefinition, got {type(fsm).__name__}")

        self._fsm = fsm
        self._current = None
        self._queue.clear()
        self._timers.clear()
        self._timer_sequence = 0
        self._clock = 0
        self._trace.clear()
        self._sequence = 0
        self.trace_dropped = 0

        executed: List[str] = []
        self._status = EngineStatus.RUNNING
        try:
            path: List[str] = []
            visited: set = set()
            self._enter(fsm.initial, executed, visited, path)
            self._settle(None, None, executed, visited, path)
            self._claim_timers()
        finally:
            self._status = EngineStatus.READY

        logger.debug("Loaded %s: current=%s", fsm.name, self._current)
        return tuple(executed)

    def post_event(self, name: str, payload: Any = None) -> None:
        """Queue an event; never blocks"""
        self._require_loaded('post_event')
        self._queue.append(PendingEvent(name, payload))

    def step(self) -> Optional[TraceEntry]:
        """
        Process one pending event to completion

        Returns:
            The appended TraceEntry, or None if no event was pending
        """
        self._require_loaded('step')
        if not self._queue:
            return None

        event = self._queue.popleft()
        saved = self._save_runtime()
        self._status = EngineStatus.RUNNING
        try:
            entry = self._dispatch(event)
        except Exception:
            # A failing action handler or a fault leaves the machine as it was before the step
            self._restore_runtime(saved)
            self._queue.appendleft(event)
            raise
        finally:
            self._status = EngineStatus.READY

        if len(self._trace) == self._trace_limit:
            self.trace_dropped += 1
        self._trace.append(entry)
        return entry

    def run_until_idle(self, max_steps: Optional[int] = None) -> List[TraceEntry]:
        """Step until the queue is empty (or max_steps were taken)"""
        self._require_loaded('run_until_idle')
        entries = []
        while self._queue and (max_steps is None or len(entries) < max_steps):
            entries.append(self.step())
        return entries

    def tick(self, elapsed: Optional[int] = None) -> Tuple[PendingEvent, ...]:
        """
        Advance the logical clock

        Every armed timer that falls due posts its event, earliest due
        time first (arming order breaks ties). Periodic timers re-arm,
        one-shot timers disarm.

        Returns:
            The events posted by expired timers
        """
        self._require_loaded('tick')
        if elapsed is None:
            elapsed = FSMDSL_CONFIG['simulator']['tick_units']
        if elapsed < 0:
            raise ValueError(f"elapsed must not be negative, got {elapsed}")

        self._clock += elapsed
        fired = []
        while True:
            due = [(entry[0], entry[1], timer_id)
                   for timer_id, entry in self._timers.items() if entry[0] <= self._clock]
            if not due:
                break
            due_at, _, timer_id = min(due)
            timer = self._fsm.timer(timer_id)
            event = PendingEvent(timer.event, None, timer=timer_id)
            self._queue.append(event)
            fired.append(event)
            if timer.periodic:
                self._timers[timer_id][0] = due_at + timer.duration
            else:
                del self._timers[timer_id]

        if fired:
            logger.debug("Tick to %d fired %s", self._clock, [e.timer for e in fired])
        return tuple(fired)

    # ------------------------------------------------------------------
    # Read access

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def fsm(self) -> Optional[FsmDefinition]:
        return self._fsm

    @property
    def current_state(self) -> Optional[str]:
        return self._current

    @property
    def clock(self) -> int:
        return self._clock

    @property
    def pending(self) -> Tuple[PendingEvent, ...]:
        return tuple(self._queue)

    @property
    def trace(self) -> Tuple[TraceEntry, ...]:
        return tuple(self._trace)

    @property
    def armed_timers(self) -> Tuple[ArmedTimer, ...]:
        armed = [ArmedTimer(timer_id, entry[0], entry[1], entry[2]) for timer_id, entry in self._timers.items()]
        return tuple(sorted(armed, key=lambda t: (t.due, t.sequence)))

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            status=self._status,
            current=self._current,
            pending=self.pending,
            timers=self.armed_timers,
            clock=self._clock,
            trace=self.trace,
        )

    # ------------------------------------------------------------------
    # Dispatch

    def _require_loaded(self, operation: str):
        if self._fsm is None:
            raise SimulationFault(f"{operation}() called before load()")

    def _save_runtime(self):
        timers = {timer_id: list(entry) for timer_id, entry in self._timers.items()}
        return self._current, timers, self._timer_sequence, self._sequence

    def _restore_runtime(self, saved):
        self._current, timers, self._timer_sequence, self._sequence = saved
        self._timers = timers
        logger.debug("Step rolled back; current=%s", self._current)

    def _dispatch(self, event: PendingEvent) -> TraceEntry:
        source = self._current
        self._sequence += 1

        transition = self._select(self._fsm.transitions_from(source, event.name), event.name, event.payload)
        if transition is None:
            logger.debug("Unmatched event %r in state %s", event.name, source)
            return TraceEntry(self._sequence, source, source, event.name, (),
                              TraceOutcome.UNMATCHED, (source,))

        executed: List[str] = []
        path = [source]
        visited: set = set()
        self._take(transition, event.name, event.payload, executed, visited, path)
        self._settle(event.name, event.payload, executed, visited, path)
        self._claim_timers()

        logger.debug("Step %d: %s --%s--> %s via %s", self._sequence, source, event.name,
                     self._current, path)
        return TraceEntry(self._sequence, source, self._current, event.name, tuple(executed),
                          TraceOutcome.TRANSITION, tuple(path))

    def _take(self, transition: Transition, name, payload, executed, visited, path):
        self._exit(self._current, executed)
        self._run(transition.actions, executed)

        target = transition.target
        while self._fsm.is_choice(target):
            self._visit(target, visited, path)
            branch = self._choose(self._fsm.choices[target], name, payload)
            self._run(branch.actions, executed)
            target = branch.target

        self._enter(target, executed, visited, path)

    def _settle(self, name, payload, executed, visited, path):
        """Follow enabled completion transitions from the current state"""
        while True:
            transition = self._select(self._fsm.completions_from(self._current), name, payload)
            if transition is None:
                return
            self._take(transition, name, payload, executed, visited, path)

    def _select(self, candidates, name, payload) -> Optional[Transition]:
        for transition in candidates:
            if transition.guard is None or self._check(transition.guard, name, payload):
                return transition
        return None

    def _choose(self, choice: Choice, name, payload) -> ChoiceBranch:
        for branch in choice.conditioned:
            if self._check(branch.condition, name, payload):
                return branch
        return choice.default

    def _check(self, guard: str, name, payload) -> bool:
        try:
            return bool(self._guard(guard, name, payload))
        except Exception as e:
            logger.warning("Guard [%s] could not be evaluated (%s: %s); treated as false",
                           guard, type(e).__name__, e)
            return False

    def _visit(self, node: str, visited: set, path: List[str]):
        if node in visited:
            raise SimulationFault(f"Cycle while resolving one step: {' -> '.join(path + [node])}")
        visited.add(node)
        path.append(node)

    def _enter(self, state_id: str, executed, visited, path):
        self._visit(state_id, visited, path)
        self._current = state_id
        self._run(self._fsm.states[state_id].entry, executed)

    def _exit(self, state_id: str, executed):
        self._current = None
        self._run(self._fsm.states[state_id].exit, executed)
        for timer_id in [t for t, entry in self._timers.items() if entry[2] == state_id]:
            del self._timers[timer_id]

    def _run(self, actions, executed: List[str]):
        for action in actions:
            executed.append(action)
            if self._action_handler is not None:
                self._action_handler(action)
            command = parse_timer_action(action)
            if command is None:
                continue
            operation, timer_id = command
            if operation == 'start':
                self._start_timer(timer_id)
            else:
                self._timers.pop(timer_id, None)

    def _start_timer(self, timer_id: str):
        timer = self._fsm.timer(timer_id)
        if timer is None:
            logger.warning("start_timer(%s): no such timer", timer_id)
            return
        self._timer_sequence += 1
        # Owner None until the step settles; see _claim_timers
        self._timers[timer_id] = [self._clock + timer.duration, self._timer_sequence, self._current]

    def _claim_timers(self):
        """Timers armed between exit and entry belong to the state the step ended in"""
        for entry in self._timers.values():
            if entry[2] is None:
                entry[2] = self._current
