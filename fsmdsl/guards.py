"""GuardRegistry: pluggable evaluation of opaque guard texts."""

from typing import Any, Callable, Dict, List, Optional

GuardPredicate = Callable[[Optional[str], Any], bool]


class GuardRegistry:
    """
    Maps guard texts to callable predicates

    Guard texts are host code the core never interprets. The embedding
    application registers a predicate per text; predicates receive the
    triggering event name (None during load) and its payload.

    An instance is itself a guard evaluator: call it with
    (guard_text, event_name, payload).
    """

    def __init__(self, default: Optional[bool] = None) -> None:
        self._guards: Dict[str, GuardPredicate] = {}
        self._default = default

    def register(self, guard: str, fn: GuardPredicate) -> None:
        """Register a predicate for a guard text. Overwrites if already registered."""
        self._guards[guard.strip()] = fn

    def set(self, guard: str, value: bool) -> None:
        """Register a constant result for a guard text"""
        self.register(guard, lambda event, payload: value)

    def check(self, guard: str, event: Optional[str] = None, payload: Any = None) -> bool:
        """Evaluate a guard. Raises KeyError if not registered and no default is set."""
        fn = self._guards.get(guard.strip())
        if fn is None:
            if self._default is None:
                raise KeyError(guard)
            return self._default
        return bool(fn(event, payload))

    def has(self, guard: str) -> bool:
        return guard.strip() in self._guards

    def names(self) -> List[str]:
        return list(self._guards)

    def __call__(self, guard: str, event: Optional[str], payload: Any) -> bool:
        return self.check(guard, event, payload)
