"""
Exception types raised by the FSM DSL toolkit.

Validation problems are reported as ValidationError / ValidationWarning
records (see validator.py); only the failure to produce a model at all is
raised as InvalidModelError.
"""

from typing import Iterable, Optional, Tuple


class FsmError(Exception):
    """Base class for all toolkit errors"""


class DslSyntaxError(FsmError):
    """
    DSL text does not match the grammar

    Parsing stops at the first error. Positions are 1-based; offset is
    the UTF-8 byte offset of the offending token.
    """

    def __init__(self, message: str, line: int, column: int, offset: int,
                 found: str = "", expected: Iterable[str] = ()):
        self.message = message
        self.line = line
        self.column = column
        self.offset = offset
        self.found = found
        self.expected: Tuple[str, ...] = tuple(sorted(set(expected)))
        super().__init__(self.__str__())

    def __str__(self):
        text = f"line {self.line}, column {self.column}: {self.message}"
        if self.expected:
            text += f" (expected one of: {', '.join(self.expected)})"
        return text


class InvalidModelError(FsmError):
    """Validation found errors; no FsmDefinition was produced"""

    def __init__(self, errors, warnings=()):
        self.errors = list(errors)
        self.warnings = list(warnings)
        summary = "; ".join(str(error) for error in self.errors[:3])
        if len(self.errors) > 3:
            summary += f"; ... ({len(self.errors) - 3} more)"
        super().__init__(f"{len(self.errors)} validation error(s): {summary}")


class CodegenError(FsmError):
    """Unknown target or a model construct the target cannot render"""

    def __init__(self, message: str, target: Optional[str] = None):
        self.target = target
        super().__init__(message)


class SimulationFault(FsmError):
    """Engine misuse (used before load) or a runtime choice/completion cycle"""
