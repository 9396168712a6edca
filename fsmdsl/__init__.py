"""
fsmdsl - FSM DSL toolkit

DSL text -> DslParser -> build_declarations -> validate -> FsmDefinition
-> {ExecutionEngine, CodeGenerator, to_graph / to_scxml}

Usage:
    from fsmdsl import load_definition, ExecutionEngine

    fsm = load_definition('fsm T { [*] --> Red  state Red  state Green  Red --> Green : go }')
    engine = ExecutionEngine()
    engine.load(fsm)
    engine.post_event('go')
    engine.step()
"""

from fsmdsl.builder import build_declarations
from fsmdsl.codegen import CodeGenerator, Target, generate_code
from fsmdsl.dsl_parser import DslParser, parse_dsl
from fsmdsl.errors import CodegenError, DslSyntaxError, FsmError, InvalidModelError, SimulationFault
from fsmdsl.export import GraphDescription, LayoutResult, to_graph, to_scxml
from fsmdsl.guards import GuardRegistry
from fsmdsl.model import (
    Choice,
    ChoiceBranch,
    FsmDefinition,
    InitialMarker,
    MachineDecl,
    SourceSpan,
    State,
    Timer,
    Transition,
)
from fsmdsl.simulator import EngineStatus, ExecutionEngine, TraceEntry, TraceOutcome
from fsmdsl.validator import ValidationError, ValidationResult, ValidationWarning, validate


def compile_text(text: str) -> ValidationResult:
    """
    Parse, build and validate DSL text

    Raises:
        DslSyntaxError: text does not match the grammar
    """
    return validate(build_declarations(parse_dsl(text)))


def load_definition(text: str) -> FsmDefinition:
    """
    DSL text to a validated FsmDefinition

    Raises:
        DslSyntaxError: text does not match the grammar
        InvalidModelError: validation found errors
    """
    return compile_text(text).raise_for_errors()


__all__ = [
    'Choice',
    'ChoiceBranch',
    'CodeGenerator',
    'CodegenError',
    'DslParser',
    'DslSyntaxError',
    'EngineStatus',
    'ExecutionEngine',
    'FsmDefinition',
    'FsmError',
    'GraphDescription',
    'GuardRegistry',
    'InitialMarker',
    'InvalidModelError',
    'LayoutResult',
    'MachineDecl',
    'SimulationFault',
    'SourceSpan',
    'State',
    'Target',
    'Timer',
    'TraceEntry',
    'TraceOutcome',
    'Transition',
    'ValidationError',
    'ValidationResult',
    'ValidationWarning',
    'build_declarations',
    'compile_text',
    'generate_code',
    'load_definition',
    'parse_dsl',
    'to_graph',
    'to_scxml',
    'validate',
]
