#!/usr/bin/env python3
"""
fsmdsl command line

    fsmdsl validate machine.fsm
    fsmdsl generate --target standard -o machine_sm.py machine.fsm
    fsmdsl export --format scxml machine.fsm
    fsmdsl simulate --guard "ready=true" machine.fsm go @100 stop

Diagnostics go to stderr as file:line:column: severity[code]: message.
Exit status is 0 on success (warnings allowed) and 1 on any error.
"""

import argparse
import json
import sys
from pathlib import Path

from fsmdsl import compile_text
from fsmdsl.codegen import Target, generate_code
from fsmdsl.errors import CodegenError, DslSyntaxError, SimulationFault
from fsmdsl.export import to_graph, to_scxml
from fsmdsl.fsm_config import get_default_target
from fsmdsl.guards import GuardRegistry
from fsmdsl.simulator import ExecutionEngine


def _print_issue(path, issue):
    location = f"{path}:{issue.span.line}:{issue.span.column}" if issue.span else str(path)
    print(f"{location}: {issue.severity}[{issue.code}]: {issue.message}", file=sys.stderr)


def _compile(path):
    """
    Read and validate a DSL file, printing diagnostics

    Returns:
        ValidationResult, or None if the file is missing or has a syntax error
    """
    if not Path(path).exists():
        print(f"Error: FSM file not found: {path}", file=sys.stderr)
        return None

    text = Path(path).read_text(encoding='utf-8')
    try:
        result = compile_text(text)
    except DslSyntaxError as e:
        print(f"{path}:{e.line}:{e.column}: error[syntax]: {e.message}", file=sys.stderr)
        if e.expected:
            print(f"  expected one of: {', '.join(e.expected)}", file=sys.stderr)
        return None

    for issue in result.errors + result.warnings:
        _print_issue(path, issue)
    return result


def cmd_validate(args):
    result = _compile(args.file)
    if result is None or not result.ok:
        return 1

    fsm = result.definition
    print(f"✓ {args.file}: {fsm.name} is valid "
          f"({len(fsm.states)} states, {len(fsm.choices)} choices, "
          f"{len(fsm.transitions)} transitions, {len(result.warnings)} warning(s))")
    return 0


def cmd_generate(args):
    result = _compile(args.file)
    if result is None or not result.ok:
        return 1

    try:
        output = generate_code(result.definition, args.target, source_name=Path(args.file).name)
    except CodegenError as e:
        print(f"Error generating code: {e}", file=sys.stderr)
        return 1

    if args.output is None:
        sys.stdout.write(output)
        return 0

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(output)
    print(f"  ✓ Generated: {output_path}")
    return 0


def cmd_export(args):
    result = _compile(args.file)
    if result is None or not result.ok:
        return 1

    if args.format == 'scxml':
        sys.stdout.write(to_scxml(result.definition))
    else:
        print(json.dumps(to_graph(result.definition).to_dict(), indent=2))
    return 0


def _parse_guard_option(option):
    text, sep, value = option.rpartition('=')
    if not sep or value.lower() not in ('true', 'false'):
        raise argparse.ArgumentTypeError(f"expected GUARD=true|false, got '{option}'")
    return text, value.lower() == 'true'


def cmd_simulate(args):
    result = _compile(args.file)
    if result is None or not result.ok:
        return 1

    guards = GuardRegistry(default=False)
    for text, value in args.guard:
        guards.set(text, value)

    engine = ExecutionEngine(guard_evaluator=guards, trace_limit=args.trace_limit)
    try:
        actions = engine.load(result.definition)
        print(f"load -> {engine.current_state} {list(actions)}")

        for item in args.items:
            if item.startswith('@'):
                fired = engine.tick(int(item[1:]))
                print(f"tick {item[1:]} (clock {engine.clock}) -> {[event.name for event in fired]}")
            else:
                engine.post_event(item)
            for entry in engine.run_until_idle():
                if entry.matched:
                    print(f"#{entry.sequence} {entry.source} --{entry.event}--> {entry.target} {list(entry.actions)}")
                else:
                    print(f"#{entry.sequence} {entry.source}: unmatched '{entry.event}'")
    except (SimulationFault, ValueError) as e:
        print(f"Error during simulation: {e}", file=sys.stderr)
        return 1

    print(f"final state: {engine.current_state}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog='fsmdsl',
        description='Validate, simulate and generate code from FSM DSL files'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    validate_parser = subparsers.add_parser('validate', help='Check a DSL file and list diagnostics')
    validate_parser.add_argument('file', help='Input FSM DSL file')
    validate_parser.set_defaults(handler=cmd_validate)

    generate_parser = subparsers.add_parser('generate', help='Generate source code')
    generate_parser.add_argument('file', help='Input FSM DSL file')
    generate_parser.add_argument('-t', '--target', default=get_default_target(),
                                 help=f"Target ({', '.join(t.value for t in Target)})")
    generate_parser.add_argument('-o', '--output', default=None,
                                 help='Output file (default: stdout)')
    generate_parser.set_defaults(handler=cmd_generate)

    export_parser = subparsers.add_parser('export', help='Export the model as a graph or SCXML')
    export_parser.add_argument('file', help='Input FSM DSL file')
    export_parser.add_argument('-f', '--format', choices=['graph', 'scxml'], default='graph')
    export_parser.set_defaults(handler=cmd_export)

    simulate_parser = subparsers.add_parser('simulate', help='Replay events through the execution engine')
    simulate_parser.add_argument('file', help='Input FSM DSL file')
    simulate_parser.add_argument('items', nargs='*',
                                 help='Event names to post, or @N to advance logical time by N')
    simulate_parser.add_argument('-g', '--guard', action='append', default=[], type=_parse_guard_option,
                                 metavar='GUARD=true|false', help='Fix a guard result (unlisted guards are false)')
    simulate_parser.add_argument('--trace-limit', type=int, default=None,
                                 help='Trace entries to retain')
    simulate_parser.set_defaults(handler=cmd_simulate)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return args.handler(args)


if __name__ == '__main__':
    sys.exit(main())
