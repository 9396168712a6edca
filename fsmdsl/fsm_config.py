"""
fsmdsl Configuration - Single Source of Truth

Defaults shared by the simulator, the code generator and the CLI.
Callers override individual values through constructor arguments or
command line flags; this module is never written at runtime.

Usage:
    from fsmdsl.fsm_config import FSMDSL_CONFIG
    print(FSMDSL_CONFIG['simulator']['trace_limit'])
"""

from pathlib import Path

FSMDSL_CONFIG = {
    # Project Information
    'project': {
        'name': 'fsmdsl (FSM DSL toolkit)',
        'generator': 'fsmdsl Code Generator',
        'version': '0.4.0',
    },

    # Execution engine defaults
    'simulator': {
        # Oldest trace entries are dropped once this many are held
        'trace_limit': 1000,
        # Logical time units advanced by a bare tick()
        'tick_units': 1,
    },

    # Code generation defaults
    'codegen': {
        'default_target': 'standard',
        'template_dir': str(Path(__file__).parent / 'templates'),
        # Suffix appended to the machine name for the generated class
        'class_suffix': 'Machine',
    },

    # Generated Code License Text (MIT, Unrestricted)
    'generated_code_header': {
        'license': 'MIT',
        'description': 'Generated code may be used in open source and commercial projects without restriction.',
    },

    # SCXML export
    'scxml': {
        'namespace': 'http://www.w3.org/2005/07/scxml',
        'version': '1.0',
        # Timer durations are logical units; exported as milliseconds
        'delay_unit': 'ms',
    },
}


def get_trace_limit():
    """Get the default trace retention bound"""
    return FSMDSL_CONFIG['simulator']['trace_limit']


def get_default_target():
    """Get the code generation target used when none is requested"""
    return FSMDSL_CONFIG['codegen']['default_target']


def get_template_dir():
    """Get the directory holding the Jinja2 code generation templates"""
    return Path(FSMDSL_CONFIG['codegen']['template_dir'])


def get_generated_code_header(machine_name, source_name=None):
    """
    Get the MIT license header for generated code.

    Included at the top of every generated module. Uses
    SPDX-License-Identifier for standard compliance.
    """
    config = FSMDSL_CONFIG
    header = config['generated_code_header']
    # Comment lines end at a line break; keep the file name on one line
    source = ' '.join((source_name or 'unknown.fsm').splitlines())

    return f"""# SPDX-License-Identifier: {header['license']}
#
# Generated by {config['project']['generator']} {config['project']['version']}
# Machine: {machine_name}
# From: {source}
#
# {header['description']}
# Do not edit: regenerate from the FSM DSL source instead.
"""
