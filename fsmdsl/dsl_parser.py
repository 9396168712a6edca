"""
FSM DSL Parser

Turns DSL source text into a concrete lark parse tree using the
declarative grammar in grammar.lark. Whitespace and comments are
skipped by the lexer; the first syntax error stops parsing and is
reported as DslSyntaxError with its position and the expected tokens.
"""

import logging
from pathlib import Path
from typing import Iterable, List

from lark import Lark, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from lark.lexer import PatternStr

from fsmdsl.errors import DslSyntaxError

logger = logging.getLogger(__name__)

GRAMMAR_PATH = Path(__file__).parent / 'grammar.lark'

# Friendlier names for the regex terminals in diagnostics
TERMINAL_NAMES = {
    'NAME': 'identifier',
    'STRING': 'quoted description',
    'INT': 'integer',
    'GUARD': '[guard]',
    'ELSE': '[else]',
    'ACTION': 'action()',
    '$END': 'end of input',
}


def _line_column(text: str, offset: int):
    """1-based line/column of a character offset"""
    line = text.count('\n', 0, offset) + 1
    column = offset - (text.rfind('\n', 0, offset) + 1) + 1
    return line, column


class DslParser:
    """
    Grammar-driven FSM DSL parser

    The lark parser is built once per instance and only read afterwards,
    so one instance may be shared between threads.
    """

    def __init__(self, grammar_path=None):
        if grammar_path is None:
            grammar_path = GRAMMAR_PATH
        grammar = Path(grammar_path).read_text(encoding='utf-8')

        self._lark = Lark(
            grammar,
            start='start',
            parser='lalr',
            lexer='contextual',
            propagate_positions=True,
            maybe_placeholders=False,
        )

    def parse(self, text: str) -> Tree:
        """
        Parse DSL text

        Args:
            text: FSM DSL source

        Returns:
            lark Tree rooted at 'start'

        Raises:
            DslSyntaxError: on the first unmatched token
        """
        try:
            return self._lark.parse(text)
        except UnexpectedInput as e:
            raise self._convert_error(text, e) from None

    def _convert_error(self, text: str, error: UnexpectedInput) -> DslSyntaxError:
        """Map a lark exception onto DslSyntaxError with byte/line/column"""
        if isinstance(error, UnexpectedCharacters):
            offset = error.pos_in_stream
            found = text[offset:offset + 1]
            expected = self._describe(error.allowed or ())
            message = f"unexpected character {found!r}"
        elif isinstance(error, UnexpectedToken) and error.token.type != '$END':
            offset = error.token.start_pos
            found = str(error.token)
            expected = self._describe(error.expected or ())
            message = f"unexpected {found!r}"
        elif isinstance(error, (UnexpectedToken, UnexpectedEOF)):
            # End of input: report the position just past the text
            offset = len(text)
            found = ''
            expected = self._describe(error.expected or ())
            message = "unexpected end of input"
        else:
            offset = max(getattr(error, 'pos_in_stream', 0) or 0, 0)
            found = ''
            expected = []
            message = str(error)

        line, column = _line_column(text, offset)
        byte_offset = len(text[:offset].encode('utf-8'))
        logger.debug("Syntax error at %d:%d: %s", line, column, message)
        return DslSyntaxError(message, line, column, byte_offset, found=found, expected=expected)

    def _describe(self, terminal_names: Iterable[str]) -> List[str]:
        """Render terminal names as the text a user would type"""
        described = []
        for name in terminal_names:
            if name in TERMINAL_NAMES:
                described.append(TERMINAL_NAMES[name])
                continue
            try:
                terminal = self._lark.get_terminal(name)
            except KeyError:
                described.append(name)
                continue
            if isinstance(terminal.pattern, PatternStr):
                described.append(f"'{terminal.pattern.value}'")
            else:
                described.append(name)
        return described


_default_parser = None


def parse_dsl(text: str) -> Tree:
    """Parse with a lazily created module-level parser"""
    global _default_parser
    if _default_parser is None:
        _default_parser = DslParser()
    return _default_parser.parse(text)
