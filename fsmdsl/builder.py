"""
AST Builder

Walks the lark parse tree once, in source order, and produces a
MachineDecl. No semantic checks happen here: duplicates and dangling
references are kept as written so the validator can report them.
"""

import ast
from typing import List, Optional, Tuple

from lark import Token, Tree

from fsmdsl.model import (
    Choice,
    ChoiceBranch,
    InitialMarker,
    MachineDecl,
    SourceSpan,
    State,
    Timer,
    Transition,
)


def _span(node) -> Optional[SourceSpan]:
    """Position of a Tree (via propagate_positions) or Token"""
    if isinstance(node, Token):
        return SourceSpan(node.line, node.column)
    meta = getattr(node, 'meta', None)
    if meta is None or getattr(meta, 'empty', True):
        return None
    return SourceSpan(meta.line, meta.column)


def _names(tree: Tree) -> List[Token]:
    return [child for child in tree.children if isinstance(child, Token) and child.type == 'NAME']


def _subtrees(tree: Tree, data: str) -> List[Tree]:
    return [child for child in tree.children if isinstance(child, Tree) and child.data == data]


def _unwrap_guard(text: str) -> str:
    """'[ x > 1 ]' -> 'x > 1'"""
    return text[1:-1].strip()


class DeclarationBuilder:
    """
    Parse tree to MachineDecl

    One instance per build; call build() once.
    """

    def build(self, tree: Tree) -> MachineDecl:
        machine = tree.children[0] if tree.data == 'start' else tree
        name = _names(machine)[0]
        self.decl = MachineDecl(name=str(name), span=_span(name))

        for item in machine.children:
            if not isinstance(item, Tree):
                continue
            handler = getattr(self, f'_build_{item.data}', None)
            if handler is None:
                raise ValueError(f"Unexpected declaration in parse tree: {item.data}")
            handler(item)

        return self.decl

    def _build_initial(self, tree: Tree):
        target = _names(tree)[0]
        self.decl.initial.append(InitialMarker(target=str(target), span=_span(tree)))

    def _build_state(self, tree: Tree):
        state_id = _names(tree)[0]
        description = None
        entry: List[str] = []
        exit_: List[str] = []

        for child in tree.children:
            if isinstance(child, Token) and child.type == 'STRING':
                # ESCAPED_STRING uses Python-compatible escapes
                description = ast.literal_eval(str(child))
            elif isinstance(child, Tree) and child.data == 'state_body':
                for hook in child.children:
                    actions = self._actions(hook.children[0])
                    if hook.data == 'entry_hook':
                        entry.extend(actions)
                    else:
                        exit_.extend(actions)

        self.decl.states.append(State(
            id=str(state_id),
            description=description,
            entry=tuple(entry),
            exit=tuple(exit_),
            span=_span(state_id),
        ))

    def _build_transition(self, tree: Tree):
        source, target = _names(tree)[:2]
        event = None
        guard = None
        actions: Tuple[str, ...] = ()

        for child in tree.children:
            if not isinstance(child, Tree):
                continue
            if child.data == 'event':
                event = str(child.children[0])
            elif child.data == 'guard':
                guard = _unwrap_guard(str(child.children[0]))
            elif child.data == 'actions':
                actions = self._actions(child.children[0])

        self.decl.transitions.append(Transition(
            source=str(source),
            target=str(target),
            event=event,
            guard=guard,
            actions=actions,
            span=_span(source),
        ))

    def _build_timer(self, tree: Tree):
        timer_id, event = _names(tree)[:2]
        duration = next(c for c in tree.children if isinstance(c, Token) and c.type == 'INT')
        periodic = any(isinstance(c, Token) and c.type == 'PERIODIC' for c in tree.children)

        self.decl.timers.append(Timer(
            id=str(timer_id),
            duration=int(duration),
            event=str(event),
            periodic=periodic,
            span=_span(timer_id),
        ))

    def _build_choice(self, tree: Tree):
        choice_id = _names(tree)[0]
        branches = []

        for child in tree.children:
            if not isinstance(child, Tree):
                continue
            marker = child.children[0]
            target = _names(child)[0]
            actions: Tuple[str, ...] = ()
            for actions_tree in _subtrees(child, 'actions'):
                actions = self._actions(actions_tree.children[0])

            condition = None if child.data == 'else_branch' else _unwrap_guard(str(marker))
            branches.append(ChoiceBranch(
                condition=condition,
                target=str(target),
                actions=actions,
                span=_span(marker),
            ))

        self.decl.choices.append(Choice(
            id=str(choice_id),
            branches=tuple(branches),
            span=_span(choice_id),
        ))

    def _actions(self, action_list: Tree) -> Tuple[str, ...]:
        return tuple(str(token).strip() for token in action_list.children if isinstance(token, Token))


def build_declarations(tree: Tree) -> MachineDecl:
    """Build a MachineDecl from a parse tree produced by DslParser"""
    return DeclarationBuilder().build(tree)
