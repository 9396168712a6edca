"""
Model export

- to_graph(): plain node/edge description handed to the external layout
  collaborator. The collaborator's reply (coordinates and edge routes) is
  wrapped in LayoutResult and passed through untouched.
- to_scxml(): W3C SCXML interchange document, rendered with lxml.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Tuple

from lxml import etree

from fsmdsl.fsm_config import FSMDSL_CONFIG
from fsmdsl.model import FsmDefinition, parse_timer_action

INITIAL_NODE_ID = '[*]'


@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    kind: str  # 'initial' | 'state' | 'choice'


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    label: str = ''


@dataclass(frozen=True)
class GraphDescription:
    nodes: Tuple[GraphNode, ...]
    edges: Tuple[GraphEdge, ...]

    def to_dict(self) -> Dict:
        return {
            'nodes': [asdict(node) for node in self.nodes],
            'edges': [asdict(edge) for edge in self.edges],
        }


@dataclass
class LayoutResult:
    """Layout collaborator reply; coordinates are opaque to the core"""
    positions: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    routes: List[List[Tuple[float, float]]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> 'LayoutResult':
        positions = {
            node_id: (float(point['x']), float(point['y']))
            for node_id, point in data.get('positions', {}).items()
        }
        routes = [
            [(float(x), float(y)) for x, y in polyline]
            for polyline in data.get('routes', [])
        ]
        return cls(positions=positions, routes=routes)


def to_graph(fsm: FsmDefinition) -> GraphDescription:
    """Flatten a model into ordered node and edge records"""
    nodes = [GraphNode(INITIAL_NODE_ID, '', 'initial')]
    for state in fsm.states.values():
        label = state.id if not state.description else f"{state.id}\n{state.description}"
        nodes.append(GraphNode(state.id, label, 'state'))
    for choice in fsm.choices.values():
        nodes.append(GraphNode(choice.id, choice.id, 'choice'))

    edges = [GraphEdge(INITIAL_NODE_ID, fsm.initial)]
    for transition in fsm.transitions:
        edges.append(GraphEdge(transition.source, transition.target, transition.label()))
    for choice in fsm.choices.values():
        for branch in choice.branches:
            condition = 'else' if branch.is_default else branch.condition
            label = f"[{condition}]"
            if branch.actions:
                label += " / " + "; ".join(branch.actions)
            edges.append(GraphEdge(choice.id, branch.target, label))

    return GraphDescription(tuple(nodes), tuple(edges))


def to_scxml(fsm: FsmDefinition) -> str:
    """
    Render a model as an SCXML document

    Choices become states with event-less conditional transitions.
    start_timer/stop_timer become <send delay>/<cancel>; a periodic
    timer's re-arming has no SCXML equivalent and is noted in a comment.
    """
    config = FSMDSL_CONFIG['scxml']
    ns = config['namespace']

    def q(tag):
        return f'{{{ns}}}{tag}'

    root = etree.Element(q('scxml'), nsmap={None: ns})
    root.set('version', config['version'])
    root.set('name', fsm.name)
    root.set('initial', fsm.initial)

    def append_actions(parent, actions):
        for action in actions:
            command = parse_timer_action(action)
            if command is None:
                script = etree.SubElement(parent, q('script'))
                script.text = action
                continue
            operation, timer_id = command
            timer = fsm.timer(timer_id)
            if operation == 'start':
                send = etree.SubElement(parent, q('send'))
                send.set('id', timer_id)
                send.set('event', timer.event)
                send.set('delay', f"{timer.duration}{config['delay_unit']}")
                if timer.periodic:
                    parent.append(etree.Comment(f' periodic timer {timer_id} '))
            else:
                cancel = etree.SubElement(parent, q('cancel'))
                cancel.set('sendid', timer_id)

    for state in fsm.states.values():
        element = etree.SubElement(root, q('state'))
        element.set('id', state.id)
        if state.description:
            # '--' is not allowed inside XML comments
            element.append(etree.Comment(' ' + re.sub(r'-(?=-)', '- ', state.description) + ' '))
        if state.entry:
            append_actions(etree.SubElement(element, q('onentry')), state.entry)
        if state.exit:
            append_actions(etree.SubElement(element, q('onexit')), state.exit)
        for transition in fsm.transitions:
            if transition.source != state.id:
                continue
            edge = etree.SubElement(element, q('transition'))
            if transition.event is not None:
                edge.set('event', transition.event)
            if transition.guard is not None:
                edge.set('cond', transition.guard)
            edge.set('target', transition.target)
            append_actions(edge, transition.actions)

    for choice in fsm.choices.values():
        element = etree.SubElement(root, q('state'))
        element.set('id', choice.id)
        for branch in list(choice.conditioned) + [choice.default]:
            edge = etree.SubElement(element, q('transition'))
            if not branch.is_default:
                edge.set('cond', branch.condition)
            edge.set('target', branch.target)
            append_actions(edge, branch.actions)

    return etree.tostring(root, pretty_print=True, xml_declaration=True, encoding='UTF-8').decode('utf-8')
