"""Symbol relationship graph using NetworkX, rendered as Mermaid.

Nodes are symbols and the files that use them; an edge (A, B) carries the
usage kind. Edge direction follows the kind: inheritance points from the
symbol to the file, calls and references from the file to the symbol.
"""
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional

import networkx as nx

from .models import Symbol, Usage

SYMBOL_TO_FILE_KINDS = {'extend', 'implement'}
FILE_TO_SYMBOL_KINDS = {'call', 'reference'}

# (open, close) around the quoted label
NODE_SHAPES = {
    'class': ('[', ']'),
    'function': ('([', '])'),
    'method': ('([', '])'),
    'selector': ('{', '}'),
    'variable': ('{', '}'),
    'event': ('((', '))'),
    'file': ('>', ']'),
}
DEFAULT_SHAPE = ('[', ']')

ARROW_LABELS = {
    'extend': 'extends',
    'implement': 'implements',
    'contains': 'contains',
    'call': 'calls',
    'reference': 'uses',
    'import': 'imports',
}


def sanitize_id(name: str) -> str:
    """Make a Mermaid-safe node id (anything outside [A-Za-z0-9] becomes '_')."""
    return re.sub(r'[^A-Za-z0-9]', '_', name)


def _escape_label(label: str) -> str:
    return label.replace('"', '#quot;')


@dataclass
class GraphOptions:
    """Options for building and rendering a relationship graph."""
    include_files: bool = True
    include_indirect_relationships: bool = False
    max_nodes: int = 100
    group_by_file: bool = True
    direction: str = 'TD'
    edge_labels: bool = True


@dataclass
class GraphNode:
    id: str
    label: str
    kind: str
    file_path: Optional[str] = None

    def to_dict(self) -> Dict:
        return {'id': self.id, 'label': self.label, 'type': self.kind, 'filePath': self.file_path}


@dataclass
class GraphEdge:
    source: str
    target: str
    kind: str
    label: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {'source': self.source, 'target': self.target, 'type': self.kind}
        if self.label is not None:
            data['label'] = self.label
        return data


class RelationshipGraph:
    """Build a symbol/file relationship graph."""

    def __init__(self, options: Optional[GraphOptions] = None):
        """Initialize an empty graph.

        Args:
            options: Build and render options (defaults to GraphOptions())
        """
        self.options = options or GraphOptions()
        self.graph = nx.MultiDiGraph()

    @property
    def nodes(self) -> List[GraphNode]:
        return [GraphNode(id=node_id, **attrs) for node_id, attrs in self.graph.nodes(data=True)]

    @property
    def edges(self) -> List[GraphEdge]:
        return [
            GraphEdge(source=source, target=target, kind=attrs['kind'], label=attrs.get('label'))
            for source, target, attrs in self.graph.edges(data=True)
        ]

    def build_graph(self, symbols: Iterable[Symbol]) -> nx.MultiDiGraph:
        """Build the graph for a set of symbols.

        Symbol nodes are added first, up to ``max_nodes`` (first come). File
        nodes are then added for each referencing file while the cap allows.

        Args:
            symbols: Symbols with usages (a deep scan result)

        Returns:
            The underlying NetworkX MultiDiGraph
        """
        symbols = list(symbols)
        for symbol in symbols:
            if self.graph.number_of_nodes() >= self.options.max_nodes:
                break
            self._add_symbol_node(symbol)

        if self.options.include_files:
            for symbol in symbols:
                if symbol.id in self.graph:
                    self._add_relationships(symbol)

        if self.options.include_indirect_relationships:
            self._add_indirect_relationships()
        return self.graph

    def build_symbol_graph(self, symbol: Symbol) -> nx.MultiDiGraph:
        """Build the graph for one symbol and the files that use it."""
        self._add_symbol_node(symbol)
        if self.options.include_files:
            self._add_relationships(symbol, capped=False)
        return self.graph

    def _add_symbol_node(self, symbol: Symbol):
        if symbol.id not in self.graph:
            self.graph.add_node(symbol.id, label=symbol.name, kind=symbol.kind, file_path=symbol.file_path)

    def _add_file_node(self, file_path: str, capped: bool) -> Optional[str]:
        node_id = f"file_{sanitize_id(file_path)}"
        if node_id in self.graph:
            return node_id
        if capped and self.graph.number_of_nodes() >= self.options.max_nodes:
            return None
        self.graph.add_node(node_id, label=PurePath(file_path).name, kind='file', file_path=file_path)
        return node_id

    def _add_relationships(self, symbol: Symbol, capped: bool = True):
        usages = symbol.sorted_usages()
        if self.options.group_by_file:
            by_file: Dict[str, List[Usage]] = {}
            for usage in usages:
                by_file.setdefault(usage.file_path, []).append(usage)
            for file_path, group in by_file.items():
                file_node = self._add_file_node(file_path, capped)
                if file_node is not None:
                    self._add_edge(symbol.id, file_node, group[0].kind, f"Used {len(group)} times")
        else:
            for usage in usages:
                file_node = self._add_file_node(usage.file_path, capped)
                if file_node is not None:
                    self._add_edge(symbol.id, file_node, usage.kind, f"Line {usage.position.line + 1}")

    def _add_edge(self, symbol_node: str, file_node: str, kind: str, label: str):
        if kind in FILE_TO_SYMBOL_KINDS:
            self.graph.add_edge(file_node, symbol_node, kind=kind, label=label)
        else:
            self.graph.add_edge(symbol_node, file_node, kind=kind, label=label)

    def _add_indirect_relationships(self):
        by_file: Dict[str, List[str]] = {}
        for node_id, file_path in self.graph.nodes(data='file_path'):
            if file_path:
                by_file.setdefault(file_path, []).append(node_id)

        for node_ids in by_file.values():
            for i, source in enumerate(node_ids):
                for target in node_ids[i + 1:]:
                    if self.graph.has_edge(source, target) or self.graph.has_edge(target, source):
                        continue
                    self.graph.add_edge(source, target, kind='reference', label='Related')

    def to_dict(self) -> Dict:
        """JSON-ready {nodes, edges} view of the graph."""
        return {
            'nodes': [node.to_dict() for node in self.nodes],
            'edges': [edge.to_dict() for edge in self.edges],
        }

    def generate_mermaid_diagram(self) -> str:
        """Render the graph as Mermaid ``graph`` DSL."""
        return generate_mermaid_diagram(self.graph, self.options)


def _arrow(kind: str, label: Optional[str], edge_labels: bool) -> str:
    if not edge_labels:
        return '-->'
    word = ARROW_LABELS.get(kind)
    if word and label:
        return f'-->|"{_escape_label(f"{word}: {label}")}"|'
    if word:
        return f'-->|{word}|'
    if label:
        return f'-->|"{_escape_label(label)}"|'
    return '-->'


def generate_mermaid_diagram(graph: nx.MultiDiGraph, options: Optional[GraphOptions] = None) -> str:
    """Render a relationship graph as Mermaid DSL.

    Args:
        graph: Graph produced by RelationshipGraph
        options: Supplies ``direction`` and ``edge_labels``

    Returns:
        Diagram text; an empty graph renders as the header line alone
    """
    options = options or GraphOptions()
    lines = [f"graph {options.direction}"]

    for node_id, attrs in graph.nodes(data=True):
        shape_open, shape_close = NODE_SHAPES.get(attrs.get('kind'), DEFAULT_SHAPE)
        label = _escape_label(attrs.get('label', node_id))
        lines.append(f'    {sanitize_id(node_id)}{shape_open}"{label}"{shape_close}')

    for source, target, attrs in graph.edges(data=True):
        arrow = _arrow(attrs.get('kind'), attrs.get('label'), options.edge_labels)
        lines.append(f"    {sanitize_id(source)} {arrow} {sanitize_id(target)}")

    return '\n'.join(lines)
