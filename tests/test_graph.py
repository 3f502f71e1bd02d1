"""Tests for the relationship graph and its Mermaid rendering."""
import networkx as nx
import pytest

from usedby.analyzer.graph_builder import GraphOptions, RelationshipGraph, generate_mermaid_diagram

CART_ID = 'src_cart_php_Cart_6_0'


@pytest.fixture
def cart(symbol_factory, usage_factory):
    return symbol_factory('Cart', 'src/cart.php', 6, usages=[
        usage_factory('src/checkout.php', 7, 'call'),
        usage_factory('src/checkout.php', 9, 'call'),
        usage_factory('src/pro.php', 2, 'extend'),
    ])


def render(symbols, **options):
    graph = RelationshipGraph(GraphOptions(**options))
    graph.build_graph(symbols)
    return graph.generate_mermaid_diagram().split('\n')


def test_empty_graph_renders_header_only():
    graph = RelationshipGraph()
    assert isinstance(graph.build_graph([]), nx.MultiDiGraph)
    assert graph.generate_mermaid_diagram() == 'graph TD'
    assert graph.to_dict() == {'nodes': [], 'edges': []}


@pytest.mark.parametrize('direction', ['TD', 'LR', 'RL', 'BT'])
def test_direction_header(cart, direction):
    assert render([cart], direction=direction)[0] == f'graph {direction}'


def test_node_shapes_follow_kind(symbol_factory):
    symbols = [
        symbol_factory('Cart', 'src/cart.php', 6),
        symbol_factory('calculate_total', 'src/cart.php', 22, 'function'),
        symbol_factory('cart-panel', 'assets/cart.css', 4, 'selector'),
        symbol_factory('DOMContentLoaded', 'assets/cart.js', 16, 'event', character=9),
    ]
    lines = render(symbols)
    assert f'    {CART_ID}["Cart"]' in lines
    assert '    src_cart_php_calculate_total_22_0(["calculate_total"])' in lines
    assert '    assets_cart_css_cart_panel_4_0{"cart-panel"}' in lines
    assert '    assets_cart_js_DOMContentLoaded_16_9(("DOMContentLoaded"))' in lines


def test_edges_grouped_by_file(cart):
    lines = render([cart])
    assert '    file_src_checkout_php>"checkout.php"]' in lines
    assert f'    file_src_checkout_php -->|"calls: Used 2 times"| {CART_ID}' in lines
    assert f'    {CART_ID} -->|"extends: Used 1 times"| file_src_pro_php' in lines


def test_edges_per_usage(cart):
    lines = render([cart], group_by_file=False)
    assert f'    file_src_checkout_php -->|"calls: Line 8"| {CART_ID}' in lines
    assert f'    file_src_checkout_php -->|"calls: Line 10"| {CART_ID}' in lines


def test_edge_labels_can_be_hidden(cart):
    lines = render([cart], edge_labels=False)
    assert f'    file_src_checkout_php --> {CART_ID}' in lines


def test_unlabelled_kind_keeps_usage_label(symbol_factory, usage_factory):
    symbol = symbol_factory('Cart', 'src/cart.php', 6, usages=[usage_factory('src/checkout.php', 1, 'inclusion')])
    assert f'    {CART_ID} -->|"Used 1 times"| file_src_checkout_php' in render([symbol])


def test_without_file_nodes(cart):
    graph = RelationshipGraph(GraphOptions(include_files=False))
    graph.build_graph([cart])
    assert [node.id for node in graph.nodes] == [cart.id]
    assert graph.edges == []


def test_max_nodes_caps_symbols_first(symbol_factory, usage_factory, cart):
    other = symbol_factory('Order', 'src/order.php', 1, usages=[usage_factory('src/checkout.php', 3)])
    third = symbol_factory('Invoice', 'src/invoice.php', 1)

    graph = RelationshipGraph(GraphOptions(max_nodes=2))
    graph.build_graph([cart, other, third])
    assert [node.id for node in graph.nodes] == [cart.id, other.id]
    assert graph.edges == []


def test_symbol_graph_is_not_capped(cart):
    graph = RelationshipGraph(GraphOptions(max_nodes=1))
    graph.build_symbol_graph(cart)
    assert {node.kind for node in graph.nodes} == {'class', 'file'}
    assert len(graph.nodes) == 3


def test_indirect_relationships_link_same_file_nodes(symbol_factory):
    symbols = [
        symbol_factory('Cart', 'src/cart.php', 6),
        symbol_factory('calculate_total', 'src/cart.php', 22, 'function'),
        symbol_factory('Order', 'src/order.php', 1),
    ]
    graph = RelationshipGraph(GraphOptions(include_indirect_relationships=True))
    graph.build_graph(symbols)

    assert [(e.source, e.target, e.kind, e.label) for e in graph.edges] == [
        (symbols[0].id, symbols[1].id, 'reference', 'Related'),
    ]


def test_to_dict(cart):
    graph = RelationshipGraph()
    graph.build_graph([cart])
    data = graph.to_dict()

    assert data['nodes'][0] == {'id': cart.id, 'label': 'Cart', 'type': 'class', 'filePath': 'src/cart.php'}
    assert {'source': 'file_src_checkout_php', 'target': cart.id, 'type': 'call',
            'label': 'Used 2 times'} in data['edges']


def test_quotes_in_labels_are_escaped(symbol_factory):
    graph = RelationshipGraph()
    graph.build_graph([symbol_factory('say "hi"', 'a.js', 0, 'function')])
    assert '#quot;hi#quot;' in generate_mermaid_diagram(graph.graph)
