from ldstudio.projection import to_graph, to_table
from ldstudio.rdf import (
    RDF_TYPE, XSD_INTEGER, blank_node, iri, literal, make_quad)

ANN = 'https://example.org/ann'
BOB = 'https://example.org/bob'
SCHEMA = 'https://schema.org/'

QUADS = [
    make_quad(iri(ANN), iri(RDF_TYPE), iri(SCHEMA + 'Person')),
    make_quad(iri(ANN), iri(SCHEMA + 'name'), literal('Ann')),
    make_quad(iri(ANN), iri(SCHEMA + 'knows'), iri(BOB)),
]


class TestTable:
    def test_rows(self):
        rows = to_table(QUADS)
        assert rows[1] == {
            'subject': ANN,
            'predicate': SCHEMA + 'name',
            'object': 'Ann',
            'objectType': 'literal',
            'graph': 'default',
        }
        assert rows[2]['objectType'] == 'IRI'

    def test_named_graph_and_blank_node(self):
        rows = to_table([make_quad(
            blank_node('_:b0'), iri(SCHEMA + 'age'), literal('3', XSD_INTEGER),
            iri('https://example.org/g'))])
        assert rows == [{
            'subject': '_:b0',
            'predicate': SCHEMA + 'age',
            'object': '3',
            'objectType': 'literal',
            'graph': 'https://example.org/g',
        }]


class TestGraph:
    def test_nodes_and_links(self):
        graph = to_graph(QUADS)
        assert graph['nodes'] == [
            {'id': ANN, 'label': 'ann', 'type': 'resource'},
            {'id': SCHEMA + 'Person', 'label': 'schema:Person', 'type': 'resource'},
            {'id': ANN + '-' + SCHEMA + 'name-literal', 'label': 'Ann',
             'type': 'literal', 'value': 'Ann'},
            {'id': BOB, 'label': 'bob', 'type': 'resource'},
        ]
        assert graph['links'] == [
            {'source': ANN, 'target': SCHEMA + 'Person', 'label': 'rdf:type'},
            {'source': ANN, 'target': ANN + '-' + SCHEMA + 'name-literal',
             'label': 'schema:name'},
            {'source': ANN, 'target': BOB, 'label': 'schema:knows'},
        ]

    def test_long_literal_label_truncated(self):
        text = 'a' * 40
        graph = to_graph([make_quad(iri(ANN), iri(SCHEMA + 'description'),
                                    literal(text))])
        literal_node = graph['nodes'][1]
        assert literal_node['label'] == 'a' * 30 + '...'
        assert literal_node['value'] == text

    def test_literals_share_node_per_property(self):
        graph = to_graph([
            make_quad(iri(ANN), iri(SCHEMA + 'email'), literal('a@example.org')),
            make_quad(iri(ANN), iri(SCHEMA + 'email'), literal('b@example.org')),
        ])
        assert len(graph['nodes']) == 2
        assert len(graph['links']) == 2

    def test_empty(self):
        assert to_graph([]) == {'nodes': [], 'links': []}
