from ldstudio.rdf import (
    RDF_TYPE, XSD_INTEGER, blank_node, iri, literal, make_quad)
from ldstudio.turtle import EMPTY_DOCUMENT, shorten_iri, to_turtle

ANN = 'https://example.org/ann'


class TestToTurtle:
    def test_person(self):
        quads = [
            make_quad(iri(ANN), iri(RDF_TYPE), iri('https://schema.org/Person')),
            make_quad(iri(ANN), iri('https://schema.org/name'), literal('Ann')),
        ]
        assert to_turtle(quads) == (
            '@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .\n'
            '@prefix schema: <https://schema.org/> .\n'
            '\n'
            '<https://example.org/ann>\n'
            '    a schema:Person ;\n'
            '    schema:name "Ann" .')

    def test_extra_prefixes_and_datatype(self):
        quads = [make_quad(
            iri(ANN), iri('https://example.org/age'), literal('30', XSD_INTEGER))]
        assert to_turtle(quads, [('https://example.org/', 'ex')]) == (
            '@prefix ex: <https://example.org/> .\n'
            '@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .\n'
            '\n'
            'ex:ann\n'
            '    ex:age "30"^^xsd:integer .')

    def test_prefix_name_used_once(self):
        quads = [make_quad(
            iri('http://schema.org/a'), iri('https://schema.org/b'), literal('x'))]
        assert to_turtle(quads) == (
            '@prefix schema: <http://schema.org/> .\n'
            '\n'
            'schema:a\n'
            '    <https://schema.org/b> "x" .')

    def test_unusable_local_name(self):
        quads = [make_quad(
            iri('https://schema.org/123'), iri('https://schema.org/name'),
            literal('x'))]
        assert '<https://schema.org/123>\n' in to_turtle(quads)

    def test_blank_node_and_language(self):
        quads = [make_quad(
            blank_node('_:b0'), iri('http://purl.org/dc/terms/title'),
            literal('Hallo "Welt"', language='DE'))]
        assert to_turtle(quads).endswith(
            '_:b0\n    dcterms:title "Hallo \\"Welt\\""@de .')

    def test_graphs_dropped(self):
        triple = (iri(ANN), iri('https://schema.org/name'), literal('Ann'))
        quads = [make_quad(*triple), make_quad(*triple, iri('https://example.org/g'))]
        assert to_turtle(quads).count('schema:name') == 1

    def test_subjects_grouped(self):
        quads = [
            make_quad(iri(ANN), iri('https://schema.org/name'), literal('Ann')),
            make_quad(iri('https://example.org/bob'), iri('https://schema.org/name'),
                      literal('Bob')),
            make_quad(iri(ANN), iri('https://schema.org/email'),
                      literal('ann@example.org')),
        ]
        body = to_turtle(quads).split('\n\n')[1:]
        assert body == [
            '<https://example.org/ann>\n'
            '    schema:name "Ann" ;\n'
            '    schema:email "ann@example.org" .',
            '<https://example.org/bob>\n'
            '    schema:name "Bob" .',
        ]

    def test_empty(self):
        assert to_turtle([]) == EMPTY_DOCUMENT


class TestShortenIri:
    def test_known_namespace(self):
        assert shorten_iri('https://schema.org/name') == 'schema:name'
        assert shorten_iri('urn:sdt:Device') == 'sdt:Device'

    def test_last_segment(self):
        assert shorten_iri('http://example.org/vocab#term') == 'term'
        assert shorten_iri('http://example.org/people/ann') == 'ann'

    def test_trailing_slash(self):
        assert shorten_iri('http://example.org/') == 'http://example.org/'
