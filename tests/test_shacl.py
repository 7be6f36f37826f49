import pytest
import rdflib
from rdflib import BNode, Literal, URIRef
from rdflib.namespace import RDF, XSD

from ldstudio import jsonld, shacl
from ldstudio.errors import JsonLdError, ShaclSyntaxError
from ldstudio.rdf import blank_node, iri, literal, make_quad

SCHEMA = rdflib.Namespace('https://schema.org/')

PREFIXES = '''
@prefix sh: <http://www.w3.org/ns/shacl#> .
@prefix schema: <https://schema.org/> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
'''

PERSON_NAME_REQUIRED = PREFIXES + '''
schema:PersonShape a sh:NodeShape ;
    sh:targetClass schema:Person ;
    sh:property [ sh:path schema:name ; sh:minCount 1 ] .
'''

ANN = 'https://example.org/ann'


@pytest.fixture
def options(offline_resolver):
    return {'contextResolver': offline_resolver}


def person(**properties):
    doc = {"@context": "https://schema.org", "@id": ANN, "@type": "Person"}
    doc.update(properties)
    return doc


def report(doc, shapes, options):
    return shacl.validate(doc, shapes, options)


class TestValidate:
    def test_missing_required_property(self, options):
        got = report(person(), PERSON_NAME_REQUIRED, options)
        assert got == {
            'conforms': False,
            'results': [{
                'focusNode': ANN,
                'path': 'https://schema.org/name',
                'severity': 'Violation',
                'message': 'Minimum count of 1 not met (found 0)',
                'value': None,
            }],
        }

    def test_conforms(self, options):
        got = report(person(name="Ann"), PERSON_NAME_REQUIRED, options)
        assert got == {'conforms': True, 'results': []}

    def test_untargeted_nodes_ignored(self, options):
        doc = {"@context": "https://schema.org", "@id": ANN, "@type": "Event"}
        assert report(doc, PERSON_NAME_REQUIRED, options)['conforms']

    def test_every_failing_constraint_reported(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:name ; sh:minCount 1 ] ;
            sh:property [ sh:path schema:age ; sh:datatype xsd:integer ] .
        '''
        got = report(person(age="old"), shapes, options)
        messages = sorted(r['message'] for r in got['results'])
        assert messages == [
            'Expected datatype http://www.w3.org/2001/XMLSchema#integer',
            'Minimum count of 1 not met (found 0)',
        ]
        value = [r['value'] for r in got['results']
                 if r['path'] == 'https://schema.org/age']
        assert value == ['old']

    @pytest.mark.parametrize('first, second', [
        ('sh:property [ sh:path schema:name ; sh:minCount 1 ]',
         'sh:property [ sh:path schema:age ; sh:datatype xsd:integer ]'),
        ('sh:property [ sh:path schema:age ; sh:datatype xsd:integer ]',
         'sh:property [ sh:path schema:name ; sh:minCount 1 ]'),
    ])
    def test_declaration_order_irrelevant(self, options, first, second):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            %s ;
            %s .
        ''' % (first, second)
        got = report(person(age="old"), shapes, options)
        assert len(got['results']) == 2
        assert sorted(r['path'] for r in got['results']) == [
            'https://schema.org/age', 'https://schema.org/name']

    def test_max_count(self, options):
        shapes = PREFIXES + '''
        [] sh:targetClass schema:Person ;
            sh:property [ sh:path schema:email ; sh:maxCount 1 ] .
        '''
        got = report(person(email=["a@example.org", "b@example.org"]), shapes, options)
        assert [r['message'] for r in got['results']] == [
            'Maximum count of 1 exceeded (found 2)']

    def test_pattern_and_lengths(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [
                sh:path schema:telephone ;
                sh:pattern "^[0-9-]+$" ;
                sh:minLength 5 ;
                sh:maxLength 8
            ] .
        '''
        got = report(person(telephone="call me now"), shapes, options)
        assert sorted(r['message'] for r in got['results']) == [
            'Maximum length of 8 exceeded',
            'Value does not match pattern ^[0-9-]+$',
        ]
        got = report(person(telephone="12"), shapes, options)
        assert [r['message'] for r in got['results']] == [
            'Minimum length of 5 not met']

    def test_pattern_flags(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:name ; sh:pattern "^ann$" ;
                          sh:flags "i" ] .
        '''
        assert report(person(name="ANN"), shapes, options)['conforms']

    def test_in(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:gender ; sh:in ( "female" "male" ) ] .
        '''
        got = report(person(gender="unknown"), shapes, options)
        assert [r['message'] for r in got['results']] == [
            'Value must be one of: female, male']
        assert report(person(gender="female"), shapes, options)['conforms']

    def test_node_kind(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:url ; sh:nodeKind sh:Literal ] .
        '''
        got = report(person(url="https://ann.example.org/"), shapes, options)
        assert [r['message'] for r in got['results']] == [
            'Value must be a node of kind Literal']

    def test_custom_message_and_severity(self, options):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:name ; sh:minCount 1 ;
                          sh:message "A person needs a name" ;
                          sh:severity sh:Warning ] .
        '''
        got = report(person(), shapes, options)
        assert got['conforms']
        assert got['results'][0]['message'] == 'A person needs a name'
        assert got['results'][0]['severity'] == 'Warning'

    def test_target_node(self, options):
        shapes = PREFIXES + '''
        schema:AnnShape a sh:NodeShape ;
            sh:targetNode <https://example.org/ann> ;
            sh:property [ sh:path schema:name ; sh:minCount 1 ] .
        '''
        doc = {"@context": "https://schema.org", "@id": ANN, "email": "a@b.c"}
        assert not report(doc, shapes, options)['conforms']

    def test_parsed_graphs(self):
        data = rdflib.Graph()
        data.add((URIRef(ANN), RDF.type, SCHEMA.Person))
        shapes = shacl.parse_shapes(PERSON_NAME_REQUIRED)
        got = shacl.validate(data, shapes)
        assert len(got['results']) == 1

    def test_datatype_requires_literal(self):
        data = rdflib.Graph()
        data.add((URIRef(ANN), RDF.type, SCHEMA.Person))
        data.add((URIRef(ANN), SCHEMA.age, URIRef('https://example.org/thirty')))
        data.add((URIRef(ANN), SCHEMA.age, Literal('30', datatype=XSD.integer)))
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:age ; sh:datatype xsd:integer ] .
        '''
        got = shacl.validate(data, shapes)
        assert [r['value'] for r in got['results']] == [
            'https://example.org/thirty']

    def test_blank_focus_node_labelled(self, options):
        doc = {"@context": "https://schema.org", "@type": "Person"}
        got = report(doc, PERSON_NAME_REQUIRED, options)
        assert got['results'][0]['focusNode'].startswith('_:')


class TestParseShapes:
    def test_syntax_error(self):
        with pytest.raises(ShaclSyntaxError, match='Could not parse SHACL shapes'):
            shacl.parse_shapes('schema:PersonShape a sh:NodeShape')

    def test_bad_pattern(self):
        shapes = PREFIXES + '''
        schema:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:name ; sh:pattern "(" ] .
        '''
        with pytest.raises(ShaclSyntaxError, match='bad sh:pattern'):
            shacl.validate(rdflib.Graph(), shapes)

    def test_property_nodes_are_blank(self):
        graph = shacl.parse_shapes(PERSON_NAME_REQUIRED)
        subjects = list(graph.subjects(shacl.SH.path, None))
        assert len(subjects) == 1
        assert isinstance(subjects[0], BNode)

    def test_only_declared_prefixes_bound(self):
        graph = shacl.parse_shapes(PERSON_NAME_REQUIRED)
        assert {p for p, _ in graph.namespaces()} == {'sh', 'schema', 'xsd'}


class TestDataGraph:
    def test_terms(self):
        graph = shacl.data_graph([
            make_quad(iri(ANN), iri('https://schema.org/knows'),
                      blank_node('_:b0')),
            make_quad(blank_node('_:b0'), iri('https://schema.org/name'),
                      literal('Bea', language='en')),
            make_quad(blank_node('_:b0'), iri('https://schema.org/age'),
                      literal('030', 'http://www.w3.org/2001/XMLSchema#integer'),
                      iri('https://example.org/g')),
        ])
        assert len(graph) == 3
        assert graph.value(URIRef(ANN), SCHEMA.knows) == BNode('b0')
        assert graph.value(BNode('b0'), SCHEMA.name) == Literal('Bea', lang='en')
        # lexical forms are kept as written
        assert str(graph.value(BNode('b0'), SCHEMA.age)) == '030'

    def test_plain_strings_match_untyped_turtle_literals(self):
        graph = shacl.data_graph([make_quad(
            iri(ANN), iri('https://schema.org/name'), literal('Ann'))])
        assert graph.value(URIRef(ANN), SCHEMA.name) == Literal('Ann')


class TestGenerateShapes:
    def generate(self, doc, options):
        return shacl.parse_shapes(shacl.generate_shapes(doc, options))

    def test_person(self, options):
        doc = person(name="John Doe", email="john@example.org")
        turtle = shacl.generate_shapes(doc, options)
        assert 'ex:PersonShape' in turtle
        assert 'sh:NodeShape' in turtle
        assert 'sh:targetClass schema:Person' in turtle
        assert 'sh:property' in turtle

        shapes = shacl.parse_shapes(turtle)
        shape = URIRef(shacl.GENERATED_SHAPES + 'PersonShape')
        assert shapes.value(shape, shacl.SH.targetClass) == SCHEMA.Person
        paths = {shapes.value(p, shacl.SH.path): p
                 for p in shapes.objects(shape, shacl.SH.property)}
        assert set(paths) == {SCHEMA.name, SCHEMA.email}
        name = paths[SCHEMA.name]
        assert shapes.value(name, shacl.SH.minCount) == Literal(1)
        assert shapes.value(name, shacl.SH.datatype) == XSD.string
        assert str(shapes.value(name, shacl.SH.message)) == \
            'Property name is required'

    def test_source_document_conforms(self, options):
        doc = person(name="John", age=41, height=1.8, member=True,
                     address={"@type": "PostalAddress",
                              "addressLocality": "San Francisco"})
        shapes = shacl.generate_shapes(doc, options)
        assert 'ex:PostalAddressShape' in shapes
        assert report(doc, shapes, options) == {
            'conforms': True, 'results': []}

    def test_datatypes_and_node_kinds(self, options):
        doc = person(age=41, height=1.8, member=True,
                     birthDate="1990-01-01", knows={"@id": "https://example.org/bob"},
                     sameAs="https://ann.example.org/")
        shapes = self.generate(doc, options)
        shape = URIRef(shacl.GENERATED_SHAPES + 'PersonShape')
        constraints = {}
        for node in shapes.objects(shape, shacl.SH.property):
            constraints[shapes.value(node, shacl.SH.path)] = (
                shapes.value(node, shacl.SH.datatype),
                shapes.value(node, shacl.SH.nodeKind))
        assert constraints[SCHEMA.age] == (XSD.integer, None)
        assert constraints[SCHEMA.height] == (XSD.double, None)
        assert constraints[SCHEMA.member] == (XSD.boolean, None)
        assert constraints[SCHEMA.birthDate] == (XSD.date, None)
        assert constraints[SCHEMA.knows] == (None, shacl.SH.IRI)
        assert constraints[SCHEMA.sameAs] == (None, shacl.SH.IRI)

    def test_optional_property_not_required(self, options):
        doc = {"@context": "https://schema.org", "@graph": [
            {"@type": "Person", "name": "Ann", "email": "ann@example.org"},
            {"@type": "Person", "name": "Bea"},
        ]}
        shapes = self.generate(doc, options)
        counts = {shapes.value(p, shacl.SH.path): shapes.value(p, shacl.SH.minCount)
                  for p in shapes.subjects(shacl.SH.path, None)}
        assert counts == {SCHEMA.name: Literal(1), SCHEMA.email: None}

    def test_mixed_datatypes_unconstrained(self, options):
        doc = {"@context": "https://schema.org", "@graph": [
            {"@type": "Person", "age": 41},
            {"@type": "Person", "age": "forty"},
        ]}
        shapes = self.generate(doc, options)
        assert list(shapes.subjects(shacl.SH.path, SCHEMA.age))
        assert not list(shapes.objects(None, shacl.SH.datatype))

    def test_untyped_document(self, options):
        doc = {"@context": "https://schema.org",
               "@id": "https://example.org/thing", "name": "Something"}
        turtle = shacl.generate_shapes(doc, options)
        assert 'ex:GeneratedShape' in turtle
        assert 'sh:targetClass' not in turtle

    def test_empty_document(self, options):
        shapes = self.generate({}, options)
        shape = URIRef(shacl.GENERATED_SHAPES + 'GeneratedShape')
        assert list(shapes.objects(shape, RDF.type)) == [shacl.SH.NodeShape]

    def test_context_prefixes_used(self, options):
        doc = {"@context": {"dcterms": "http://purl.org/dc/terms/",
                            "sdt": "urn:sdt:"},
               "@type": "dcterms:Text", "dcterms:title": "Test Document"}
        turtle = shacl.generate_shapes(doc, options)
        assert '@prefix dcterms: <http://purl.org/dc/terms/> .' in turtle
        assert 'ex:TextShape' in turtle
        assert 'sh:path dcterms:title' in turtle

    def test_shape_names_unique(self, options):
        doc = {"@context": {"a": "https://a.example/", "b": "https://b.example/"},
               "@graph": [{"@type": "a:Thing", "a:x": 1},
                          {"@type": "b:Thing", "b:x": 2}]}
        turtle = shacl.generate_shapes(doc, options)
        assert 'ex:ThingShape\n' in turtle
        assert 'ex:ThingShape2' in turtle

    def test_invalid_input(self, options):
        with pytest.raises(JsonLdError, match='must be a JSON-LD object'):
            shacl.generate_shapes(None, options)


class TestContextPrefixes:
    def test_namespaces_and_inferred_prefixes(self):
        got = shacl.context_prefixes([
            "https://www.w3.org/2019/wot/td/v1",
            {"@vocab": "https://example.org/",
             "foaf": "http://xmlns.com/foaf/0.1/",
             "title": "http://purl.org/dc/terms/title",
             "version": "http://example.org/0.1/version",
             "sdt": "urn:sdt:"}])
        assert got == [('http://xmlns.com/foaf/0.1/', 'foaf'),
                       ('http://purl.org/dc/terms/', 'terms')]


class TestShapeTemplate:
    def test_template(self):
        template = shacl.shape_template('Person')
        assert 'ex:PersonShape a sh:NodeShape' in template
        assert 'sh:targetClass ex:Person' in template
        assert len(shacl.parse_shapes(template)) > 0

    def test_namespace(self):
        template = shacl.shape_template('Product', 'https://myapp.org/')
        assert '@prefix ex: <https://myapp.org/> .' in template


class TestContextFromShapes:
    def test_prefixes_and_target_class(self):
        shapes = '''
        @prefix sh: <http://www.w3.org/ns/shacl#> .
        @prefix schema: <https://schema.org/> .
        @prefix foaf: <http://xmlns.com/foaf/0.1/> .
        @prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
        @prefix ex: <https://example.org/> .

        ex:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path foaf:name ; sh:datatype xsd:string ;
                          sh:maxCount 1 ] .
        '''
        ctx = shacl.context_from_shapes(shapes)['@context']
        assert ctx == {
            '@version': 1.1,
            'id': '@id',
            'type': '@type',
            'graph': '@graph',
            'xsd': 'http://www.w3.org/2001/XMLSchema#',
            'sh': 'http://www.w3.org/ns/shacl#',
            'schema': 'https://schema.org/',
            'foaf': 'http://xmlns.com/foaf/0.1/',
            'ex': 'https://example.org/',
            'Person': {'@id': 'https://schema.org/Person'},
            'name': {'@id': 'http://xmlns.com/foaf/0.1/name',
                     '@type': 'xsd:string'},
        }

    def test_property_definitions(self):
        shapes = PREFIXES + '''
        @prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
        @prefix ex: <https://example.org/> .

        ex:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:birthDate ; sh:datatype xsd:date ;
                          sh:maxCount 1 ] ;
            sh:property [ sh:path schema:email ; sh:datatype xsd:string ] ;
            sh:property [ sh:path schema:sameAs ; sh:nodeKind sh:IRI ;
                          sh:maxCount 1 ] ;
            sh:property [ sh:path schema:address ;
                          sh:class schema:PostalAddress ] ;
            sh:property [ sh:path schema:description ;
                          sh:datatype rdf:langString ] ;
            sh:property [ sh:path schema:gtin ;
                          sh:datatype <https://example.org/Gtin> ;
                          sh:maxCount 1 ] ;
            sh:property [ sh:path schema:knows ; sh:nodeKind sh:IRI ;
                          sh:pattern "^https://people.example.org/" ] ;
            sh:property [ sh:path schema:givenName ; sh:maxCount 1 ] .
        '''
        ctx = shacl.context_from_shapes(shapes)['@context']
        assert ctx['birthDate'] == {
            '@id': 'https://schema.org/birthDate', '@type': 'xsd:date'}
        assert ctx['email'] == {
            '@id': 'https://schema.org/email', '@type': 'xsd:string',
            '@container': '@set'}
        assert ctx['sameAs'] == {
            '@id': 'https://schema.org/sameAs', '@type': '@id'}
        assert ctx['address'] == {
            '@id': 'https://schema.org/address', '@type': '@id',
            '@container': '@set'}
        assert ctx['description'] == {
            '@id': 'https://schema.org/description', '@container': '@language'}
        assert ctx['gtin'] == {
            '@id': 'https://schema.org/gtin', '@type': 'https://example.org/Gtin'}
        assert ctx['knows'] == {
            '@id': 'https://schema.org/knows', '@type': '@id',
            '@container': '@set',
            '@context': {'@base': 'https://people.example.org/'}}
        assert ctx['givenName'] == 'https://schema.org/givenName'

    def test_options(self):
        shapes = PREFIXES + '''
        [] a sh:NodeShape ;
            sh:property [ sh:path schema:email ; sh:datatype xsd:string ] ;
            sh:property [ sh:path schema:name ; sh:name "fullName" ] ;
            sh:property [ sh:path schema:url ; sh:name "not a term" ] .
        '''
        ctx = shacl.context_from_shapes(
            shapes, use_container_set=False, include_xsd_prefix=False,
            shortnames={'https://schema.org/email': 'mail'})['@context']
        assert ctx['mail'] == {
            '@id': 'https://schema.org/email',
            '@type': 'http://www.w3.org/2001/XMLSchema#string'}
        assert ctx['fullName'] == 'https://schema.org/name'
        assert ctx['url'] == 'https://schema.org/url'
        # declared by the shapes themselves
        assert ctx['xsd'] == 'http://www.w3.org/2001/XMLSchema#'

    def test_first_shape_of_a_path_wins(self):
        shapes = PREFIXES + '''
        schema:AShape a sh:NodeShape ;
            sh:property [ sh:path schema:name ; sh:maxCount 1 ] .
        schema:BShape a sh:NodeShape ;
            sh:property [ sh:path schema:name ; sh:maxCount 1 ;
                          sh:name "label" ] .
        '''
        ctx = shacl.context_from_shapes(shapes)['@context']
        assert ('name' in ctx) != ('label' in ctx)

    def test_class_shapes(self):
        shapes = PREFIXES + '''
        @prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
        @prefix ex: <https://example.org/> .

        ex:Book a rdfs:Class ;
            sh:property [ sh:path ex:title ; sh:maxCount 1 ] .
        '''
        ctx = shacl.context_from_shapes(shapes)['@context']
        assert ctx['Book'] == {'@id': 'https://example.org/Book'}
        assert ctx['title'] == 'https://example.org/title'

    def test_empty_shapes(self):
        assert shacl.context_from_shapes('') == {'@context': {
            '@version': 1.1, 'id': '@id', 'type': '@type', 'graph': '@graph',
            'xsd': 'http://www.w3.org/2001/XMLSchema#'}}

    def test_invalid_shapes(self):
        with pytest.raises(ShaclSyntaxError):
            shacl.context_from_shapes('this is not valid turtle @@@ $$$')

    def test_generated_context_expands_data(self, offline_resolver):
        shapes = PREFIXES + '''
        @prefix ex: <https://example.org/> .
        ex:PersonShape a sh:NodeShape ;
            sh:targetClass schema:Person ;
            sh:property [ sh:path schema:name ; sh:maxCount 1 ] ;
            sh:property [ sh:path schema:age ; sh:datatype xsd:integer ;
                          sh:maxCount 1 ] .
        '''
        ctx = shacl.context_from_shapes(shapes)
        doc = dict(ctx, id='https://example.org/ann', type='Person',
                   name='Ann', age='41')
        assert jsonld.expand(doc, {'contextResolver': offline_resolver}) == [{
            '@id': 'https://example.org/ann',
            '@type': ['https://schema.org/Person'],
            'https://schema.org/name': [{'@value': 'Ann'}],
            'https://schema.org/age': [{
                '@value': '41',
                '@type': 'http://www.w3.org/2001/XMLSchema#integer'}],
        }]
