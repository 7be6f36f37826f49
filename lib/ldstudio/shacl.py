"""
SHACL support for the workbench: a lightweight checker covering the core
value constraints (cardinality, datatype, pattern, length, enumeration and
node kind), a shapes generator that drafts shapes from a JSON-LD document
and a generator of JSON-LD contexts from shapes.

Shapes and data are held as rdflib graphs; JSON-LD data is converted with
the processor in :mod:`ldstudio.jsonld`.

.. module:: ldstudio.shacl
  :synopsis: SHACL validation and generation
"""

import logging
import re

import rdflib
from rdflib.namespace import RDF, RDFS

from ldstudio import jsonld
from ldstudio.errors import JsonLdError, ShaclSyntaxError
from ldstudio.rdf import (
    RDF_LANGSTRING, RDF_TYPE, XSD, XSD_BOOLEAN, XSD_DOUBLE, XSD_INTEGER,
    XSD_STRING, blank_node, iri, literal, make_quad)
from ldstudio.turtle import TurtleWriter

log = logging.getLogger(__name__)

SH = rdflib.Namespace('http://www.w3.org/ns/shacl#')

# namespace of the shapes drafted by generate_shapes
GENERATED_SHAPES = 'https://example.org/shapes#'

# node kind -> node classes it admits
NODE_KINDS = {
    SH.IRI: (rdflib.URIRef,),
    SH.BlankNode: (rdflib.BNode,),
    SH.Literal: (rdflib.Literal,),
    SH.BlankNodeOrIRI: (rdflib.BNode, rdflib.URIRef),
    SH.BlankNodeOrLiteral: (rdflib.BNode, rdflib.Literal),
    SH.IRIOrLiteral: (rdflib.URIRef, rdflib.Literal),
}

# XSD datatypes written with the xsd: prefix in generated contexts
XSD_TERMS = (
    'string', 'integer', 'decimal', 'float', 'double', 'boolean', 'date',
    'dateTime', 'time', 'anyURI', 'nonNegativeInteger', 'positiveInteger')

_REGEX_FLAGS = {
    'i': re.IGNORECASE,
    'm': re.MULTILINE,
    's': re.DOTALL,
    'x': re.VERBOSE,
}

_DATE_TIME = re.compile(r'^\d{4}-\d{2}-\d{2}T')
_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_WEB_ADDRESS = re.compile(r'^https?://')
_PREFIX_NAME = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')
_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_PATTERN_BASE = re.compile(r'^\^?(https?://[^)$\\]+)')


def parse_shapes(turtle):
    """
    Parses a shapes graph written in Turtle. The graph only binds the
    prefixes the Turtle declares.

    :param turtle: the Turtle text.

    :return: the rdflib Graph.
    """
    graph = rdflib.Graph(bind_namespaces='none')
    try:
        graph.parse(data=turtle, format='turtle')
    except Exception as cause:
        raise ShaclSyntaxError(
            'Could not parse SHACL shapes: %s' % cause, cause=cause)
    log.debug('Parsed %d shapes triples.', len(graph))
    return graph


def _to_node(term):
    if term['type'] == 'IRI':
        return rdflib.URIRef(term['value'])
    if term['type'] == 'blank node':
        return rdflib.BNode(term['value'][2:])
    if term.get('language'):
        return rdflib.Literal(term['value'], lang=term['language'])
    datatype = term.get('datatype')
    if datatype in (None, XSD_STRING):
        return rdflib.Literal(term['value'])
    return rdflib.Literal(
        term['value'], datatype=rdflib.URIRef(datatype), normalize=False)


def data_graph(quads):
    """
    Loads quads into an rdflib Graph. Graph names are dropped, so lookups
    span every graph of the dataset.

    :param quads: the quads, e.g. from :func:`ldstudio.jsonld.to_rdf`.

    :return: the rdflib Graph.
    """
    graph = rdflib.Graph()
    for quad in quads:
        graph.add((_to_node(quad['subject']), _to_node(quad['predicate']),
                   _to_node(quad['object'])))
    return graph


def _label(node):
    if isinstance(node, rdflib.BNode):
        return '_:' + node
    return str(node)


def _datatype(node):
    if node.datatype is not None:
        return str(node.datatype)
    return RDF_LANGSTRING if node.language else XSD_STRING


def _integer(node):
    if node is None:
        return None
    try:
        return int(str(node))
    except ValueError:
        raise ShaclSyntaxError(
            'Invalid SHACL shapes; "%s" is not an integer.' % node,
            {'value': str(node)})


def _local_name(value):
    return re.split(r'[#/]', value)[-1] or value


class PropertyShape(object):
    """
    The constraints of one ``sh:property`` node, read from the shapes
    graph.
    """

    def __init__(self, shapes, node):
        self.node = node
        path = shapes.value(node, SH.path)
        self.path = path if isinstance(path, rdflib.URIRef) else None
        self.min_count = _integer(shapes.value(node, SH.minCount))
        self.max_count = _integer(shapes.value(node, SH.maxCount))
        datatype = shapes.value(node, SH.datatype)
        self.datatype = str(datatype) if datatype is not None else None
        self.min_length = _integer(shapes.value(node, SH.minLength))
        self.max_length = _integer(shapes.value(node, SH.maxLength))
        self.node_kind = shapes.value(node, SH.nodeKind)
        message = shapes.value(node, SH.message)
        self.message = str(message) if message is not None else None
        severity = shapes.value(node, SH.severity)
        self.severity = _local_name(
            str(severity) if severity is not None else SH.Violation)

        head = shapes.value(node, SH['in'])
        self.allowed = None
        if head is not None:
            try:
                self.allowed = list(shapes.items(head))
            except ValueError as cause:
                raise ShaclSyntaxError(
                    'Invalid SHACL shapes; bad sh:in list: %s' % cause,
                    cause=cause)

        pattern = shapes.value(node, SH.pattern)
        self.pattern = None
        if pattern is not None:
            flags = 0
            for flag in str(shapes.value(node, SH.flags) or ''):
                flags |= _REGEX_FLAGS.get(flag, 0)
            try:
                self.pattern = re.compile(str(pattern), flags)
            except re.error as cause:
                raise ShaclSyntaxError(
                    'Invalid SHACL shapes; bad sh:pattern "%s": %s' % (
                        pattern, cause),
                    {'pattern': str(pattern)}, cause=cause)
            self.pattern_text = str(pattern)

    def check(self, data, focus):
        """
        Evaluates every constraint against the values of the focus node.
        All constraints are evaluated; each failing one contributes a
        result.

        :param data: the data Graph.
        :param focus: the focus node.

        :return: the list of (message, value) failures.
        """
        values = list(data.objects(focus, self.path))
        failures = []

        if self.min_count is not None and len(values) < self.min_count:
            failures.append((
                'Minimum count of %d not met (found %d)' % (
                    self.min_count, len(values)), None))
        if self.max_count is not None and len(values) > self.max_count:
            failures.append((
                'Maximum count of %d exceeded (found %d)' % (
                    self.max_count, len(values)), None))

        for value in values:
            text = _label(value)
            is_literal = isinstance(value, rdflib.Literal)
            is_blank = isinstance(value, rdflib.BNode)

            if self.datatype is not None and not (
                    is_literal and _datatype(value) == self.datatype):
                failures.append(
                    ('Expected datatype %s' % self.datatype, text))
            if self.pattern is not None and (
                    is_blank or not self.pattern.search(text)):
                failures.append((
                    'Value does not match pattern %s' % self.pattern_text,
                    text))
            if self.min_length is not None and (
                    is_blank or len(text) < self.min_length):
                failures.append(
                    ('Minimum length of %d not met' % self.min_length, text))
            if self.max_length is not None and (
                    is_blank or len(text) > self.max_length):
                failures.append(
                    ('Maximum length of %d exceeded' % self.max_length, text))
            if self.allowed is not None and value not in self.allowed:
                failures.append((
                    'Value must be one of: %s' % ', '.join(
                        str(t) for t in self.allowed), text))
            if self.node_kind is not None and not isinstance(
                    value, NODE_KINDS.get(self.node_kind, ())):
                failures.append((
                    'Value must be a node of kind %s' % _local_name(
                        self.node_kind), text))

        if self.message is not None:
            failures = [(self.message, value) for _, value in failures]
        return failures


def _unique(nodes):
    seen = set()
    for node in nodes:
        if node not in seen:
            seen.add(node)
            yield node


def _node_shapes(shapes):
    return list(_unique(
        list(shapes.subjects(RDF.type, SH.NodeShape)) +
        list(shapes.subjects(SH.targetClass, None)) +
        list(shapes.subjects(SH.targetNode, None))))


def _focus_nodes(data, shapes, shape):
    nodes = []
    for target in shapes.objects(shape, SH.targetClass):
        nodes.extend(data.subjects(RDF.type, target))
    nodes.extend(shapes.objects(shape, SH.targetNode))
    return list(_unique(nodes))


def validate_graph(data, shapes):
    """
    Validates a data graph against a shapes graph.

    :param data: the data Graph.
    :param shapes: the shapes Graph.

    :return: the validation report.
    """
    results = []
    for shape in _node_shapes(shapes):
        property_shapes = [
            PropertyShape(shapes, node)
            for node in shapes.objects(shape, SH.property)]
        property_shapes = [p for p in property_shapes if p.path is not None]
        for focus in _focus_nodes(data, shapes, shape):
            for property_shape in property_shapes:
                for message, value in property_shape.check(data, focus):
                    results.append({
                        'focusNode': _label(focus),
                        'path': str(property_shape.path),
                        'severity': property_shape.severity,
                        'message': message,
                        'value': value
                    })
    return {
        'conforms': not any(r['severity'] == 'Violation' for r in results),
        'results': results
    }


def validate(data, shapes, options=None):
    """
    Validates a JSON-LD document against SHACL shapes.

    :param data: the JSON-LD document, or an rdflib Graph of data.
    :param shapes: the shapes as Turtle text, or a parsed Graph.
    :param [options]: the options passed to the JSON-LD to RDF conversion
      (e.g. contextResolver, base).

    :return: ``{'conforms': bool, 'results': [...]}``.
    """
    if not isinstance(shapes, rdflib.Graph):
        shapes = parse_shapes(shapes)
    if not isinstance(data, rdflib.Graph):
        data = data_graph(jsonld.to_rdf(data, options))
    return validate_graph(data, shapes)


def detect_datatype(value):
    """
    Guesses the datatype of a JSON value. Strings that look like web
    addresses give ``'@id'``.

    :param value: the JSON value.

    :return: the datatype IRI, '@id' or None.
    """
    if isinstance(value, bool):
        return XSD_BOOLEAN
    if isinstance(value, int):
        return XSD_INTEGER
    if isinstance(value, float):
        return XSD_DOUBLE
    if isinstance(value, str):
        if _DATE_TIME.match(value):
            return XSD + 'dateTime'
        if _DATE.match(value):
            return XSD + 'date'
        if _WEB_ADDRESS.match(value):
            return '@id'
        return XSD_STRING
    return None


def context_prefixes(context):
    """
    Collects prefixes from a document's ``@context``: terms mapped to a
    namespace ending in '/' or '#', and the namespaces of terms mapped to
    web addresses, named after their last path segment.

    :param context: the local context (object, array or URL).

    :return: a list of (namespace, prefix) pairs.
    """
    rval = []
    if isinstance(context, list):
        for item in context:
            rval.extend(context_prefixes(item))
        return rval
    if not isinstance(context, dict):
        return rval
    for key, value in context.items():
        if key.startswith('@') or not isinstance(value, str):
            continue
        if value.endswith(('/', '#')):
            namespace, prefix = value, key
        elif _WEB_ADDRESS.match(value):
            namespace = value[:max(value.rfind('/'), value.rfind('#')) + 1]
            prefix = re.split(r'[/#]', namespace.rstrip('/#'))[-1]
        else:
            continue
        if _PREFIX_NAME.match(prefix):
            rval.append((namespace, prefix))
    return rval


class _PropertyStats(object):
    def __init__(self):
        self.nodes = 0
        self.datatypes = set()
        self.node_kinds = set()


def _is_node(value):
    return isinstance(value, dict) and '@value' not in value and \
        '@list' not in value


def _collect(nodes, shapes, shape_key):
    """
    Records the properties of each node under the shape of its first type;
    untyped nodes share the shape of the node that holds them.
    """
    for node in nodes:
        if not _is_node(node):
            continue
        types = node.get('@type') or []
        key = types[0] if types else shape_key
        if '@graph' in node:
            _collect(node['@graph'], shapes, key)
        properties = [p for p in node if not p.startswith('@')]
        if not properties and not types:
            continue
        shape = shapes.setdefault(key, {'nodes': 0, 'properties': {}})
        shape['nodes'] += 1
        for prop in properties:
            stats = shape['properties'].setdefault(prop, _PropertyStats())
            stats.nodes += 1
            for value in node[prop]:
                if '@value' in value:
                    if '@type' in value:
                        stats.datatypes.add(value['@type'])
                    elif '@language' in value:
                        stats.datatypes.add(RDF_LANGSTRING)
                    else:
                        stats.datatypes.add(detect_datatype(value['@value']))
                elif '@list' in value:
                    stats.node_kinds.add(SH.BlankNodeOrIRI)
                    _collect(value['@list'], shapes, key)
                else:
                    if value.get('@id', '_:').startswith('_:'):
                        stats.node_kinds.add(SH.BlankNodeOrIRI)
                    else:
                        stats.node_kinds.add(SH.IRI)
                    _collect([value], shapes, key)


def _shape_iri(type_iri, taken):
    name = 'Generated'
    if type_iri is not None:
        name = re.sub(r'[^A-Za-z0-9_-]', '',
                      re.split(r'[#/:]', type_iri)[-1]) or 'Thing'
    rval = GENERATED_SHAPES + name + 'Shape'
    count = 1
    while rval in taken:
        count += 1
        rval = '%s%sShape%d' % (GENERATED_SHAPES, name, count)
    taken.add(rval)
    return rval


def _sh(name):
    return iri(str(SH[name]))


def _property_quads(node, path, stats, required):
    quads = [make_quad(node, _sh('path'), iri(path))]
    if required:
        quads.append(make_quad(
            node, _sh('minCount'), literal('1', XSD_INTEGER)))
    if stats.node_kinds and not stats.datatypes:
        kind = next(iter(stats.node_kinds)) if len(stats.node_kinds) == 1 \
            else SH.BlankNodeOrIRI
        quads.append(make_quad(node, _sh('nodeKind'), iri(str(kind))))
    elif not stats.node_kinds and len(stats.datatypes) == 1:
        datatype = next(iter(stats.datatypes))
        if datatype not in (None, '@id', '@json'):
            quads.append(make_quad(node, _sh('datatype'), iri(datatype)))
    if required:
        quads.append(make_quad(node, _sh('message'), literal(
            'Property %s is required' % _local_name(path))))
    return quads


def generate_shapes(doc, options=None):
    """
    Drafts SHACL shapes from a JSON-LD document: one node shape per node
    type, targeting that type, with a property shape for every property
    its nodes use. A property every node of the type has gets
    ``sh:minCount 1``; a property whose values all have one datatype gets
    ``sh:datatype``, and one holding nodes gets ``sh:nodeKind``.

    :param doc: the JSON-LD document.
    :param [options]: the options to use for expansion
      (e.g. contextResolver).

    :return: the shapes as Turtle.
    """
    if not isinstance(doc, (dict, list)):
        raise JsonLdError(
            'Could not generate shapes; the input must be a JSON-LD object '
            'or array.', 'jsonld.InvalidInput', {'input': doc})
    context = doc.get('@context') if isinstance(doc, dict) else None
    prefixes = context_prefixes(context) + [(GENERATED_SHAPES, 'ex')]

    shapes = {}
    _collect(jsonld.expand(doc, options), shapes, None)
    if not shapes:
        shapes[None] = {'nodes': 0, 'properties': {}}

    quads = []
    taken = set()
    count = 0
    for type_iri, shape in shapes.items():
        subject = iri(_shape_iri(type_iri, taken))
        quads.append(make_quad(subject, iri(RDF_TYPE), _sh('NodeShape')))
        if type_iri is not None:
            quads.append(make_quad(
                subject, _sh('targetClass'),
                blank_node(type_iri) if type_iri.startswith('_:')
                else iri(type_iri)))
        for path, stats in shape['properties'].items():
            node = blank_node('_:p%d' % count)
            count += 1
            quads.append(make_quad(subject, _sh('property'), node))
            quads.extend(_property_quads(
                node, path, stats, stats.nodes == shape['nodes']))
    log.debug('Generated %d shapes.', len(shapes))
    return TurtleWriter(prefixes).write(quads)


def shape_template(type_name, namespace='https://example.org/'):
    """
    Returns a starter shape for a type, requiring a name and allowing at
    most one description.

    :param type_name: the local name of the type.
    :param namespace: the namespace of the type and its properties.
    """
    return '''@prefix sh: <http://www.w3.org/ns/shacl#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
@prefix ex: <%(namespace)s> .

ex:%(type)sShape a sh:NodeShape ;
    sh:targetClass ex:%(type)s ;
    sh:property [
        sh:path ex:name ;
        sh:minCount 1 ;
        sh:datatype xsd:string ;
        sh:message "Must have a name" ;
    ] ;
    sh:property [
        sh:path ex:description ;
        sh:maxCount 1 ;
        sh:datatype xsd:string ;
    ] .
''' % {'namespace': namespace, 'type': type_name}


def _is_reference(shapes, node):
    return (shapes.value(node, SH.nodeKind) in (SH.IRI, SH.BlankNodeOrIRI) or
            shapes.value(node, SH['class']) is not None or
            shapes.value(node, SH.node) is not None)


def _is_multi_valued(shapes, node):
    max_count = _integer(shapes.value(node, SH.maxCount))
    return max_count is None or max_count > 1


def context_from_shapes(shapes, use_container_set=True,
                        include_xsd_prefix=True, shortnames=None):
    """
    Builds a JSON-LD context from SHACL shapes. The context carries the
    prefixes of the shapes, a term per target class and a term per
    property path. A property term is coerced to its ``sh:datatype``, or
    to ``@id`` when it holds nodes; ``rdf:langString`` properties get a
    language map and properties without ``sh:maxCount 1`` a set container.

    :param shapes: the shapes as Turtle text, or a parsed Graph.
    :param use_container_set: give multi-valued properties ``@set``.
    :param include_xsd_prefix: define ``xsd`` and write XSD datatypes with
      it.
    :param shortnames: path IRI -> term overrides; otherwise ``sh:name``
      is used when it is a plain identifier, else the local name of the
      path.

    :return: ``{'@context': {...}}``.
    """
    if not isinstance(shapes, rdflib.Graph):
        shapes = parse_shapes(shapes)
    shortnames = shortnames or {}

    ctx = {'@version': 1.1, 'id': '@id', 'type': '@type', 'graph': '@graph'}
    if include_xsd_prefix:
        ctx['xsd'] = XSD
    for prefix, namespace in shapes.namespaces():
        if prefix and not prefix.startswith('_'):
            ctx[prefix] = str(namespace)

    class_shapes = [
        s for s in shapes.subjects(RDF.type, RDFS.Class)
        if shapes.value(s, SH.property) is not None]
    node_shapes = _unique(
        list(shapes.subjects(RDF.type, SH.NodeShape)) + class_shapes)

    done = set()
    for shape in node_shapes:
        for target in shapes.objects(shape, SH.targetClass):
            name = re.split(r'[#/]', target)[-1]
            if name and name not in ctx:
                ctx[name] = {'@id': str(target)}
        if isinstance(shape, rdflib.URIRef) and \
                (shape, RDF.type, RDFS.Class) in shapes:
            name = re.split(r'[#/]', shape)[-1]
            if name and name not in ctx:
                ctx[name] = {'@id': str(shape)}

        for node in shapes.objects(shape, SH.property):
            path = shapes.value(node, SH.path)
            if not isinstance(path, rdflib.URIRef) or path in done:
                continue
            done.add(path)

            term = shortnames.get(str(path))
            if term is None:
                name = shapes.value(node, SH.name)
                if name is not None and _IDENTIFIER.match(name):
                    term = str(name)
                else:
                    term = re.split(r'[#/]', path)[-1]
            if not term:
                continue

            definition = {'@id': str(path)}
            datatype = shapes.value(node, SH.datatype)
            if datatype is not None:
                local = str(datatype)[len(XSD):]
                if str(datatype) == RDF_LANGSTRING:
                    definition['@container'] = '@language'
                elif include_xsd_prefix and datatype.startswith(XSD) and \
                        local in XSD_TERMS:
                    definition['@type'] = 'xsd:' + local
                else:
                    definition['@type'] = str(datatype)
            if '@type' not in definition and _is_reference(shapes, node):
                definition['@type'] = '@id'
            if (use_container_set and '@container' not in definition and
                    _is_multi_valued(shapes, node)):
                definition['@container'] = '@set'

            pattern = shapes.value(node, SH.pattern)
            if pattern is not None and definition.get('@type') == '@id':
                match = _PATTERN_BASE.match(pattern)
                if match:
                    definition['@context'] = {'@base': match.group(1)}

            ctx[term] = definition['@id'] if len(definition) == 1 \
                else definition
    return {'@context': ctx}
