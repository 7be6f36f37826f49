"""
The RDF data model shared by the serializers, the SHACL checker and the
projections.

A term is a dict ``{'type': 'IRI' | 'blank node' | 'literal', 'value': str}``;
literals also carry ``datatype`` and, when language-tagged, ``language``.
A quad is a dict with ``subject``, ``predicate``, ``object`` and ``graph``
keys, where ``graph`` is None for the default graph.

.. module:: ldstudio.rdf
  :synopsis: RDF terms and quads
"""

__all__ = [
    'XSD', 'XSD_BOOLEAN', 'XSD_DOUBLE', 'XSD_INTEGER', 'XSD_STRING',
    'RDF', 'RDF_FIRST', 'RDF_REST', 'RDF_NIL', 'RDF_TYPE', 'RDF_LANGSTRING',
    'RDFS', 'iri', 'blank_node', 'literal', 'make_quad', 'term_key',
    'quad_key']

# XSD constants
XSD = 'http://www.w3.org/2001/XMLSchema#'
XSD_BOOLEAN = XSD + 'boolean'
XSD_DOUBLE = XSD + 'double'
XSD_INTEGER = XSD + 'integer'
XSD_STRING = XSD + 'string'

# RDF constants
RDF = 'http://www.w3.org/1999/02/22-rdf-syntax-ns#'
RDF_LIST = RDF + 'List'
RDF_FIRST = RDF + 'first'
RDF_REST = RDF + 'rest'
RDF_NIL = RDF + 'nil'
RDF_TYPE = RDF + 'type'
RDF_LANGSTRING = RDF + 'langString'

RDFS = 'http://www.w3.org/2000/01/rdf-schema#'


def iri(value):
    return {'type': 'IRI', 'value': value}


def blank_node(label):
    return {'type': 'blank node', 'value': label}


def literal(value, datatype=None, language=None):
    """
    Creates a literal term. Language-tagged literals get rdf:langString,
    untyped ones xsd:string.
    """
    term = {'type': 'literal', 'value': value}
    if language:
        term['datatype'] = RDF_LANGSTRING
        term['language'] = language.lower()
    else:
        term['datatype'] = datatype or XSD_STRING
    return term


def make_quad(subject, predicate, object_, graph=None):
    return {
        'subject': subject,
        'predicate': predicate,
        'object': object_,
        'graph': graph
    }


def term_key(term):
    """
    Returns a hashable key identifying the given term (or None).
    """
    if term is None:
        return None
    return (
        term['type'], term['value'],
        term.get('datatype'), term.get('language'))


def quad_key(quad):
    return (
        term_key(quad['subject']), term_key(quad['predicate']),
        term_key(quad['object']), term_key(quad.get('graph')))
