"""
N-Quads serialization and parsing of quads.

.. module:: ldstudio.nquads
  :synopsis: N-Quads reader and writer
"""

import logging
import re

from ldstudio.rdf import (
    RDF_LANGSTRING, XSD_STRING, blank_node, iri, literal, make_quad, quad_key)

log = logging.getLogger(__name__)

_ESCAPES = {
    '\\': '\\',
    '"': '"',
    't': '\t',
    'n': '\n',
    'r': '\r',
    'b': '\b',
    'f': '\f',
    "'": "'"
}

_ESCAPE_SEQUENCE = re.compile(
    r'\\(?:u([0-9A-Fa-f]{4})|U([0-9A-Fa-f]{8})|(.))', re.DOTALL)


def escape(value: str):
    return (
        value.replace('\\', '\\\\')
        .replace('\t', '\\t')
        .replace('\n', '\\n')
        .replace('\r', '\\r')
        .replace('"', '\\"'))


def unescape(value: str):
    def replace(match):
        if match.group(1):
            return chr(int(match.group(1), 16))
        if match.group(2):
            return chr(int(match.group(2), 16))
        char = match.group(3)
        # unknown escapes are kept as written
        return _ESCAPES.get(char, '\\' + char)
    return _ESCAPE_SEQUENCE.sub(replace, value)


# define partial regexes
_IRI = '(?:<([^:]+:[^>]*)>)'
_BNODE = '(_:(?:[A-Za-z0-9_][A-Za-z0-9_.-]*))'
_PLAIN = '"([^"\\\\]*(?:\\\\.[^"\\\\]*)*)"'
_DATATYPE = '(?:\\^\\^' + _IRI + ')'
_LANGUAGE = '(?:@([a-zA-Z]+(?:-[a-zA-Z0-9]+)*))'
_LITERAL = '(?:' + _PLAIN + '(?:' + _DATATYPE + '|' + _LANGUAGE + ')?)'
_WS = '[ \\t]+'
_WSO = '[ \\t]*'

# define quad part regexes
_SUBJECT = '(?:' + _IRI + '|' + _BNODE + ')' + _WS
_PROPERTY = _IRI + _WS
_OBJECT = '(?:' + _IRI + '|' + _BNODE + '|' + _LITERAL + ')' + _WSO
_GRAPH = '(?:\\.|(?:(?:' + _IRI + '|' + _BNODE + ')' + _WSO + '\\.))'

_LINE_END = re.compile(r'\r?\n')

# literals are not accepted in the graph position, the data model has no
# use for them
_QUAD = re.compile(
    r'^' + _WSO + _SUBJECT + _PROPERTY + _OBJECT + _GRAPH + _WSO + '$')


def parse_nquads(input_: str):
    """
    Parses RDF in the form of N-Quads. Lines that do not match the grammar
    are skipped.

    :param input_: the N-Quads input to parse.

    :return: the list of unique quads in input order.
    """
    quads = []
    seen = set()

    # only LF (or CRLF) ends a line; str.splitlines() would also break
    # literals holding U+2028, form feeds and other raw separators
    for line_number, line in enumerate(_LINE_END.split(input_), 1):
        stripped = line.strip()
        # skip empty lines and comments
        if not stripped or stripped.startswith('#'):
            continue

        match = _QUAD.search(line)
        if match is None:
            log.debug(
                'Skipping invalid N-Quads line %d: %s', line_number, stripped)
            continue
        match = match.groups()

        # get subject
        if match[0] is not None:
            subject = iri(match[0])
        else:
            subject = blank_node(match[1])

        # get predicate
        predicate = iri(match[2])

        # get object
        if match[3] is not None:
            object_ = iri(match[3])
        elif match[4] is not None:
            object_ = blank_node(match[4])
        elif match[7] is not None:
            object_ = literal(unescape(match[5]), language=match[7])
        else:
            object_ = literal(unescape(match[5]), match[6])

        # get graph name (None is the default graph)
        graph = None
        if match[8] is not None:
            graph = iri(match[8])
        elif match[9] is not None:
            graph = blank_node(match[9])

        quad = make_quad(subject, predicate, object_, graph)
        key = quad_key(quad)
        if key not in seen:
            seen.add(key)
            quads.append(quad)

    return quads


def serialize_nquads(quads):
    """
    Converts quads to N-Quads.

    :param quads: the quads to convert.

    :return: the N-Quads string, one sorted line per quad.
    """
    return ''.join(sorted(serialize_nquad(quad) for quad in quads))


def _term(term):
    if term['type'] == 'IRI':
        return '<' + term['value'] + '>'
    if term['type'] == 'blank node':
        return term['value']
    quoted = '"' + escape(term['value']) + '"'
    datatype = term.get('datatype')
    if datatype == RDF_LANGSTRING:
        if term.get('language'):
            quoted += '@' + term['language'].lower()
    elif datatype and datatype != XSD_STRING:
        quoted += '^^<' + datatype + '>'
    return quoted


def serialize_nquad(quad):
    """
    Converts a quad to an N-Quad string (a single line).

    :param quad: the quad; a None graph is the default graph.

    :return: the N-Quad string.
    """
    line = '%s %s %s' % (
        _term(quad['subject']), _term(quad['predicate']),
        _term(quad['object']))
    if quad.get('graph') is not None:
        line += ' ' + _term(quad['graph'])
    return line + ' .\n'
