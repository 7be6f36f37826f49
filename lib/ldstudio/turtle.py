"""
Turtle output for quads, plus the prefix table shared with the graph
projection.

.. module:: ldstudio.turtle
  :synopsis: Turtle writer
"""

import re

from ldstudio.nquads import escape
from ldstudio.rdf import RDF_LANGSTRING, RDF_TYPE, XSD_STRING, term_key

# (namespace, prefix) in lookup order; the first namespace to occur gets a
# prefix name, later namespaces with the same name stay unabbreviated
NAMESPACES = (
    ('http://www.w3.org/1999/02/22-rdf-syntax-ns#', 'rdf'),
    ('http://www.w3.org/2000/01/rdf-schema#', 'rdfs'),
    ('http://www.w3.org/2001/XMLSchema#', 'xsd'),
    ('http://www.w3.org/2002/07/owl#', 'owl'),
    ('https://schema.org/', 'schema'),
    ('http://schema.org/', 'schema'),
    ('http://xmlns.com/foaf/0.1/', 'foaf'),
    ('http://purl.org/dc/terms/', 'dcterms'),
    ('http://purl.org/dc/elements/1.1/', 'dc'),
    ('http://www.w3.org/ns/shacl#', 'sh'),
    ('http://www.w3.org/2004/02/skos/core#', 'skos'),
    ('http://www.w3.org/ns/prov#', 'prov'),
    ('http://rdfs.org/sioc/ns#', 'sioc'),
    ('https://www.w3.org/2019/wot/td#', 'td'),
    ('https://www.w3.org/2019/wot/json-schema#', 'jsonschema'),
    ('https://www.w3.org/2019/wot/hypermedia#', 'hctl'),
    ('https://www.w3.org/2019/wot/security#', 'wotsec'),
    ('urn:sdt:', 'sdt'),
)

EMPTY_DOCUMENT = '# Empty document - no triples generated'

_LOCAL_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_.-]*$')


def shorten_iri(iri):
    """
    Shortens an IRI for display: a known namespace becomes its prefix,
    otherwise the last path or fragment segment is used.

    :param iri: the IRI.

    :return: the display label.
    """
    for namespace, prefix in NAMESPACES:
        if iri.startswith(namespace):
            return prefix + ':' + iri[len(namespace):]
    last = re.split(r'[#/]', iri)[-1]
    return last or iri


def _iris(term):
    if term is None:
        return
    if term['type'] == 'IRI':
        yield term['value']
    elif term['type'] == 'literal':
        datatype = term.get('datatype')
        if datatype and datatype not in (XSD_STRING, RDF_LANGSTRING):
            yield datatype


class TurtleWriter(object):
    """
    Writes quads as Turtle. Graph names are dropped; quads that only
    differ by graph are written once.

    :param prefixes: extra ``(namespace, prefix)`` pairs, looked up before
      the built-in table.
    """

    def __init__(self, prefixes=None):
        self.namespaces = tuple(prefixes or ()) + NAMESPACES
        self.declared = {}

    def _declare(self, quads):
        taken = set()
        for quad in quads:
            for key in ('subject', 'predicate', 'object'):
                for iri in _iris(quad[key]):
                    for namespace, prefix in self.namespaces:
                        if not iri.startswith(namespace):
                            continue
                        if namespace not in self.declared and prefix not in taken:
                            self.declared[namespace] = prefix
                            taken.add(prefix)
                        break

    def iri(self, iri):
        for namespace, prefix in self.declared.items():
            if iri.startswith(namespace):
                local = iri[len(namespace):]
                if _LOCAL_NAME.match(local) and not local.endswith('.'):
                    return prefix + ':' + local
        return '<' + iri + '>'

    def term(self, term):
        if term['type'] == 'IRI':
            return self.iri(term['value'])
        if term['type'] == 'blank node':
            return term['value']
        quoted = '"' + escape(term['value']) + '"'
        datatype = term.get('datatype')
        if datatype == RDF_LANGSTRING:
            if term.get('language'):
                quoted += '@' + term['language']
        elif datatype and datatype != XSD_STRING:
            quoted += '^^' + self.iri(datatype)
        return quoted

    def write(self, quads):
        """
        :param quads: the quads to write.

        :return: the Turtle document.
        """
        quads = list(quads)
        if not quads:
            return EMPTY_DOCUMENT
        self._declare(quads)

        groups = {}
        seen = set()
        for quad in quads:
            key = (term_key(quad['subject']), term_key(quad['predicate']),
                   term_key(quad['object']))
            if key in seen:
                continue
            seen.add(key)
            subject = self.term(quad['subject'])
            if quad['predicate']['value'] == RDF_TYPE:
                predicate = 'a'
            else:
                predicate = self.term(quad['predicate'])
            groups.setdefault(subject, []).append(
                (predicate, self.term(quad['object'])))

        lines = []
        for namespace, prefix in self.declared.items():
            lines.append('@prefix %s: <%s> .' % (prefix, namespace))
        if lines:
            lines.append('')
        for subject, predicates in groups.items():
            lines.append(subject)
            for index, (predicate, object_) in enumerate(predicates):
                separator = ' ;' if index < len(predicates) - 1 else ' .'
                lines.append('    %s %s%s' % (predicate, object_, separator))
            lines.append('')
        return '\n'.join(lines).strip()


def to_turtle(quads, prefixes=None):
    """
    Converts quads to Turtle.

    :param quads: the quads to convert.
    :param prefixes: extra ``(namespace, prefix)`` pairs to abbreviate with.

    :return: the Turtle string.
    """
    return TurtleWriter(prefixes).write(quads)
