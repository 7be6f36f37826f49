"""
The workbench facade: every document operation of the authoring tool as a
call that reports failure in its result instead of raising.

Results are dicts, ``{'success': True, 'data': ...}`` on success and
``{'success': False, 'error': message}`` on failure.

.. module:: ldstudio.service
  :synopsis: Result-returning document operations
"""

import logging

from ldstudio import jsonld, nquads, projection, shacl, turtle, yamlld
from ldstudio.context import ContextResolver
from ldstudio.errors import JsonLdError, RdfConversionError, UnresolvableTerm

log = logging.getLogger(__name__)

RDF_HINTS = (
    '• Some @id values use undefined prefixes (e.g., "sdt:" if not '
    'defined in @context)\n'
    '• Some @id values use invalid URI schemes (e.g., "data:" is '
    'reserved for data URIs)\n'
    '• Properties without proper @id mappings in the @context\n'
    '• Some terms couldn\'t be resolved to valid URIs\n\n'
    'Tip: Check your @context defines all prefixes used in @id values.\n'
    'Use "Expanded" view to see how terms are being resolved.')


def _root_causes(error):
    while error is not None:
        yield error
        error = getattr(error, 'cause', None)


def describe_error(error, operation=None):
    """
    Turns an exception into the message shown to the document author.
    Term and IRI problems get a list of their usual causes.

    :param error: the exception.
    :param operation: the failed operation, e.g. 'RDF conversion'.

    :return: the message.
    """
    if isinstance(error, JsonLdError):
        message = error.describe()
    else:
        message = str(error) or error.__class__.__name__
    if operation and any(
            isinstance(e, (RdfConversionError, UnresolvableTerm))
            for e in _root_causes(error)):
        message = (
            '%s failed. This usually means:\n\n%s\n\nOriginal error: %s' % (
                operation, RDF_HINTS, message))
    return message


def _ok(data):
    return {'success': True, 'data': data}


def _fail(error, operation=None):
    return {'success': False, 'error': describe_error(error, operation)}


class Workbench(object):
    """
    Document operations over one ContextResolver, so registered contexts
    and the remote context cache are shared between calls.
    """

    def __init__(self, resolver=None):
        self.resolver = resolver or ContextResolver()
        self.processor = jsonld.JsonLdProcessor(self.resolver)

    def _run(self, operation, func, *args):
        try:
            return _ok(func(*args))
        except JsonLdError as cause:
            log.debug('%s failed: %s', operation, cause.describe())
            return _fail(cause, operation)
        except Exception as cause:
            log.exception('Unexpected error during %s.', operation.lower())
            return _fail(cause, operation)

    def expand(self, doc):
        return self._run('Expansion', self.processor.expand, doc)

    def compact(self, doc, context=None):
        """
        Compacts a document; without a context the document's own
        ``@context`` is used.
        """
        if context is None:
            context = doc.get('@context', {}) if isinstance(doc, dict) else {}
        return self._run('Compaction', self.processor.compact, doc, context)

    def flatten(self, doc, context=None):
        return self._run('Flattening', self.processor.flatten, doc, context)

    def frame(self, doc, frame):
        return self._run('Framing', self.processor.frame, doc, frame)

    def to_quads(self, doc):
        return self._run('RDF conversion', self.processor.to_rdf, doc)

    def to_nquads(self, doc):
        return self._run(
            'RDF conversion', lambda d: nquads.serialize_nquads(
                self.processor.to_rdf(d)), doc)

    def canonize(self, doc):
        return self._run('Canonization', self.processor.normalize, doc)

    def to_turtle(self, doc, prefixes=None):
        return self._run(
            'Turtle conversion', lambda d: turtle.to_turtle(
                self.processor.to_rdf(d), prefixes), doc)

    def to_yaml(self, doc):
        return self._run('YAML-LD conversion', yamlld.to_yaml_preview, doc)

    def to_table(self, doc):
        return self._run(
            'RDF conversion', lambda d: projection.to_table(
                self.processor.to_rdf(d)), doc)

    def to_graph(self, doc):
        return self._run(
            'RDF conversion', lambda d: projection.to_graph(
                self.processor.to_rdf(d)), doc)

    def validate_shacl(self, doc, shapes):
        """
        Validates a document against Turtle shapes; the report is the
        result's data.
        """
        return self._run(
            'SHACL validation', shacl.validate, doc, shapes,
            {'contextResolver': self.resolver})

    def validate(self, doc):
        """
        Checks that a document expands.

        :return: ``{'valid': True}`` or ``{'valid': False, 'error': ...}``.
        """
        result = self.expand(doc)
        if result['success']:
            return {'valid': True}
        return {'valid': False, 'error': result['error']}

    def check_shapes(self, shapes):
        """
        Checks that SHACL shapes parse.

        :return: ``{'valid': True}`` or ``{'valid': False, 'error': ...}``.
        """
        try:
            shacl.parse_shapes(shapes)
        except JsonLdError as cause:
            return {'valid': False, 'error': describe_error(cause)}
        return {'valid': True}

    def generate_shapes(self, doc):
        """
        Drafts SHACL shapes for a document; the Turtle is the result's
        data.
        """
        return self._run(
            'SHACL generation', shacl.generate_shapes, doc,
            {'contextResolver': self.resolver})

    def context_from_shapes(self, shapes, **options):
        """
        Builds a JSON-LD context from Turtle shapes.

        :param shapes: the shapes.
        :param options: see :func:`ldstudio.shacl.context_from_shapes`.
        """
        return self._run(
            'Context generation',
            lambda s: shacl.context_from_shapes(s, **options), shapes)

    def register_context(self, context):
        """
        Registers a context, which may be given with or without its
        ``@context`` wrapper.

        :return: the ``urn:context:`` key.
        """
        if isinstance(context, dict) and '@context' in context:
            context = context['@context']
        return self.resolver.register(context)

    def clear_context_cache(self):
        self.resolver.clear_cache()

    def context_cache_size(self):
        return self.resolver.cache_size()
