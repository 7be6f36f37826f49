"""
Context processing: term definitions, the active context and the resolver
that turns context references into documents and merges them.

.. module:: ldstudio.context
  :synopsis: JSON-LD context resolution and merging
"""

import copy
import json
import logging
from collections import namedtuple

from ldstudio import documentloader
from ldstudio.errors import ContextResolutionError, JsonLdError, UnresolvableTerm
from ldstudio.iri_resolver import is_absolute_iri, resolve as resolve_iri
from ldstudio.rdf import RDF, RDFS, XSD
from ldstudio.registry import ContextRegistry, is_registry_urn

__all__ = [
    'KEYWORDS', 'KNOWN_CONTEXTS', 'MAX_CONTEXT_URLS', 'TermDefinition',
    'ActiveContext', 'ContextResolver', 'normalize_context_document',
    'is_keyword']

log = logging.getLogger(__name__)

# maximum depth of nested remote context references
MAX_CONTEXT_URLS = 10

# JSON-LD keywords
KEYWORDS = frozenset([
    '@base',
    '@container',
    '@context',
    '@default',
    '@direction',
    '@embed',
    '@explicit',
    '@graph',
    '@id',
    '@import',
    '@included',
    '@index',
    '@json',
    '@language',
    '@list',
    '@nest',
    '@none',
    '@omitDefault',
    '@prefix',
    '@preserve',
    '@propagate',
    '@protected',
    '@requireAll',
    '@reverse',
    '@set',
    '@type',
    '@value',
    '@version',
    '@vocab'])

# prefixes understood even when a context does not define them
WELL_KNOWN_PREFIXES = {
    'xsd': XSD,
    'rdf': RDF,
    'rdfs': RDFS,
}

# an IRI ending in one of these can serve as a prefix
_GEN_DELIMS = ':/?#[]@'

_TERM_DEFINITION_KEYS = frozenset([
    '@id', '@reverse', '@type', '@container', '@language', '@prefix',
    '@context', '@protected', '@index', '@nest'])

_CONTAINERS = (None, '@set', '@list', '@language', '@index')

SCHEMA_ORG = 'https://schema.org/'

# built-in context documents for the most common vocabulary URLs
KNOWN_CONTEXTS = {
    'https://schema.org': {
        '@context': {
            '@vocab': SCHEMA_ORG,
            'name': SCHEMA_ORG + 'name',
            'description': SCHEMA_ORG + 'description',
            'url': {'@id': SCHEMA_ORG + 'url', '@type': '@id'},
            'image': {'@id': SCHEMA_ORG + 'image', '@type': '@id'},
            'email': SCHEMA_ORG + 'email',
            'telephone': SCHEMA_ORG + 'telephone',
            'address': SCHEMA_ORG + 'address',
            'dateCreated': {
                '@id': SCHEMA_ORG + 'dateCreated', '@type': XSD + 'dateTime'},
            'dateModified': {
                '@id': SCHEMA_ORG + 'dateModified', '@type': XSD + 'dateTime'},
            'datePublished': {
                '@id': SCHEMA_ORG + 'datePublished', '@type': XSD + 'date'},
            'author': SCHEMA_ORG + 'author',
            'publisher': SCHEMA_ORG + 'publisher',
            'headline': SCHEMA_ORG + 'headline',
            'articleBody': SCHEMA_ORG + 'articleBody',
            'keywords': SCHEMA_ORG + 'keywords',
            'sameAs': {'@id': SCHEMA_ORG + 'sameAs', '@type': '@id'},
        }
    },
    'http://schema.org': {'@context': {'@vocab': SCHEMA_ORG}},
    'https://schema.org/': {'@context': {'@vocab': SCHEMA_ORG}},
    'http://schema.org/': {'@context': {'@vocab': SCHEMA_ORG}},
}

TermDefinition = namedtuple(
    'TermDefinition',
    ['id', 'type', 'container', 'language', 'reverse', 'prefix',
     'has_language'],
    defaults=(None, None, None, False, False, False))
TermDefinition.__doc__ = """
The normalized definition of a term.

``id`` is the expanded IRI (or keyword for an alias), None when the term
has no IRI mapping. ``has_language`` tells an explicit ``"@language": null``
apart from an absent ``@language``.
"""


def is_keyword(v):
    """
    Returns whether or not the given value is a keyword.

    :param v: the value to check.

    :return: True if the value is a keyword, False if not.
    """
    return isinstance(v, str) and v in KEYWORDS


def normalize_context_document(document, url=None):
    """
    Makes sure a fetched document has a top-level ``@context``. A document
    without one that still looks like a bare context object (some entry
    is a string, or an object with ``@id``, ``@type`` or ``@container``)
    is wrapped as ``{'@context': document}``.

    :param document: the fetched document.
    :param url: the URL it came from, for messages.

    :return: the context document.
    """
    if isinstance(document, dict):
        if '@context' in document:
            return document
        if any(isinstance(v, str) or (isinstance(v, dict) and (
                v.get('@id') or v.get('@type') or v.get('@container')))
                for v in document.values()):
            log.info('Wrapping raw context object from %s', url)
            return {'@context': document}
    raise ContextResolutionError(
        'Document loaded from %s is not a JSON-LD context; '
        'it has no @context.' % url,
        {'url': url}, code='invalid remote context')


class ActiveContext(object):
    """
    The result of merging context sources: term definitions in declaration
    order plus the ``@vocab``, ``@base`` and ``@language`` defaults.
    """

    def __init__(self, base=None):
        self.base = base
        self.original_base = base
        self.vocab = None
        self.language = None
        self.version = None
        self.mappings = {}
        self._inverse = None

    def clone(self):
        ctx = ActiveContext(self.original_base)
        ctx.base = self.base
        ctx.vocab = self.vocab
        ctx.language = self.language
        ctx.version = self.version
        ctx.mappings = dict(self.mappings)
        return ctx

    def reset(self):
        """
        Returns an empty context keeping only the document's base, as
        produced by a ``null`` context.
        """
        return ActiveContext(self.original_base)

    def get(self, term):
        """
        Gets the definition of a term, or None.
        """
        return self.mappings.get(term)

    def aliases(self, keyword):
        """
        Returns the terms defined as aliases of a keyword, in declaration
        order.
        """
        return [
            term for term, definition in self.mappings.items()
            if definition is not None and definition.id == keyword]

    def inverse(self):
        """
        Maps each IRI to its ``(term, definition)`` pairs in declaration
        order. Computed on first use.
        """
        if self._inverse is None:
            inverse = {}
            for term, definition in self.mappings.items():
                if definition is None:
                    continue
                iri = definition.id
                if iri is None and self.vocab is not None:
                    iri = self.vocab + term
                if iri is None:
                    continue
                inverse.setdefault(iri, []).append((term, definition))
            self._inverse = inverse
        return self._inverse

    def expand_iri(self, value, vocab=False, base=False):
        """
        Expands a term, compact IRI or relative IRI.

        :param value: the string to expand.
        :param vocab: True if value is in a vocabulary position (property
          or type), so terms and ``@vocab`` apply.
        :param base: True to resolve relative values against ``@base``.

        :return: the expanded IRI or keyword.
        """
        if value is None or is_keyword(value):
            return value
        if not isinstance(value, str):
            raise JsonLdError(
                'Invalid JSON-LD syntax; IRIs must be strings.',
                'jsonld.SyntaxError', {'value': value},
                code='invalid IRI mapping')

        if vocab and value in self.mappings:
            definition = self.mappings[value]
            if definition is None:
                raise UnresolvableTerm(value, 'it is mapped to null')
            if definition.id is None:
                # defined without @id before any source provided @vocab
                if self.vocab is None:
                    raise UnresolvableTerm(
                        value,
                        'its definition has no @id and there is no @vocab')
                return self.vocab + value
            return definition.id

        if value.startswith('_:'):
            return value

        colon = value.find(':')
        if colon != -1:
            slash = value.find('/')
            if slash == -1 or colon < slash:
                prefix, suffix = value[:colon], value[colon + 1:]
                if not suffix.startswith('//'):
                    definition = self.mappings.get(prefix)
                    if (definition is not None and definition.prefix and
                            definition.id and not is_keyword(definition.id)):
                        return definition.id + suffix
                    if (prefix not in self.mappings and
                            prefix in WELL_KNOWN_PREFIXES):
                        return WELL_KNOWN_PREFIXES[prefix] + suffix
                # undefined prefix: the value is already absolute
                return value

        if vocab and self.vocab is not None:
            return self.vocab + value

        if base:
            if self.base:
                return resolve_iri(value, self.base)
            if not vocab:
                # kept relative; RDF conversion reports it
                return value

        raise UnresolvableTerm(
            value, 'it is not defined in the active context and there is '
            'no @vocab')

    def __repr__(self):
        return '<ActiveContext terms=%d vocab=%r base=%r>' % (
            len(self.mappings), self.vocab, self.base)


class ContextResolver(object):
    """
    Resolves context references and merges context sources into active
    contexts.

    Lookup order for a string reference: the registry (``urn:context:``
    keys), the built-in known contexts, the cache of earlier fetches, and
    finally the document loader.
    """

    def __init__(self, document_loader=None, registry=None, cache=None,
                 known_contexts=None):
        """
        :param document_loader: the loader used for remote contexts,
          defaults to the process default loader at call time.
        :param registry: the ContextRegistry, defaults to an in-memory one.
        :param cache: a dict used to memoize fetched contexts by reference.
        :param known_contexts: reference -> context document table,
          defaults to KNOWN_CONTEXTS.
        """
        self._document_loader = document_loader
        self.registry = registry if registry is not None else ContextRegistry()
        self.cache = cache if cache is not None else {}
        self.known_contexts = (
            KNOWN_CONTEXTS if known_contexts is None else known_contexts)

    @property
    def document_loader(self):
        return self._document_loader or documentloader.get_document_loader()

    def _lookup_local(self, reference):
        if is_registry_urn(reference) or reference in self.registry:
            return self.registry.get(reference)
        if reference in self.known_contexts:
            return copy.deepcopy(self.known_contexts[reference])
        return None

    def resolve(self, reference):
        """
        Resolves a context reference to a context document.

        :param reference: a URL or ``urn:context:`` key.

        :return: a copy of the context document (it has ``@context``).
        """
        document = self._lookup_local(reference)
        if document is not None:
            return document

        if reference in self.cache:
            log.debug('Using cached context for %s', reference)
            return copy.deepcopy(self.cache[reference])

        log.info('Fetching remote context: %s', reference)
        try:
            remote = self.document_loader(
                reference,
                {'headers': {'Accept': documentloader.ACCEPT_HEADER}})
        except ContextResolutionError:
            raise
        except Exception as cause:
            raise ContextResolutionError(
                'Could not load remote context from %s.' % reference,
                {'url': reference}, cause=cause)

        document = remote.get('document') if isinstance(remote, dict) else None
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except ValueError as cause:
                raise ContextResolutionError(
                    'Remote context at %s is not valid JSON.' % reference,
                    {'url': reference}, cause=cause)
        document = normalize_context_document(document, reference)
        self.cache[reference] = document
        return copy.deepcopy(document)

    def load_document(self, url, options=None):
        """
        Loads a document (not necessarily a context) by URL. Registered
        and known contexts are served without touching the network.

        :param url: the URL or registry key.
        :param options: options for the document loader.

        :return: the RemoteDocument.
        """
        document = self._lookup_local(url)
        if document is not None:
            return {
                'contentType': 'application/ld+json',
                'contextUrl': None,
                'documentUrl': url,
                'document': document
            }
        try:
            remote = self.document_loader(
                url, options or
                {'headers': {'Accept': documentloader.ACCEPT_HEADER}})
        except JsonLdError:
            raise
        except Exception as cause:
            raise JsonLdError(
                'Could not retrieve a JSON-LD document from %s.' % url,
                'jsonld.LoadDocumentError', {'url': url},
                code='loading document failed', cause=cause)
        if isinstance(remote.get('document'), str):
            remote = dict(remote)
            remote['document'] = json.loads(remote['document'])
        return remote

    def register(self, context):
        """
        Stores a raw context in the registry.

        :param context: the context value (without the ``@context`` key).

        :return: the new ``urn:context:`` key.
        """
        return self.registry.register(context)

    def clear_cache(self):
        """
        Forgets every fetched context. The registry is unaffected.
        """
        count = len(self.cache)
        self.cache.clear()
        log.debug('Cleared %d cached contexts.', count)

    def cache_size(self):
        return len(self.cache)

    def merge(self, contexts, active_ctx=None, base=None):
        """
        Merges context sources, left to right, into an active context.

        :param contexts: a context object, reference string, null, or a
          list of those.
        :param active_ctx: the context to merge into, defaults to an empty
          context with the given base.
        :param base: the document base IRI for a new context.

        :return: the new ActiveContext (active_ctx is not modified).
        """
        if active_ctx is None:
            active_ctx = ActiveContext(base)
        return self._merge(active_ctx, contexts, ())

    def _merge(self, active_ctx, local_ctx, remote_stack):
        rval = active_ctx.clone()
        sources = local_ctx if isinstance(local_ctx, list) else [local_ctx]
        for ctx in sources:
            if ctx is None:
                rval = rval.reset()
                continue

            if isinstance(ctx, str):
                url = ctx
                if (not is_registry_urn(url) and not is_absolute_iri(url) and
                        rval.base):
                    url = resolve_iri(url, rval.base)
                if url in remote_stack:
                    raise ContextResolutionError(
                        'Recursive context inclusion detected for %s.' % url,
                        {'url': url, 'stack': list(remote_stack)},
                        code='recursive context inclusion')
                if len(remote_stack) >= MAX_CONTEXT_URLS:
                    raise ContextResolutionError(
                        'Maximum number of nested @context URLs (%d) '
                        'exceeded at %s.' % (MAX_CONTEXT_URLS, url),
                        {'url': url, 'max': MAX_CONTEXT_URLS},
                        code='context overflow')
                document = self.resolve(url)
                rval = self._merge(
                    rval, document['@context'], remote_stack + (url,))
                continue

            if not isinstance(ctx, dict):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; @context must be an object.',
                    'jsonld.SyntaxError', {'context': ctx},
                    code='invalid local context')

            if '@context' in ctx:
                rval = self._merge(rval, ctx['@context'], remote_stack)
                continue

            rval = self._merge_object(rval, ctx)
        return rval

    def _merge_object(self, rval, ctx):
        defined = {}

        if '@version' in ctx:
            if ctx['@version'] != 1.1:
                raise JsonLdError(
                    'Unsupported JSON-LD version: %s' % ctx['@version'],
                    'jsonld.UnsupportedVersion', {'context': ctx},
                    code='invalid @version value')
            rval.version = 1.1

        if '@base' in ctx:
            base = ctx['@base']
            if base is None:
                rval.base = None
            elif not isinstance(base, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; the value of "@base" in a '
                    '@context must be a string or null.',
                    'jsonld.SyntaxError', {'context': ctx},
                    code='invalid base IRI')
            elif is_absolute_iri(base):
                rval.base = base
            elif rval.base:
                rval.base = resolve_iri(base, rval.base)
            else:
                raise JsonLdError(
                    'Invalid JSON-LD syntax; the value of "@base" in a '
                    '@context is relative and there is no base IRI.',
                    'jsonld.SyntaxError', {'context': ctx},
                    code='invalid base IRI')

        if '@vocab' in ctx:
            vocab = ctx['@vocab']
            if vocab is None:
                rval.vocab = None
            elif not isinstance(vocab, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; the value of "@vocab" in a '
                    '@context must be a string or null.',
                    'jsonld.SyntaxError', {'context': ctx},
                    code='invalid vocab mapping')
            elif is_absolute_iri(vocab) or vocab.startswith('_:'):
                rval.vocab = vocab
            else:
                self._define_dependency(rval, ctx, vocab, defined, '@vocab')
                rval.vocab = rval.expand_iri(vocab, vocab=True, base=True)

        if '@language' in ctx:
            language = ctx['@language']
            if language is None:
                rval.language = None
            elif not isinstance(language, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; the value of "@language" in a '
                    '@context must be a string or null.',
                    'jsonld.SyntaxError', {'context': ctx},
                    code='invalid default language')
            else:
                rval.language = language.lower()

        for term in ctx:
            if term in ('@base', '@vocab', '@language', '@version',
                        '@protected', '@propagate'):
                continue
            self._create_term_definition(rval, ctx, term, defined)
        rval._inverse = None
        return rval

    def _define_dependency(self, active_ctx, local_ctx, value, defined, term):
        """
        Defines the term a value depends on (its prefix, or the value
        itself) first when the same local context defines it.
        """
        dependency = value.split(':', 1)[0] if ':' in value else value
        if (dependency != term and dependency in local_ctx and
                not is_keyword(dependency) and defined.get(dependency) is not True):
            self._create_term_definition(
                active_ctx, local_ctx, dependency, defined)

    def _expand_definition_iri(self, active_ctx, local_ctx, value, defined,
                               term):
        if is_keyword(value):
            return value
        self._define_dependency(active_ctx, local_ctx, value, defined, term)
        try:
            return active_ctx.expand_iri(value, vocab=True)
        except UnresolvableTerm as cause:
            raise UnresolvableTerm(
                value, 'it is used in the definition of term "%s"' % term,
                {'definition': local_ctx[term]}) from cause

    def _create_term_definition(self, active_ctx, local_ctx, term, defined):
        """
        Creates a term definition in the active context.

        :param active_ctx: the context being built.
        :param local_ctx: the local context holding the definition.
        :param term: the term.
        :param defined: term -> True (done) / False (in progress).
        """
        if term in defined:
            if defined[term]:
                return
            raise JsonLdError(
                'Cyclical context definition detected.',
                'jsonld.CyclicalContext', {'context': local_ctx, 'term': term},
                code='cyclic IRI mapping')
        defined[term] = False

        if is_keyword(term):
            raise JsonLdError(
                'Invalid JSON-LD syntax; keywords cannot be overridden.',
                'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                code='keyword redefinition')
        if term == '':
            raise JsonLdError(
                'Invalid JSON-LD syntax; a term cannot be an empty string.',
                'jsonld.SyntaxError', {'context': local_ctx},
                code='invalid term definition')

        value = local_ctx[term]
        # a redefined term moves to the end of the declaration order
        active_ctx.mappings.pop(term, None)

        if value is None or (isinstance(value, dict) and
                             '@id' in value and value['@id'] is None):
            active_ctx.mappings[term] = None
            defined[term] = True
            return

        simple = isinstance(value, str)
        if simple:
            value = {'@id': value}
        if not isinstance(value, dict):
            raise JsonLdError(
                'Invalid JSON-LD syntax; @context term values must be '
                'strings or objects.',
                'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                code='invalid term definition')
        for key in value:
            if key not in _TERM_DEFINITION_KEYS:
                raise JsonLdError(
                    'Invalid JSON-LD syntax; a term definition must not '
                    'contain %s.' % key,
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid term definition')

        reverse = False
        if '@reverse' in value:
            if '@id' in value:
                raise JsonLdError(
                    'Invalid JSON-LD syntax; an @reverse term definition '
                    'must not contain @id.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid reverse property')
            if not isinstance(value['@reverse'], str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; @context @reverse value must '
                    'be a string.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid IRI mapping')
            id_ = self._expand_definition_iri(
                active_ctx, local_ctx, value['@reverse'], defined, term)
            reverse = True
        elif '@id' in value:
            if not isinstance(value['@id'], str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; @context @id value must be a '
                    'string.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid IRI mapping')
            id_ = self._expand_definition_iri(
                active_ctx, local_ctx, value['@id'], defined, term)
        elif ':' in term:
            id_ = self._expand_definition_iri(
                active_ctx, local_ctx, term, defined, term)
        elif active_ctx.vocab is not None:
            id_ = active_ctx.vocab + term
        else:
            # unusable until a later context provides @vocab
            id_ = None

        type_ = None
        if '@type' in value:
            type_ = value['@type']
            if not isinstance(type_, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; an @context @type value must '
                    'be a string.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid type mapping')
            if type_ not in ('@id', '@vocab', '@json', '@none'):
                type_ = self._expand_definition_iri(
                    active_ctx, local_ctx, type_, defined, term)
                if not is_absolute_iri(type_):
                    raise JsonLdError(
                        'Invalid JSON-LD syntax; an @context @type value '
                        'must be an absolute IRI.',
                        'jsonld.SyntaxError',
                        {'context': local_ctx, 'term': term},
                        code='invalid type mapping')

        container = value.get('@container')
        if isinstance(container, list) and len(container) == 1:
            container = container[0]
        if container not in _CONTAINERS:
            raise JsonLdError(
                'Invalid JSON-LD syntax; @context @container value must be '
                'one of the following: @list, @set, @language or @index.',
                'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                code='invalid container mapping')
        if reverse and container not in (None, '@set', '@index'):
            raise JsonLdError(
                'Invalid JSON-LD syntax; @context @container value for an '
                '@reverse type definition must be @index or @set.',
                'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                code='invalid reverse property')

        language = None
        has_language = False
        if '@language' in value and '@type' not in value:
            language = value['@language']
            if language is not None and not isinstance(language, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; @context @language value must '
                    'be a string or null.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid language mapping')
            language = language.lower() if language else None
            has_language = True

        if '@prefix' in value:
            if not isinstance(value['@prefix'], bool):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; @context value for @prefix '
                    'must be boolean.',
                    'jsonld.SyntaxError', {'context': local_ctx, 'term': term},
                    code='invalid @prefix value')
            prefix = value['@prefix']
        else:
            prefix = bool(id_) and not is_keyword(id_) and id_[-1] in _GEN_DELIMS

        active_ctx.mappings[term] = TermDefinition(
            id=id_, type=type_, container=container, language=language,
            reverse=reverse, prefix=prefix, has_language=has_language)
        defined[term] = True
