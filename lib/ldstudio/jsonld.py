"""
JSON-LD processor: expansion, compaction, flattening, framing and the
mapping of expanded documents to RDF quads.

Expansion, node map building and framing walk documents with explicit work
stacks instead of recursion, so deeply nested input does not hit the
interpreter's recursion limit.

.. module:: ldstudio.jsonld
  :synopsis: JSON-LD transformations
"""

import copy
import logging
import re
from numbers import Integral

from ldstudio.__about__ import (__copyright__, __license__, __version__)
from ldstudio import canon, nquads
from ldstudio.context import ActiveContext, ContextResolver, is_keyword
from ldstudio.documentloader import get_document_loader, set_document_loader
from ldstudio.errors import JsonLdError, RdfConversionError, UnresolvableTerm
from ldstudio.identifier_issuer import IdentifierIssuer
from ldstudio.iri_resolver import is_absolute_iri
from ldstudio.rdf import (
    RDF_FIRST, RDF_NIL, RDF_REST, RDF_TYPE, XSD_BOOLEAN, XSD_DOUBLE,
    XSD_INTEGER, blank_node, iri, literal, make_quad)

__all__ = [
    '__copyright__', '__license__', '__version__',
    'compact', 'expand', 'flatten', 'frame', 'to_rdf', 'normalize',
    'set_document_loader', 'get_document_loader',
    'JsonLdProcessor', 'JsonLdError']

log = logging.getLogger(__name__)

# embed policies understood by frame()
EMBED_VALUES = ('@always', '@once', '@last', '@never')

# characters that may not appear in an IRI written to N-Quads
_INVALID_IRI_CHARS = re.compile(r'[\x00-\x20<>"{}|^`\\]')


def compact(input_, ctx, options=None):
    """
    Performs JSON-LD compaction.

    :param input_: the JSON-LD input to compact.
    :param ctx: the JSON-LD context to compact with.
    :param [options]: the options to use.
      [base] the base IRI to use.
      [compactArrays] True to compact arrays to single values when
        appropriate, False not to (default: True).
      [graph] True to always output a top-level graph (default: False).
      [expandContext] a context to expand with.
      [contextResolver] the ContextResolver to use.

    :return: the compacted JSON-LD output.
    """
    return JsonLdProcessor().compact(input_, ctx, options)


def expand(input_, options=None):
    """
    Performs JSON-LD expansion.

    :param input_: the JSON-LD input to expand.
    :param [options]: the options to use.
      [base] the base IRI to use.
      [expandContext] a context to expand with.
      [contextResolver] the ContextResolver to use.

    :return: the expanded JSON-LD output.
    """
    return JsonLdProcessor().expand(input_, options)


def flatten(input_, ctx=None, options=None):
    """
    Performs JSON-LD flattening.

    :param input_: the JSON-LD input to flatten.
    :param ctx: the JSON-LD context to compact with (default: None).
    :param [options]: the options to use.
      [base] the base IRI to use.
      [expandContext] a context to expand with.
      [contextResolver] the ContextResolver to use.

    :return: the flattened JSON-LD output.
    """
    return JsonLdProcessor().flatten(input_, ctx, options)


def frame(input_, frame, options=None):
    """
    Performs JSON-LD framing.

    :param input_: the JSON-LD input to frame.
    :param frame: the JSON-LD frame to use.
    :param [options]: the options to use.
      [base] the base IRI to use.
      [expandContext] a context to expand with.
      [embed] default @embed policy: '@always', '@once', '@last' or
        '@never' (default: '@always').
      [omitDefault] default @omitDefault flag (default: True).
      [pruneBlankNodeIdentifiers] remove the @id of blank nodes that are
        only referenced once (default: True).
      [contextResolver] the ContextResolver to use.

    :return: the framed JSON-LD output.
    """
    return JsonLdProcessor().frame(input_, frame, options)


def to_rdf(input_, options=None):
    """
    Outputs the RDF dataset found in the given JSON-LD object.

    :param input_: the JSON-LD input.
    :param [options]: the options to use.
      [base] the base IRI to use.
      [format] the format if input is a string:
        'application/n-quads' for N-Quads.
      [contextResolver] the ContextResolver to use.

    :return: the resulting list of quads (or N-Quads text).
    """
    return JsonLdProcessor().to_rdf(input_, options)


def normalize(input_, options=None):
    """
    Performs RDF dataset normalization on the given input. The output is
    canonical N-Quads.

    :param input_: the JSON-LD input to normalize.
    :param [options]: the options to use.
      [algorithm] the algorithm to use: `URDNA2015` (default).
      [inputFormat] 'application/n-quads' when input_ is N-Quads text.
      [base] the base IRI to use.
      [contextResolver] the ContextResolver to use.

    :return: the normalized N-Quads string.
    """
    return JsonLdProcessor().normalize(input_, options)


class JsonLdProcessor(object):
    """
    A JSON-LD processor.
    """

    def __init__(self, resolver=None):
        """
        Initialize the JSON-LD processor.

        :param resolver: the ContextResolver used for every context and
          remote document, a fresh one by default.
        """
        self.resolver = resolver or ContextResolver()

    def _resolver(self, options):
        return options.get('contextResolver') or self.resolver

    def expand(self, input_, options=None):
        """
        Performs JSON-LD expansion.

        :param input_: the JSON-LD input to expand, or the URL of it.
        :param options: the options to use, see the module function.

        :return: the expanded JSON-LD output.
        """
        options = options.copy() if options else {}
        options.setdefault('base', None)
        resolver = self._resolver(options)

        context_url = None
        if isinstance(input_, str):
            remote = resolver.load_document(input_)
            document = remote['document']
            context_url = remote.get('contextUrl')
            if options['base'] is None:
                options['base'] = remote.get('documentUrl') or input_
        else:
            document = input_

        active_ctx = ActiveContext(options['base'])
        if options.get('expandContext'):
            active_ctx = resolver.merge(
                options['expandContext'], active_ctx)
        if context_url:
            active_ctx = resolver.merge(context_url, active_ctx)

        return self._expand(resolver, active_ctx, document)

    def compact(self, input_, ctx, options=None):
        """
        Performs JSON-LD compaction.

        :param input_: the JSON-LD input to compact.
        :param ctx: the context to compact with; None keeps absolute IRIs.
        :param options: the options to use, see the module function.

        :return: the compacted JSON-LD output.
        """
        options = options.copy() if options else {}
        options.setdefault('base', None)
        options.setdefault('compactArrays', True)
        options.setdefault('graph', False)
        options.setdefault('skipExpansion', False)
        resolver = self._resolver(options)

        if options['skipExpansion']:
            expanded = input_
        else:
            try:
                expanded = self.expand(input_, options)
            except JsonLdError as cause:
                raise JsonLdError(
                    'Could not expand input before compaction.',
                    'jsonld.CompactError', cause=cause)

        if isinstance(ctx, dict) and '@context' in ctx:
            ctx = ctx['@context']
        try:
            active_ctx = resolver.merge(ctx, ActiveContext(options['base']))
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not process context before compaction.',
                'jsonld.CompactError', cause=cause)

        compacted = self._compact(active_ctx, None, expanded, options)

        if (options['compactArrays'] and not options['graph'] and
                isinstance(compacted, list)):
            if len(compacted) == 1:
                compacted = compacted[0]
            elif len(compacted) == 0:
                compacted = {}
        elif options['graph'] and isinstance(compacted, dict):
            compacted = [compacted] if compacted else []

        if isinstance(compacted, list):
            compacted = {_alias(active_ctx, '@graph'): compacted}

        rval = {}
        if ctx is not None and ctx != {} and ctx != []:
            rval['@context'] = copy.deepcopy(ctx)
        rval.update(compacted)
        return rval

    def flatten(self, input_, ctx=None, options=None):
        """
        Performs JSON-LD flattening.

        :param input_: the JSON-LD input to flatten.
        :param ctx: the context to compact the result with, or None.
        :param options: the options to use, see the module function.

        :return: ``{'@graph': [...]}``, compacted when ctx is given.
        """
        options = options.copy() if options else {}
        try:
            expanded = self.expand(input_, options)
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not expand input before flattening.',
                'jsonld.FlattenError', cause=cause)

        flattened = self._flatten(expanded)
        if ctx is None:
            return {'@graph': flattened}

        options['graph'] = True
        options['skipExpansion'] = True
        try:
            return self.compact(flattened, ctx, options)
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not compact flattened output.',
                'jsonld.FlattenError', cause=cause)

    def frame(self, input_, frame, options=None):
        """
        Performs JSON-LD framing. Nodes are selected by the frame's
        ``@type`` only; the frame's ``@embed`` decides how referenced nodes
        are embedded. The result stays in expanded form.

        :param input_: the JSON-LD input to frame.
        :param frame: the frame, or the URL of it.
        :param options: the options to use, see the module function.

        :return: ``{'@graph': [...]}``.
        """
        options = options.copy() if options else {}
        options.setdefault('base', None)
        options.setdefault('embed', '@always')
        options.setdefault('omitDefault', True)
        options.setdefault('pruneBlankNodeIdentifiers', True)
        resolver = self._resolver(options)

        if isinstance(frame, str):
            frame = resolver.load_document(frame)['document']
        if isinstance(frame, list):
            frame = frame[0] if frame else {}
        if not isinstance(frame, dict):
            raise JsonLdError(
                'Invalid JSON-LD syntax; a JSON-LD frame must be a single '
                'object.', 'jsonld.SyntaxError', {'frame': frame},
                code='invalid frame')

        try:
            expanded = self.expand(input_, options)
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not expand input before framing.',
                'jsonld.FrameError', cause=cause)
        try:
            flags = self._frame_flags(resolver, frame, options)
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not process frame.', 'jsonld.FrameError', cause=cause)

        issuer = IdentifierIssuer('_:b')
        subjects = self._create_node_map(expanded, issuer)['@default']

        matches = [
            id_ for id_ in sorted(subjects)
            if not _is_subject_reference(subjects[id_]) and
            _frame_matches(subjects[id_], flags['types'])]

        output = []
        for id_ in matches:
            node = self._frame_subject(subjects, id_, flags['embed'])
            if not flags['omitDefault']:
                for prop, default in flags['defaults'].items():
                    if prop not in node:
                        node[prop] = [default]
            output.append(node)

        if options['pruneBlankNodeIdentifiers']:
            _prune_blank_node_identifiers(output)
        return {'@graph': _simplify_arrays(output)}

    def to_rdf(self, input_, options=None):
        """
        Outputs the RDF dataset found in the given JSON-LD object.

        :param input_: the JSON-LD input.
        :param options: the options to use, see the module function.

        :return: the list of quads, or N-Quads text.
        """
        options = options.copy() if options else {}
        options.setdefault('format', None)
        try:
            expanded = self.expand(input_, options)
        except JsonLdError as cause:
            raise JsonLdError(
                'Could not expand input before serialization to RDF.',
                'jsonld.RdfError', cause=cause)

        quads = self._to_quads(expanded)
        if options['format'] is None:
            return quads
        if options['format'] == 'application/n-quads':
            return nquads.serialize_nquads(quads)
        raise JsonLdError(
            'Unknown output format.', 'jsonld.UnknownFormat',
            {'format': options['format']})

    def normalize(self, input_, options=None):
        """
        Performs RDF dataset normalization on the given input.

        :param input_: the JSON-LD input (or N-Quads text) to normalize.
        :param options: the options to use, see the module function.

        :return: the normalized N-Quads string.
        """
        options = options.copy() if options else {}
        options.setdefault('algorithm', 'URDNA2015')
        if options['algorithm'] != 'URDNA2015':
            raise JsonLdError(
                'Unsupported normalization algorithm.',
                'jsonld.NormalizeError', {'algorithm': options['algorithm']})

        if options.get('inputFormat'):
            if options['inputFormat'] != 'application/n-quads':
                raise JsonLdError(
                    'Unknown normalization input format.',
                    'jsonld.NormalizeError',
                    {'inputFormat': options['inputFormat']})
            quads = nquads.parse_nquads(input_)
        else:
            opts = options.copy()
            opts.pop('format', None)
            quads = self.to_rdf(input_, opts)
        return canon.canonicalize(quads)

    # expansion

    def _expand(self, resolver, active_ctx, element):
        """
        Expands a document. Node objects are filled in from a work stack:
        the output dict for a node is placed in its parent first and
        completed when its work item is popped.

        :param resolver: the ContextResolver for embedded contexts.
        :param active_ctx: the active context.
        :param element: the document.

        :return: the expanded document, always a list.
        """
        result = []
        graph_lists = [result]
        work = []
        for item in _flatten_arrays(element):
            self._expand_item(resolver, active_ctx, None, item, result, work)

        while work:
            ctx, element, keys, out = work.pop()
            children = []
            for key in sorted(element):
                expanded_key = keys.get(key)
                if expanded_key is None:
                    continue
                value = element[key]
                if expanded_key == '@id':
                    if not isinstance(value, str):
                        raise JsonLdError(
                            'Invalid JSON-LD syntax; "@id" value must be a '
                            'string.', 'jsonld.SyntaxError', {'value': value},
                            code='invalid @id value')
                    out['@id'] = ctx.expand_iri(value, base=True)
                elif expanded_key == '@type':
                    types = out.setdefault('@type', [])
                    for type_ in _flatten_arrays(value):
                        if not isinstance(type_, str):
                            raise JsonLdError(
                                'Invalid JSON-LD syntax; "@type" value must '
                                'be a string or an array of strings.',
                                'jsonld.SyntaxError', {'value': value},
                                code='invalid type value')
                        types.append(ctx.expand_iri(type_, vocab=True, base=True))
                elif expanded_key == '@graph':
                    graph = out.setdefault('@graph', [])
                    graph_lists.append(graph)
                    for item in _flatten_arrays(value):
                        self._expand_item(resolver, ctx, None, item, graph, children)
                elif expanded_key == '@reverse':
                    if not isinstance(value, dict):
                        raise JsonLdError(
                            'Invalid JSON-LD syntax; "@reverse" value must '
                            'be an object.', 'jsonld.SyntaxError',
                            {'value': value}, code='invalid @reverse value')
                    reverse_map = out.setdefault('@reverse', {})
                    for reverse_key in sorted(value):
                        prop = _expand_key(ctx, reverse_key)
                        if prop is None or is_keyword(prop):
                            raise JsonLdError(
                                'Invalid JSON-LD syntax; "@reverse" map keys '
                                'must be properties.', 'jsonld.SyntaxError',
                                {'key': reverse_key},
                                code='invalid reverse property map')
                        target = reverse_map.setdefault(prop, [])
                        for item in _flatten_arrays(value[reverse_key]):
                            self._expand_item(
                                resolver, ctx, reverse_key, item, target,
                                children, reverse=True)
                elif expanded_key == '@index':
                    if not isinstance(value, str):
                        raise JsonLdError(
                            'Invalid JSON-LD syntax; "@index" value must be '
                            'a string.', 'jsonld.SyntaxError',
                            {'value': value}, code='invalid @index value')
                    out['@index'] = value
                elif expanded_key == '@language':
                    raise JsonLdError(
                        'Invalid JSON-LD syntax; "@language" may only be used '
                        'in value objects and contexts.',
                        'jsonld.SyntaxError', {'element': element},
                        code='invalid language-tagged value')
                elif is_keyword(expanded_key):
                    log.debug('Ignoring unsupported keyword %s.', expanded_key)
                else:
                    self._expand_property(
                        resolver, ctx, key, expanded_key, value, out, children)
            work.extend(reversed(children))

        for graph in graph_lists:
            graph[:] = [
                node for node in graph
                if not (isinstance(node, dict) and
                        (not node or list(node) == ['@id']))]

        if (len(result) == 1 and isinstance(result[0], dict) and
                list(result[0]) == ['@graph']):
            result = result[0]['@graph']
        return result

    def _expand_property(self, resolver, ctx, key, prop, value, out, work):
        if value is None:
            return
        definition = ctx.get(key)
        container = definition.container if definition else None

        if definition is not None and definition.reverse:
            target = out.setdefault('@reverse', {}).setdefault(prop, [])
            for item in _flatten_arrays(value):
                self._expand_item(
                    resolver, ctx, key, item, target, work, reverse=True)
            return

        existed = prop in out
        target = out.setdefault(prop, [])
        self._expand_property_values(
            resolver, ctx, key, container, value, target, work)
        # only an explicit empty array or map keeps an empty property
        if (not existed and not target and
                not (isinstance(value, (list, dict)) and not value)):
            del out[prop]

    def _expand_property_values(self, resolver, ctx, key, container, value,
                                target, work):
        if container == '@language' and isinstance(value, dict):
            for language in sorted(value):
                for item in _flatten_arrays(value[language]):
                    if item is None:
                        continue
                    if not isinstance(item, str):
                        raise JsonLdError(
                            'Invalid JSON-LD syntax; language map values '
                            'must be strings.', 'jsonld.SyntaxError',
                            {'languageMap': value},
                            code='invalid language map value')
                    expanded = {'@value': item}
                    if language != '@none':
                        expanded['@language'] = language.lower()
                    target.append(expanded)
        elif container == '@list' and not (
                isinstance(value, dict) and _expand_key(ctx, '@list', value)):
            items = []
            target.append({'@list': items})
            for item in _flatten_arrays(value):
                self._expand_item(resolver, ctx, key, item, items, work)
        else:
            for item in _flatten_arrays(value):
                self._expand_item(resolver, ctx, key, item, target, work)

    def _expand_item(self, resolver, ctx, active_property, item, sink, work,
                     reverse=False):
        """
        Expands one array member and appends the result to sink. A node
        object is appended as an empty dict and queued on work.

        :param active_property: the (unexpanded) key the item belongs to,
          None at the top level and inside @graph.
        :param reverse: True if the item is the value of a reverse
          property, which must be a node.
        """
        if item is None:
            return
        if not isinstance(item, dict):
            if active_property is None:
                # free-floating value
                return
            if reverse:
                raise JsonLdError(
                    'Invalid JSON-LD syntax; reverse property values must be '
                    'node objects.', 'jsonld.SyntaxError', {'value': item},
                    code='invalid reverse property value')
            sink.append(_expand_scalar(ctx, active_property, item))
            return

        if '@context' in item:
            ctx = resolver.merge(item['@context'], ctx)
        keys = {}
        for key in item:
            if key == '@context':
                continue
            keys[key] = _expand_key(ctx, key)
        expanded_keys = set(keys.values())

        if '@value' in expanded_keys:
            if active_property is None:
                return
            if reverse:
                raise JsonLdError(
                    'Invalid JSON-LD syntax; reverse property values must be '
                    'node objects.', 'jsonld.SyntaxError', {'value': item},
                    code='invalid reverse property value')
            value = _expand_value_object(ctx, item, keys)
            if value is not None:
                sink.append(value)
            return

        if '@list' in expanded_keys:
            if active_property is None:
                return
            items = []
            list_object = {'@list': items}
            for key, expanded_key in keys.items():
                if expanded_key == '@list':
                    for member in _flatten_arrays(item[key]):
                        self._expand_item(
                            resolver, ctx, active_property, member, items, work)
                elif expanded_key == '@index':
                    list_object['@index'] = item[key]
                else:
                    raise JsonLdError(
                        'Invalid JSON-LD syntax; an element containing '
                        '"@list" can only have an "@index" property.',
                        'jsonld.SyntaxError', {'element': item},
                        code='invalid set or list object')
            sink.append(list_object)
            return

        if '@set' in expanded_keys:
            for key, expanded_key in keys.items():
                if expanded_key == '@set':
                    for member in _flatten_arrays(item[key]):
                        self._expand_item(
                            resolver, ctx, active_property, member, sink, work,
                            reverse)
            return

        out = {}
        sink.append(out)
        work.append((ctx, item, keys, out))

    # compaction

    def _compact(self, active_ctx, active_property, element, options):
        """
        Recursively compacts an element using the given active context.

        :param active_ctx: the active context to use.
        :param active_property: the compacted property with the element,
          None for none.
        :param element: the element to compact.
        :param options: the compaction options.

        :return: the compacted value.
        """
        if isinstance(element, list):
            rval = []
            for item in element:
                compacted = self._compact(
                    active_ctx, active_property, item, options)
                if compacted is not None:
                    rval.append(compacted)
            definition = active_ctx.get(active_property)
            container = definition.container if definition else None
            if (options['compactArrays'] and len(rval) == 1 and
                    active_property is not None and
                    container not in ('@set', '@list')):
                rval = rval[0]
            return rval

        if not isinstance(element, dict):
            return element

        if _is_value(element) or _is_subject_reference(element):
            return self._compact_value(active_ctx, active_property, element)

        if _is_list(element):
            return {_alias(active_ctx, '@list'): [
                self._compact(active_ctx, active_property, item, options)
                for item in element['@list']]}

        rval = {}
        for expanded_property in sorted(element):
            value = element[expanded_property]

            if expanded_property == '@id':
                rval[_alias(active_ctx, '@id')] = self._compact_iri(
                    active_ctx, value)
            elif expanded_property == '@type':
                types = [
                    self._compact_iri(active_ctx, type_, vocab=True)
                    for type_ in value]
                if options['compactArrays'] and len(types) == 1:
                    types = types[0]
                rval[_alias(active_ctx, '@type')] = types
            elif expanded_property == '@index':
                rval[_alias(active_ctx, '@index')] = value
            elif expanded_property == '@graph':
                rval[_alias(active_ctx, '@graph')] = [
                    self._compact(active_ctx, None, node, options)
                    for node in value]
            elif expanded_property == '@reverse':
                self._compact_reverse(active_ctx, value, rval, options)
            elif not value:
                term = self._compact_iri(
                    active_ctx, expanded_property, vocab=True)
                rval.setdefault(term, [])
            else:
                for item in value:
                    self._compact_property_value(
                        active_ctx, expanded_property, item, rval, options)
        return rval

    def _compact_property_value(self, active_ctx, expanded_property, item,
                                rval, options):
        term = self._compact_iri(
            active_ctx, expanded_property, value=item, vocab=True)
        definition = active_ctx.get(term)
        container = definition.container if definition else None

        if _is_list(item):
            members = [
                self._compact(active_ctx, term, member, options)
                for member in item['@list']]
            if container == '@list':
                if term in rval:
                    raise JsonLdError(
                        'JSON-LD compact error; property has a "@list" '
                        '@container rule but there is more than a single '
                        '@list that matches the compacted term in the '
                        'document.', 'jsonld.SyntaxError',
                        {'property': term}, code='compaction to list of lists')
                rval[term] = members
                return
            compacted = {_alias(active_ctx, '@list'): members}
        elif container == '@language':
            language_map = rval.setdefault(term, {})
            JsonLdProcessor.add_value(
                language_map, item['@language'], item['@value'])
            return
        else:
            compacted = self._compact(active_ctx, term, item, options)

        is_array = container == '@set' or not options['compactArrays']
        JsonLdProcessor.add_value(
            rval, term, compacted, {'propertyIsArray': is_array})

    def _compact_reverse(self, active_ctx, reverse_map, rval, options):
        for prop in sorted(reverse_map):
            for item in reverse_map[prop]:
                term = self._compact_iri(
                    active_ctx, prop, value=item, vocab=True, reverse=True)
                if term is not None:
                    definition = active_ctx.get(term)
                    is_array = (
                        definition.container == '@set' or
                        not options['compactArrays'])
                    JsonLdProcessor.add_value(
                        rval, term, self._compact(active_ctx, term, item, options),
                        {'propertyIsArray': is_array})
                    continue
                key = self._compact_iri(active_ctx, prop, vocab=True)
                reverse = rval.setdefault(_alias(active_ctx, '@reverse'), {})
                JsonLdProcessor.add_value(
                    reverse, key, self._compact(active_ctx, key, item, options),
                    {'propertyIsArray': not options['compactArrays']})

    def _compact_value(self, active_ctx, active_property, value):
        """
        Compacts a value object or node reference, to a scalar where the
        term's coercion rules make the value recoverable.
        """
        definition = active_ctx.get(active_property)
        type_ = definition.type if definition else None

        if _is_subject_reference(value):
            if type_ == '@id':
                return self._compact_iri(active_ctx, value['@id'])
            if type_ == '@vocab':
                return self._compact_iri(active_ctx, value['@id'], vocab=True)
            return {_alias(active_ctx, '@id'): self._compact_iri(
                active_ctx, value['@id'])}

        if definition is not None and definition.has_language:
            language = definition.language
        else:
            language = active_ctx.language

        if '@index' not in value:
            if '@type' in value:
                if type_ == value['@type']:
                    return value['@value']
            elif '@language' in value:
                if type_ is None and value['@language'] == language:
                    return value['@value']
            elif type_ is None or type_ in ('@id', '@vocab'):
                if not isinstance(value['@value'], str) or not language:
                    if type_ is None:
                        return value['@value']

        rval = {}
        for key in sorted(value):
            if key == '@type':
                rval[_alias(active_ctx, '@type')] = self._compact_iri(
                    active_ctx, value['@type'], vocab=True)
            else:
                rval[_alias(active_ctx, key)] = value[key]
        return rval

    def _compact_iri(self, active_ctx, iri_, value=None, vocab=False,
                     reverse=False):
        """
        Compacts an IRI or keyword into a term, a vocabulary-relative name
        or a compact IRI if it can be.

        :param active_ctx: the active context to use.
        :param iri_: the IRI to compact.
        :param value: the value to check the term definitions against.
        :param vocab: True to compact using @vocab and terms.
        :param reverse: True to only pick reverse terms.

        :return: the compacted term, prefix, keyword alias, or the original
          IRI (None for a reverse property with no reverse term).
        """
        if iri_ is None:
            return None
        if is_keyword(iri_):
            return _alias(active_ctx, iri_) if vocab else iri_

        if vocab:
            ranked = []
            for index, (term, definition) in enumerate(
                    active_ctx.inverse().get(iri_, [])):
                if definition.reverse != reverse:
                    continue
                rank = 0 if value is None else _term_rank(
                    active_ctx, definition, value)
                if rank is not None:
                    ranked.append((rank, len(term), index, term))
            if ranked:
                return min(ranked)[3]
            if reverse:
                return None

            vocab_iri = active_ctx.vocab
            if (vocab_iri and iri_.startswith(vocab_iri) and
                    len(iri_) > len(vocab_iri)):
                suffix = iri_[len(vocab_iri):]
                if suffix not in active_ctx.mappings and ':' not in suffix:
                    return suffix

        best = None
        for term, definition in active_ctx.mappings.items():
            if (definition is None or not definition.id or
                    not definition.prefix or is_keyword(definition.id) or
                    ':' in term):
                continue
            if iri_.startswith(definition.id) and len(iri_) > len(definition.id):
                candidate = term + ':' + iri_[len(definition.id):]
                shadow = active_ctx.mappings.get(candidate)
                if shadow is not None and shadow.id != iri_:
                    continue
                if best is None or len(candidate) < len(best):
                    best = candidate
        if best is not None:
            return best
        return iri_

    # flattening and node maps

    def _flatten(self, expanded):
        """
        Flattens an expanded document into a sorted list of nodes; named
        graphs are nested under their graph node.
        """
        issuer = IdentifierIssuer('_:b')
        graphs = self._create_node_map(expanded, issuer)
        default_graph = graphs['@default']
        for graph_name in sorted(graphs):
            if graph_name == '@default':
                continue
            node = default_graph.setdefault(graph_name, {'@id': graph_name})
            nodes = graphs[graph_name]
            node['@graph'] = [
                nodes[id_] for id_ in sorted(nodes)
                if not _is_subject_reference(nodes[id_])]
        return [
            default_graph[id_] for id_ in sorted(default_graph)
            if not _is_subject_reference(default_graph[id_])]

    def _create_node_map(self, expanded, issuer):
        """
        Collects every node of an expanded document into a map per graph,
        merging nodes with the same @id and replacing embedded nodes with
        references. Blank nodes are relabeled and anonymous nodes labeled
        with the issuer. Every embedded node is visited once, so cyclic
        references between @ids need no special handling.

        :param expanded: the expanded document.
        :param issuer: the IdentifierIssuer for blank node labels.

        :return: graph name ('@default' for the default graph) -> @id ->
          node.
        """
        graphs = {'@default': {}}
        work = []
        for element in reversed(expanded):
            if _is_node(element):
                work.append((element, '@default', _node_name(element, issuer)))

        while work:
            element, graph, name = work.pop()
            children = []
            nodes = graphs.setdefault(graph, {})
            node = nodes.setdefault(name, {'@id': name})

            for type_ in element.get('@type', []):
                if type_.startswith('_:'):
                    type_ = issuer.get_id(type_)
                JsonLdProcessor.add_value(
                    node, '@type', type_,
                    {'propertyIsArray': True, 'allowDuplicate': False})

            if '@index' in element:
                node['@index'] = element['@index']

            for prop, items in sorted(element.get('@reverse', {}).items()):
                for item in items:
                    item_name = _node_name(item, issuer)
                    referenced = nodes.setdefault(item_name, {'@id': item_name})
                    JsonLdProcessor.add_value(
                        referenced, prop, {'@id': name},
                        {'propertyIsArray': True, 'allowDuplicate': False})
                    children.append((item, graph, item_name))

            if '@graph' in element:
                graphs.setdefault(name, {})
                for item in element['@graph']:
                    if _is_node(item):
                        children.append((item, name, _node_name(item, issuer)))

            for prop in sorted(element):
                if is_keyword(prop):
                    continue
                key = issuer.get_id(prop) if prop.startswith('_:') else prop
                if key not in node:
                    node[key] = []
                for item in element[prop]:
                    if _is_list(item):
                        members = []
                        for member in item['@list']:
                            members.append(self._node_map_value(
                                member, graph, issuer, children))
                        JsonLdProcessor.add_value(
                            node, key, {'@list': members},
                            {'propertyIsArray': True})
                    else:
                        JsonLdProcessor.add_value(
                            node, key,
                            self._node_map_value(item, graph, issuer, children),
                            {'propertyIsArray': True, 'allowDuplicate': False})
            work.extend(reversed(children))
        return graphs

    def _node_map_value(self, item, graph, issuer, work):
        if _is_node(item):
            name = _node_name(item, issuer)
            work.append((item, graph, name))
            return {'@id': name}
        if _is_list(item):
            return {'@list': [
                self._node_map_value(member, graph, issuer, work)
                for member in item['@list']]}
        value = copy.copy(item)
        if isinstance(value.get('@type'), str) and value['@type'].startswith('_:'):
            value['@type'] = issuer.get_id(value['@type'])
        return value

    # framing

    def _frame_flags(self, resolver, frame, options):
        """
        Reads the settings of a frame: the types it selects, its embed
        policy, and the defaults for its properties.
        """
        active_ctx = resolver.merge(
            frame.get('@context'), ActiveContext(options['base']))
        flags = {
            'types': None,
            'embed': options['embed'],
            'omitDefault': options['omitDefault'],
            'defaults': {}
        }
        for key in frame:
            if key == '@context':
                continue
            prop = _expand_key(active_ctx, key)
            value = frame[key]
            if prop == '@type':
                if isinstance(value, dict) or value == []:
                    # wildcard: any typed node
                    flags['types'] = []
                else:
                    flags['types'] = [
                        active_ctx.expand_iri(t, vocab=True, base=True)
                        for t in _flatten_arrays(value)
                        if isinstance(t, str)]
            elif prop == '@embed':
                flags['embed'] = _embed_value(value)
            elif prop == '@omitDefault':
                flags['omitDefault'] = value in (True, 'true')
            elif prop is not None and not is_keyword(prop):
                default = None
                for sub in _flatten_arrays(value):
                    if isinstance(sub, dict) and '@default' in sub:
                        default = _expand_scalar(
                            active_ctx, key, sub['@default'])
                flags['defaults'][prop] = default
        return flags

    def _frame_subject(self, subjects, id_, embed):
        """
        Builds the output tree for one matched subject. Referenced nodes
        are embedded according to the embed policy; a reference back to a
        node already on the embedding path stays a reference.
        """
        root = {'@id': id_}
        embedded = {id_}
        work = [(root, id_, (id_,))]

        while work:
            out, node_id, path = work.pop()
            node = subjects[node_id]
            children = []

            def frame_value(value):
                if not _is_subject_reference(value):
                    return copy.deepcopy(value)
                ref = value['@id']
                referenced = subjects.get(ref)
                if (embed == '@never' or ref in path or referenced is None or
                        _is_subject_reference(referenced) or
                        (embed in ('@once', '@last') and ref in embedded)):
                    return {'@id': ref}
                embedded.add(ref)
                child = {'@id': ref}
                children.append((child, ref, path + (ref,)))
                return child

            for prop in sorted(node):
                if prop == '@id':
                    continue
                values = node[prop]
                if prop in ('@type', '@index'):
                    out[prop] = copy.copy(values)
                    continue
                framed = []
                for value in values:
                    if _is_list(value):
                        framed.append({'@list': [
                            frame_value(member) for member in value['@list']]})
                    else:
                        framed.append(frame_value(value))
                out[prop] = framed
            work.extend(reversed(children))
        return root

    # RDF

    def _to_quads(self, expanded):
        """
        Converts an expanded document to a list of quads.

        :param expanded: the expanded document.

        :return: the quads, ordered by graph, subject and predicate.
        """
        issuer = IdentifierIssuer('_:b')
        graphs = self._create_node_map(expanded, issuer)
        quads = []
        for graph_name in sorted(graphs):
            if graph_name == '@default':
                graph = None
            else:
                graph = _rdf_resource(graph_name, 'graph name')
            nodes = graphs[graph_name]
            for id_ in sorted(nodes):
                node = nodes[id_]
                if _is_subject_reference(node):
                    continue
                subject = _rdf_resource(id_, 'subject')
                for prop in sorted(node):
                    if prop == '@type':
                        for type_ in node['@type']:
                            quads.append(make_quad(
                                subject, iri(RDF_TYPE),
                                _rdf_resource(type_, 'type'), graph))
                        continue
                    if is_keyword(prop):
                        continue
                    if prop.startswith('_:'):
                        log.debug(
                            'Skipping blank node predicate %s; not valid RDF.',
                            prop)
                        continue
                    predicate = _rdf_resource(prop, 'property')
                    for item in node[prop]:
                        if _is_list(item):
                            object_ = self._list_to_rdf(
                                item['@list'], issuer, graph, quads)
                        else:
                            object_ = _object_to_rdf(item)
                        quads.append(make_quad(subject, predicate, object_, graph))
        return quads

    def _list_to_rdf(self, members, issuer, graph, quads):
        """
        Emits the rdf:first/rdf:rest chain of a list.

        :return: the head of the list (rdf:nil for an empty list).
        """
        if not members:
            return iri(RDF_NIL)
        cells = [blank_node(issuer.get_id()) for _ in members]
        for index, member in enumerate(members):
            if _is_list(member):
                object_ = self._list_to_rdf(
                    member['@list'], issuer, graph, quads)
            else:
                object_ = _object_to_rdf(member)
            quads.append(make_quad(cells[index], iri(RDF_FIRST), object_, graph))
            rest = cells[index + 1] if index + 1 < len(cells) else iri(RDF_NIL)
            quads.append(make_quad(cells[index], iri(RDF_REST), rest, graph))
        return cells[0]

    @staticmethod
    def add_value(subject, property, value, options=None):
        """
        Adds a value to a subject. If the value is an array, all values in the
        array will be added.

        :param subject: the subject to add the value to.
        :param property: the property that relates the value to the subject.
        :param value: the value to add.
        :param [options]: the options to use:
          [propertyIsArray] True if the property is always
            an array, False if not (default: False).
          [allowDuplicate] True to allow duplicates, False not to (uses
            a simple shallow comparison of subject ID or value)
            (default: True).
        """
        options = options.copy() if options else {}
        options.setdefault('propertyIsArray', False)
        options.setdefault('allowDuplicate', True)

        if isinstance(value, list):
            if (len(value) == 0 and options['propertyIsArray'] and
                    property not in subject):
                subject[property] = []
            for v in value:
                JsonLdProcessor.add_value(subject, property, v, options)
        elif property in subject:
            has_value = (
                not options['allowDuplicate'] and
                JsonLdProcessor.has_value(subject, property, value))
            if (not isinstance(subject[property], list) and
                    (not has_value or options['propertyIsArray'])):
                subject[property] = [subject[property]]
            if not has_value:
                subject[property].append(value)
        else:
            subject[property] = (
                [value] if options['propertyIsArray'] else value)

    @staticmethod
    def has_value(subject, property, value):
        """
        Determines if the given value is a property of the given subject.
        """
        values = subject.get(property)
        if values is None:
            return False
        if not isinstance(values, list):
            values = [values]
        return any(JsonLdProcessor.compare_values(value, v) for v in values)

    @staticmethod
    def compare_values(v1, v2):
        """
        Compares two JSON-LD values for equality. Two JSON-LD values will be
        considered equal if:

        1. They are both primitives of the same type and value.
        2. They are both @values with the same @value, @type, @language,
          and @index, OR
        3. They both have @ids that are the same.

        :param v1: the first value.
        :param v2: the second value.

        :return: True if v1 and v2 are considered equal, False if not.
        """
        if not isinstance(v1, dict) or not isinstance(v2, dict):
            return type(v1) == type(v2) and v1 == v2
        if _is_value(v1) and _is_value(v2):
            return all(
                type(v1.get(k)) == type(v2.get(k)) and v1.get(k) == v2.get(k)
                for k in ('@value', '@type', '@language', '@index'))
        if '@id' in v1 and '@id' in v2 and not _is_list(v1) and not _is_list(v2):
            return v1['@id'] == v2['@id']
        return False

    @staticmethod
    def arrayify(value):
        """
        If value is an array, returns value, otherwise returns an array
        containing value as the only element.

        :param value: the value.

        :return: an array.
        """
        return value if isinstance(value, list) else [value]


def _flatten_arrays(value):
    """
    Returns the non-array members of a possibly nested array in order; a
    non-array value becomes a one-element list.
    """
    if not isinstance(value, list):
        return [value]
    rval = []
    stack = [iter(value)]
    while stack:
        for item in stack[-1]:
            if isinstance(item, list):
                stack.append(iter(item))
                break
            rval.append(item)
        else:
            stack.pop()
    return rval


def _expand_key(ctx, key, element=None):
    """
    Expands an object key to a keyword or IRI; None for keys to skip.
    When element is given, returns the key of element expanding to the
    keyword passed as key, if any.
    """
    if element is not None:
        for k in element:
            if k != '@context' and _expand_key(ctx, k) == key:
                return k
        return None
    if key.startswith('@'):
        if is_keyword(key):
            return key
        log.debug('Ignoring key %s, it looks like a keyword.', key)
        return None
    return ctx.expand_iri(key, vocab=True)


def _expand_scalar(ctx, active_property, value):
    """
    Expands a scalar property value according to the property's term
    definition and the context's default language.
    """
    definition = ctx.get(active_property) if active_property else None
    type_ = definition.type if definition else None

    if type_ in ('@id', '@vocab') and isinstance(value, str):
        return {'@id': ctx.expand_iri(
            value, vocab=(type_ == '@vocab'), base=True)}

    rval = {'@value': value}
    if type_ is not None and type_ not in ('@id', '@vocab', '@none', '@json'):
        rval['@type'] = type_
    elif isinstance(value, str):
        if definition is not None and definition.has_language:
            language = definition.language
        else:
            language = ctx.language
        if language:
            rval['@language'] = language
    return rval


def _expand_value_object(ctx, element, keys):
    rval = {}
    for key, expanded_key in keys.items():
        value = element[key]
        if expanded_key == '@value':
            if isinstance(value, (dict, list)):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; "@value" value must not be an '
                    'object or an array.', 'jsonld.SyntaxError',
                    {'value': value}, code='invalid value object value')
            rval['@value'] = value
        elif expanded_key == '@type':
            if not isinstance(value, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; "@type" value of a value object '
                    'must be a string.', 'jsonld.SyntaxError',
                    {'value': value}, code='invalid typed value')
            rval['@type'] = ctx.expand_iri(value, vocab=True, base=True)
        elif expanded_key == '@language':
            if not isinstance(value, str):
                raise JsonLdError(
                    'Invalid JSON-LD syntax; "@language" value must be a '
                    'string.', 'jsonld.SyntaxError', {'value': value},
                    code='invalid language-tagged string')
            rval['@language'] = value.lower()
        elif expanded_key == '@index':
            rval['@index'] = value
        elif expanded_key is not None:
            raise JsonLdError(
                'Invalid JSON-LD syntax; an element containing "@value" may '
                'not contain other properties.', 'jsonld.SyntaxError',
                {'element': element}, code='invalid value object')

    if '@type' in rval and '@language' in rval:
        raise JsonLdError(
            'Invalid JSON-LD syntax; an element containing "@value" may not '
            'contain both "@type" and "@language".', 'jsonld.SyntaxError',
            {'element': element}, code='invalid value object')
    if rval.get('@value') is None:
        return None
    if '@language' in rval and not isinstance(rval['@value'], str):
        raise JsonLdError(
            'Invalid JSON-LD syntax; only strings may be language-tagged.',
            'jsonld.SyntaxError', {'element': element},
            code='invalid language-tagged value')
    return rval


def _alias(active_ctx, keyword):
    aliases = active_ctx.aliases(keyword)
    if not aliases:
        return keyword
    return min(aliases, key=len)


def _term_rank(active_ctx, definition, value):
    """
    Ranks how well a term definition fits a value: 0 for an exact fit of
    its type, language and container, 1 for a term that can hold the value
    in object form, None for a term that would change its meaning.
    """
    if definition.container == '@language':
        if _is_value(value) and '@language' in value and '@index' not in value:
            return 0
        return None

    if _is_list(value):
        if definition.container != '@list':
            return 1 if definition.type is None else None
        ranks = [
            _term_rank(active_ctx, definition._replace(container=None), member)
            for member in value['@list']]
        if None in ranks:
            return None
        return max(ranks) if ranks else 0
    if definition.container == '@list':
        return None

    if _is_value(value):
        if definition.type in ('@id', '@vocab'):
            return None
        if '@type' in value:
            if definition.type == value['@type']:
                return 0
            return None if definition.type else 1
        if definition.type:
            return None
        if definition.has_language:
            language = definition.language
        else:
            language = active_ctx.language
        if isinstance(value['@value'], str):
            return 0 if value.get('@language') == language else 1
        return 1 if definition.has_language else 0

    if definition.type in ('@id', '@vocab'):
        return 0
    if definition.type is not None:
        return None
    return 1


def _node_name(element, issuer):
    id_ = element.get('@id')
    if id_ is None:
        return issuer.get_id()
    if id_.startswith('_:'):
        return issuer.get_id(id_)
    return id_


def _frame_matches(node, types):
    if types is None:
        return True
    node_types = node.get('@type', [])
    if not types:
        return bool(node_types)
    return any(t in node_types for t in types)


def _embed_value(value):
    if value is True or value == 'true':
        return '@once'
    if value is False or value == 'false':
        return '@never'
    if value not in EMBED_VALUES:
        raise JsonLdError(
            'Invalid JSON-LD syntax; invalid value of @embed.',
            'jsonld.SyntaxError', {'embed': value}, code='invalid @embed value')
    return value


def _prune_blank_node_identifiers(output):
    """
    Removes the @id of blank nodes that occur only once in the output.
    """
    counts = {}
    objects = []
    stack = list(output)
    while stack:
        item = stack.pop()
        if isinstance(item, list):
            stack.extend(item)
        elif isinstance(item, dict):
            id_ = item.get('@id')
            if isinstance(id_, str) and id_.startswith('_:'):
                counts[id_] = counts.get(id_, 0) + 1
                objects.append(item)
            stack.extend(v for k, v in item.items() if k != '@id')
    for item in objects:
        if counts[item['@id']] == 1 and len(item) > 1:
            del item['@id']


def _simplify_arrays(output):
    """
    Replaces single-element property arrays by their element, except under
    @graph, @type, @list and @value.
    """
    stack = list(output)
    while stack:
        item = stack.pop()
        if not isinstance(item, dict):
            continue
        for key in list(item):
            value = item[key]
            if isinstance(value, list):
                stack.extend(value)
                if (len(value) == 1 and
                        key not in ('@graph', '@type', '@list', '@value')):
                    item[key] = value[0]
            elif isinstance(value, dict):
                stack.append(value)
    return output


def _check_iri(value, position):
    if value.startswith('_:'):
        return
    if not is_absolute_iri(value):
        raise RdfConversionError(
            'Invalid %s IRI "%s"; it is relative or uses an undefined '
            'prefix, and only absolute IRIs can be converted to RDF.'
            % (position, value), {'iri': value, 'position': position})
    if _INVALID_IRI_CHARS.search(value):
        raise RdfConversionError(
            'Invalid %s IRI "%s"; it contains characters that are not '
            'allowed in IRIs.' % (position, value),
            {'iri': value, 'position': position})


def _rdf_resource(value, position):
    _check_iri(value, position)
    if value.startswith('_:'):
        return blank_node(value)
    return iri(value)


def _object_to_rdf(item):
    """
    Converts a JSON-LD value object to an RDF literal or a node reference
    to an RDF resource.

    :param item: the JSON-LD value or node reference.

    :return: the RDF term.
    """
    if not _is_value(item):
        return _rdf_resource(item['@id'], 'object')

    value = item['@value']
    datatype = item.get('@type')
    if datatype is not None:
        _check_iri(datatype, 'datatype')

    # convert to XSD datatypes as appropriate
    if isinstance(value, bool):
        return literal('true' if value else 'false', datatype or XSD_BOOLEAN)
    if isinstance(value, float) or (
            datatype == XSD_DOUBLE and not isinstance(value, str)):
        return literal(_canonical_double(value), datatype or XSD_DOUBLE)
    if isinstance(value, Integral):
        return literal(str(value), datatype or XSD_INTEGER)
    if datatype == XSD_DOUBLE:
        try:
            value = _canonical_double(float(value))
        except ValueError:
            pass
        return literal(value, datatype)
    if '@language' in item and datatype is None:
        return literal(value, language=item['@language'])
    return literal(value, datatype)


def _canonical_double(value):
    # canonical double representation
    return re.sub(r'(\d)0*E\+?0*(\d)', r'\1E\2', ('%1.15E' % value))


def _is_value(v):
    """
    Returns True if the given value is a @value object.
    """
    return isinstance(v, dict) and '@value' in v


def _is_list(v):
    """
    Returns True if the given value is a @list object.
    """
    return isinstance(v, dict) and '@list' in v


def _is_node(v):
    """
    Returns True if the given value is a node object (or node reference).
    """
    return (isinstance(v, dict) and '@value' not in v and
            '@list' not in v and '@set' not in v)


def _is_subject_reference(v):
    """
    Returns True if the given value is a node reference: an object with
    only an @id.
    """
    return isinstance(v, dict) and len(v) == 1 and '@id' in v
