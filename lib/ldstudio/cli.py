#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
ldstudio - command line front end for the JSON-LD workbench
"""
import argparse
import json
import logging
import os
import sys

from ldstudio import documentloader
from ldstudio.context import ContextResolver
from ldstudio.registry import (
    ContextRegistry, JsonFileRegistryStore, MemoryRegistryStore)
from ldstudio.service import Workbench

log = logging.getLogger()

REGISTRY_ENV = 'LDSTUDIO_REGISTRY'


def read_json(value):
    """
    Reads a JSON argument: a file path, '-' for stdin, or a literal
    string (a context URL or registry key).

    :param value: the argument.
    :returns: the parsed JSON, or value itself when it names no file.
    """
    if value == '-':
        return json.load(sys.stdin)
    if os.path.exists(value):
        log.debug("read_json: %r" % value)
        with open(value, 'r', encoding='utf-8') as f:
            return json.load(f)
    return value


def read_text(path):
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def _direct_loader():
    try:
        return documentloader.requests_document_loader()
    except ImportError:
        return documentloader.aiohttp_document_loader()


def build_workbench(opts):
    """
    Builds the Workbench from the registry and loader options.
    """
    registry_path = opts.registry or os.environ.get(REGISTRY_ENV)
    if registry_path:
        store = JsonFileRegistryStore(registry_path)
    else:
        store = MemoryRegistryStore()
    loader = _direct_loader() if opts.no_proxies else None
    resolver = ContextResolver(
        document_loader=loader, registry=ContextRegistry(store))
    return Workbench(resolver)


def run(workbench, doc, opts):
    """
    Runs the selected action.

    :returns: the Workbench result.
    """
    if opts.register:
        if not isinstance(doc, dict) or '@context' not in doc:
            return {'success': False, 'error': 'Input has no @context.'}
        return {'success': True,
                'data': workbench.register_context(doc['@context'])}
    if opts.compact:
        return workbench.compact(doc, read_json(opts.compact))
    if opts.flatten:
        return workbench.flatten(doc)
    if opts.frame:
        return workbench.frame(doc, read_json(opts.frame))
    if opts.nquads:
        return workbench.to_nquads(doc)
    if opts.canonize:
        return workbench.canonize(doc)
    if opts.turtle:
        return workbench.to_turtle(doc)
    if opts.yaml:
        return workbench.to_yaml(doc)
    if opts.table:
        return workbench.to_table(doc)
    if opts.graph:
        return workbench.to_graph(doc)
    if opts.validate:
        return workbench.validate_shacl(doc, read_text(opts.validate))
    if opts.generate_shapes:
        return workbench.generate_shapes(doc)
    if opts.context_from_shapes:
        return workbench.context_from_shapes(doc)
    return workbench.expand(doc)


def main(*argv):
    prs = argparse.ArgumentParser(
        prog='ldstudio',
        description='Transform, serialize and validate JSON-LD documents.')

    prs.add_argument('input',
                     help='JSON-LD input file or URL, or - for stdin')

    actions = prs.add_mutually_exclusive_group()
    actions.add_argument('--expand',
                         help='ACTION: Perform JSON-LD expansion (default)',
                         dest='expand',
                         action='store_true')
    actions.add_argument('--compact',
                         help=('ACTION: Compact the document with the given '
                               '@context file, URL or registry key'),
                         dest='compact',
                         action='store')
    actions.add_argument('--flatten',
                         help='ACTION: Perform JSON-LD flattening',
                         dest='flatten',
                         action='store_true')
    actions.add_argument('--frame',
                         help='ACTION: Perform JSON-LD framing with the '
                              'given frame file or URL',
                         dest='frame',
                         action='store')
    actions.add_argument('--nquads',
                         help='ACTION: Convert to N-Quads',
                         dest='nquads',
                         action='store_true')
    actions.add_argument('--canonize',
                         help='ACTION: Convert to canonical N-Quads '
                              '(URDNA2015)',
                         dest='canonize',
                         action='store_true')
    actions.add_argument('--turtle',
                         help='ACTION: Convert to Turtle',
                         dest='turtle',
                         action='store_true')
    actions.add_argument('--yaml',
                         help='ACTION: Render as YAML-LD',
                         dest='yaml',
                         action='store_true')
    actions.add_argument('--table',
                         help='ACTION: List the quads as table rows',
                         dest='table',
                         action='store_true')
    actions.add_argument('--graph',
                         help='ACTION: Project the quads to nodes and links',
                         dest='graph',
                         action='store_true')
    actions.add_argument('--validate',
                         help='ACTION: Validate against a SHACL shapes '
                              '(Turtle) file',
                         dest='validate',
                         action='store')
    actions.add_argument('--generate-shapes',
                         help='ACTION: Draft SHACL shapes (Turtle) for the '
                              'document',
                         dest='generate_shapes',
                         action='store_true')
    actions.add_argument('--context-from-shapes',
                         help='ACTION: Read the input as SHACL shapes '
                              '(Turtle) and build a JSON-LD context',
                         dest='context_from_shapes',
                         action='store_true')
    actions.add_argument('--register',
                         help='ACTION: Store the input\'s @context in the '
                              'registry and print its key',
                         dest='register',
                         action='store_true')

    prs.add_argument('--registry',
                     help=('Context registry file [default: $%s, else '
                           'in memory]' % REGISTRY_ENV),
                     dest='registry',
                     action='store')
    prs.add_argument('--base',
                     help='Base IRI to use',
                     dest='base',
                     action='store')
    prs.add_argument('--indent',
                     help='Indent json with n spaces [default: 2]',
                     dest='indent',
                     action='store',
                     type=int,
                     default=2)
    prs.add_argument('--no-proxies',
                     help='Do not retry failed context fetches through '
                          'CORS proxies',
                     dest='no_proxies',
                     action='store_true',
                     default=False)

    prs.add_argument('-v', '--verbose',
                     dest='verbose',
                     action='store_true',)
    prs.add_argument('-q', '--quiet',
                     dest='quiet',
                     action='store_true',)

    if not argv:
        _argv = sys.argv[1:]
    else:
        _argv = list(argv)
    opts = prs.parse_args(args=_argv)

    if not opts.quiet:
        logging.basicConfig()

        if opts.verbose:
            logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(logging.CRITICAL + 1)

    try:
        if not opts.context_from_shapes:
            doc = read_json(opts.input)
        elif opts.input == '-':
            doc = sys.stdin.read()
        else:
            doc = read_text(opts.input)
    except (OSError, ValueError) as cause:
        print('Could not read %s: %s' % (opts.input, cause), file=sys.stderr)
        return 1
    if isinstance(doc, dict) and opts.base and '@context' in doc:
        doc = dict(doc)
        doc['@context'] = [{'@base': opts.base}, doc['@context']]
    elif isinstance(doc, dict) and opts.base:
        doc = dict(doc, **{'@context': {'@base': opts.base}})

    workbench = build_workbench(opts)
    result = run(workbench, doc, opts)
    if not result['success']:
        print(result['error'], file=sys.stderr)
        return 1

    data = result['data']
    if isinstance(data, str):
        print(data.rstrip('\n'))
    else:
        print(json.dumps(data, indent=opts.indent or None))
    return 0


if __name__ == "__main__":
    sys.exit(main(*sys.argv[1:]))
