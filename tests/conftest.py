import copy

import pytest

from ldstudio import documentloader
from ldstudio.context import ContextResolver
from ldstudio.registry import ContextRegistry, MemoryRegistryStore


def pytest_addoption(parser):
    # Do only long options for pytest integration; pytest reserves
    # lowercase single-letter short options for its own CLI flags.
    parser.addoption(
        '--loader',
        dest='loader',
        default='requests',
        help='The remote URL document loader: requests, aiohttp',
    )


def pytest_configure(config):
    # Register custom markers
    config.addinivalue_line(
        "markers", "network: marks tests as requiring network access (may be slow)"
    )

    # Apply the loader choice globally so tests that go through the
    # default loader use the same HTTP client as the CLI would.
    loader = config.getoption('loader')
    if loader == 'requests':
        documentloader.set_document_loader(
            documentloader.fallback_document_loader(
                documentloader.requests_document_loader()))
    elif loader == 'aiohttp':
        documentloader.set_document_loader(
            documentloader.fallback_document_loader(
                documentloader.aiohttp_document_loader()))


def pytest_collection_modifyitems(config, items):
    # network tests only run when selected with -m network
    if 'network' in (config.getoption('markexpr') or ''):
        return
    skip = pytest.mark.skip(reason='needs network access, run with -m network')
    for item in items:
        if 'network' in item.keywords:
            item.add_marker(skip)


class StaticLoader(object):
    """
    A document loader serving a fixed url -> document table and recording
    every requested URL. Unknown URLs fail like an unreachable host.
    """

    def __init__(self, documents=None):
        self.documents = documents or {}
        self.calls = []

    def __call__(self, url, options=None):
        self.calls.append(url)
        if url not in self.documents:
            raise ConnectionError('Connection refused: %s' % url)
        return {
            'contentType': 'application/ld+json',
            'contextUrl': None,
            'documentUrl': url,
            'document': copy.deepcopy(self.documents[url])
        }


@pytest.fixture
def static_loader():
    return StaticLoader


@pytest.fixture
def offline_resolver():
    """
    A resolver whose loader refuses every URL; built-in and registered
    contexts still resolve.
    """
    return ContextResolver(
        document_loader=StaticLoader(),
        registry=ContextRegistry(MemoryRegistryStore()))
