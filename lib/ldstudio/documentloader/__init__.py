"""
Document loaders resolve a URL to a RemoteDocument::

    {
        'contentType': 'application/ld+json',
        'contextUrl': None,
        'documentUrl': 'https://example.org/context.jsonld',
        'document': {...}
    }

A loader is any callable ``loader(url, options=None)`` that returns such a
dict or raises. The process default is a Requests loader (aiohttp when
Requests is not installed) wrapped in :func:`fallback_document_loader`,
which retries through public CORS proxies when the direct fetch fails.

.. module:: ldstudio.documentloader
  :synopsis: Remote document loading
"""

import json
import logging
import re
import string
import urllib.parse as urllib_parse

from ldstudio.errors import ContextResolutionError, JsonLdError
from ldstudio.iri_resolver import resolve

__all__ = [
    'ACCEPT_HEADER', 'CORS_PROXIES', 'LINK_HEADER_REL',
    'parse_link_header', 'parse_document_body', 'validate_url',
    'dummy_document_loader', 'requests_document_loader',
    'aiohttp_document_loader', 'fallback_document_loader',
    'is_network_failure',
    'set_document_loader', 'get_document_loader']

log = logging.getLogger(__name__)

# JSON-LD link header rel
LINK_HEADER_REL = 'http://www.w3.org/ns/json-ld#context'

ACCEPT_HEADER = 'application/ld+json, application/json, text/plain, */*'

# proxy endpoints tried in order after a failed direct fetch; '{url}' is
# the percent-encoded target and '{raw}' the target as is
CORS_PROXIES = (
    'https://corsproxy.io/?{url}',
    'https://api.allorigins.win/raw?url={url}',
    'https://cors-anywhere.herokuapp.com/{raw}',
)

# the outermost JSON object inside a body that has noise around it
_EMBEDDED_OBJECT = re.compile(r'\{[\s\S]*\}')


def parse_link_header(header):
    """
    Parses a link header. The results will be keyed by the value of "rel".

    Link: <http://json-ld.org/contexts/person.jsonld>; \
      rel="http://www.w3.org/ns/json-ld#context"; type="application/ld+json"

    Parses as: {
      'http://www.w3.org/ns/json-ld#context': {
        target: http://json-ld.org/contexts/person.jsonld,
        type: 'application/ld+json'
      }
    }

    If there is more than one "rel" with the same IRI, then entries in the
    resulting map for that "rel" will be lists.

    :param header: the link header to parse.

    :return: the parsed result.
    """
    rval = {}
    # split on unbracketed/unquoted commas
    entries = re.findall(r'(?:<[^>]*?>|"[^"]*?"|[^,])+', header)
    r_link_header = r'\s*<([^>]*?)>\s*(?:;\s*(.*))?'
    r_params = r'(.*?)=(?:(?:"([^"]*?)")|([^"]*?))\s*(?:(?:;\s*)|$)'
    for entry in entries:
        match = re.search(r_link_header, entry)
        if not match:
            continue
        target, params = match.groups()
        result = {'target': target}
        for name, quoted, bare in re.findall(r_params, params or ''):
            result[name.strip()] = quoted if quoted else bare
        rel = result.get('rel', '')
        if isinstance(rval.get(rel), list):
            rval[rel].append(result)
        elif rel in rval:
            rval[rel] = [rval[rel], result]
        else:
            rval[rel] = result
    return rval


def parse_document_body(text):
    """
    Parses a response body as JSON. Proxies sometimes wrap the payload in
    extra text; when the body is not JSON, the outermost ``{...}`` found in
    it is parsed instead.

    :param text: the response body.

    :return: the parsed JSON, or None if the body holds no JSON object.
    """
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        pass
    match = _EMBEDDED_OBJECT.search(text)
    if match is None:
        return None
    try:
        document = json.loads(match.group(0))
    except ValueError:
        return None
    log.debug('Recovered a JSON object from a non-JSON response body.')
    return document


def validate_url(url, secure=False):
    """
    Raises a JsonLdError unless url is an http(s) URL that may be fetched.

    :param url: the URL to check.
    :param secure: True to only allow https.
    """
    pieces = urllib_parse.urlparse(url)
    if (not all([pieces.scheme, pieces.netloc]) or
            pieces.scheme not in ['http', 'https'] or
            set(pieces.netloc) > set(
                string.ascii_letters + string.digits + '-.:@')):
        raise JsonLdError(
            'URL could not be dereferenced; only "http" and "https" '
            'URLs are supported.',
            'jsonld.InvalidUrl', {'url': url},
            code='loading document failed')
    if secure and pieces.scheme != 'https':
        raise JsonLdError(
            'URL could not be dereferenced; secure mode enabled and '
            'the URL\'s scheme is not "https".',
            'jsonld.InvalidUrl', {'url': url},
            code='loading document failed')


def follow_alternate(url, content_type, link_header):
    """
    Returns the target of a JSON-LD ``rel="alternate"`` link when the
    response itself is not JSON, else None.

    :param url: the URL that was fetched.
    :param content_type: the response content type.
    :param link_header: the raw Link header, may be None.
    """
    if not link_header:
        return None
    alternate = parse_link_header(link_header).get('alternate')
    if isinstance(alternate, list):
        alternate = next(
            (a for a in alternate if a.get('type') == 'application/ld+json'),
            None)
    if (alternate and alternate.get('type') == 'application/ld+json' and
            not re.match(r'^application\/(\w*\+)?json', content_type or '')):
        return resolve(alternate['target'], url)
    return None


def context_link(url, content_type, link_header):
    """
    Returns the context URL announced by a JSON-LD context Link header, if
    the response is plain JSON.
    """
    if not link_header or content_type == 'application/ld+json':
        return None
    linked_context = parse_link_header(link_header).get(LINK_HEADER_REL)
    if not linked_context:
        return None
    if isinstance(linked_context, list):
        raise JsonLdError(
            'URL could not be dereferenced, it has more than one '
            'associated HTTP Link Header.',
            'jsonld.LoadDocumentError', {'url': url},
            code='multiple context link headers')
    return resolve(linked_context['target'], url)


def dummy_document_loader(**kwargs):
    """
    Create a dummy document loader that will raise an exception on use.

    :param **kwargs: extra keyword args

    :return: the RemoteDocument loader function.
    """

    def loader(url, options=None):
        raise JsonLdError(
            'No default document loader configured; install "requests" or '
            '"aiohttp" to load remote documents.',
            'jsonld.LoadDocumentError', {'url': url},
            code='no default document loader')

    return loader


def requests_document_loader(**kwargs):
    from ldstudio.documentloader import requests as requests_loader

    return requests_loader.requests_document_loader(**kwargs)


def aiohttp_document_loader(**kwargs):
    from ldstudio.documentloader import aiohttp as aiohttp_loader

    return aiohttp_loader.aiohttp_document_loader(**kwargs)


def _http_status(error):
    response = getattr(error, 'response', None)
    status = getattr(response, 'status_code', None)
    if status is None:
        # aiohttp.ClientResponseError
        status = getattr(error, 'status', None)
    return status if isinstance(status, int) else None


def is_network_failure(cause):
    """
    Returns True if a failed fetch may succeed through a proxy: the host
    could not be reached, the connection was refused or reset, or the
    server answered with a 5xx status.

    Invalid URLs, 4xx answers and bodies that are not JSON fail the same
    way through any proxy.

    :param cause: the exception raised by the loader.
    """
    if isinstance(cause, JsonLdError):
        if cause.cause is None:
            return False
        cause = cause.cause
    status = _http_status(cause)
    if status is not None and 400 <= status < 500:
        return False
    return True


def fallback_document_loader(loader, proxies=CORS_PROXIES):
    """
    Wraps a loader so that a direct fetch that failed for network reasons
    (see :func:`is_network_failure`) is retried through each proxy
    endpoint in turn, stopping at the first success. Any other failure is
    raised unchanged.

    :param loader: the underlying loader.
    :param proxies: proxy URL templates, see CORS_PROXIES.

    :return: the RemoteDocument loader function.
    """

    def fallback_loader(url, options=None):
        attempts = []
        try:
            return loader(url, options)
        except Exception as cause:
            if not is_network_failure(cause):
                raise
            log.warning('Direct fetch of %s failed: %s', url, _reason(cause))
            attempts.append((url, cause))

        for template in proxies:
            proxied = template.format(
                url=urllib_parse.quote(url, safe=''), raw=url)
            try:
                remote = loader(proxied, options)
            except Exception as cause:
                log.warning(
                    'Proxy fetch of %s via %s failed: %s',
                    url, proxied, _reason(cause))
                attempts.append((proxied, cause))
                continue
            log.info('Loaded %s via proxy %s.', url, proxied)
            remote = dict(remote)
            remote['documentUrl'] = url
            return remote

        raise ContextResolutionError(
            'Could not load remote context from %s: every fetch attempt '
            'failed (%s).' % (url, '; '.join(
                '%s: %s' % (target, _reason(cause))
                for target, cause in attempts)),
            {'url': url, 'attempts': [target for target, _ in attempts]},
            code='loading remote context failed',
            cause=attempts[-1][1] if attempts else None)

    return fallback_loader


def _reason(cause):
    if isinstance(cause, JsonLdError):
        return cause.describe()
    return str(cause) or cause.__class__.__name__


def set_document_loader(load_document_):
    """
    Sets the default JSON-LD document loader.

    :param load_document(url, options): the document loader to use.
    """
    global _default_document_loader
    _default_document_loader = load_document_


def get_document_loader():
    """
    Gets the default JSON-LD document loader.

    :return: the default document loader.
    """
    return _default_document_loader


# Default document loader: Requests if available, else aiohttp, else a
# loader that refuses to fetch.
try:
    _default_document_loader = fallback_document_loader(
        requests_document_loader())
except ImportError:
    try:
        _default_document_loader = fallback_document_loader(
            aiohttp_document_loader())
    except ImportError:
        _default_document_loader = dummy_document_loader()
