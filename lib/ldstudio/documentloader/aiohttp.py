"""
Remote document loader using aiohttp.

The fetch itself is a coroutine; the returned loader is synchronous, as
every loader is from the processor's point of view. Outside an event loop
it runs the coroutine with ``asyncio.run``; inside a running loop it hands
the coroutine to a background loop thread and waits for the result.

.. module:: ldstudio.documentloader.aiohttp
  :synopsis: Remote document loader using aiohttp
"""

import asyncio
import threading

from ldstudio.documentloader import (
    ACCEPT_HEADER, context_link, follow_alternate, parse_document_body,
    validate_url)
from ldstudio.errors import JsonLdError


# Background event loop (used when inside an existing async environment)
_background_loop = None
_background_lock = threading.Lock()


def _ensure_background_loop():
    """Start a persistent background event loop if not running."""
    global _background_loop
    with _background_lock:
        if _background_loop is None:
            loop = asyncio.new_event_loop()

            def run_loop():
                asyncio.set_event_loop(loop)
                loop.run_forever()

            threading.Thread(target=run_loop, daemon=True).start()
            _background_loop = loop
    return _background_loop


def aiohttp_document_loader(secure=False, max_link_follows=2, **kwargs):
    """
    Create a document loader that fetches with aiohttp.

    :param secure: require all requests to use HTTPS (default: False).
    :param max_link_follows: Maximum number of alternate link follows allowed.
    :param **kwargs: extra keyword args for the aiohttp request get() call.

    :return: the RemoteDocument loader function.
    """
    import aiohttp

    async def async_loader(url, headers):
        """
        Retrieves JSON-LD at the given URL asynchronously, following
        alternate links.

        :param url: the URL to retrieve.
        :param headers: the request headers.

        :return: the RemoteDocument.
        """
        try:
            async with aiohttp.ClientSession() as session:
                for _ in range(max_link_follows + 1):
                    validate_url(url, secure)
                    async with session.get(
                            url, headers=headers, **kwargs) as response:
                        response.raise_for_status()
                        content_type = response.headers.get(
                            'content-type') or 'application/octet-stream'
                        link_header = response.headers.get('link')
                        alternate = follow_alternate(
                            url, content_type, link_header)
                        if alternate:
                            url = alternate
                            continue
                        document = parse_document_body(await response.text())
                        if document is None:
                            raise JsonLdError(
                                'URL did not return a JSON document.',
                                'jsonld.LoadDocumentError',
                                {'url': url, 'contentType': content_type},
                                code='loading document failed')
                        return {
                            'contentType': content_type,
                            'contextUrl': context_link(
                                url, content_type, link_header),
                            'documentUrl': response.url.human_repr(),
                            'document': document
                        }
                raise JsonLdError(
                    'Exceeded maximum link header redirects (%d).'
                    % max_link_follows,
                    'jsonld.LoadDocumentError', {'url': url},
                    code='loading document failed')
        except JsonLdError:
            raise
        except Exception as cause:
            raise JsonLdError(
                'Could not retrieve a JSON-LD document from %s.' % url,
                'jsonld.LoadDocumentError', {'url': url},
                code='loading document failed', cause=cause)

    def loader(url, options=None):
        """
        Retrieves JSON-LD at the given URL synchronously.

        :param url: the URL to retrieve.
        :param options: may hold request 'headers'.

        :return: the RemoteDocument.
        """
        options = options or {}
        headers = options.get('headers') or {'Accept': ACCEPT_HEADER}

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is None:
            return asyncio.run(async_loader(url, headers))

        future = asyncio.run_coroutine_threadsafe(
            async_loader(url, headers), _ensure_background_loop())
        return future.result()

    return loader
