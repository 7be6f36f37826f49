"""
Remote document loader using Requests.

.. module:: ldstudio.documentloader.requests
  :synopsis: Remote document loader using Requests
"""

from ldstudio.documentloader import (
    ACCEPT_HEADER, context_link, follow_alternate, parse_document_body,
    validate_url)
from ldstudio.errors import JsonLdError


def requests_document_loader(secure=False, max_link_follows=2, **kwargs):
    """
    Create a Requests document loader.
    Can be used to setup extra Requests args such as verify, cert, timeout,
    or others.

    :param secure: require all requests to use HTTPS (default: False).
    :param max_link_follows: Maximum number of alternate link follows allowed.
    :param **kwargs: extra keyword args for Requests get() call.

    :return: the RemoteDocument loader function.
    """
    import requests

    def loader(url, options=None, link_follow_count=0):
        """
        Retrieves JSON-LD at the given URL.

        :param url: the URL to retrieve.
        :param options: may hold request 'headers'.

        :return: the RemoteDocument.
        """
        options = options or {}
        try:
            validate_url(url, secure)
            headers = options.get('headers') or {'Accept': ACCEPT_HEADER}
            response = requests.get(url, headers=headers, **kwargs)
            response.raise_for_status()

            content_type = response.headers.get('content-type')
            if not content_type:
                content_type = 'application/octet-stream'
            link_header = response.headers.get('link')

            alternate = follow_alternate(url, content_type, link_header)
            if alternate:
                if link_follow_count >= max_link_follows:
                    raise requests.TooManyRedirects(
                        f"Exceeded maximum link header redirects "
                        f"({max_link_follows})")
                return loader(
                    alternate, options=options,
                    link_follow_count=link_follow_count + 1)

            document = parse_document_body(response.text)
            if document is None:
                raise JsonLdError(
                    'URL did not return a JSON document.',
                    'jsonld.LoadDocumentError',
                    {'url': url, 'contentType': content_type},
                    code='loading document failed')
            return {
                'contentType': content_type,
                'contextUrl': context_link(url, content_type, link_header),
                'documentUrl': response.url,
                'document': document
            }
        except JsonLdError:
            raise
        except Exception as cause:
            raise JsonLdError(
                'Could not retrieve a JSON-LD document from %s.' % url,
                'jsonld.LoadDocumentError', {'url': url},
                code='loading document failed', cause=cause)

    return loader
