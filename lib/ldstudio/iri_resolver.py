"""
Reference resolution for IRIs (RFC 3986 section 5.2) used for ``@base``.

.. module:: ldstudio.iri_resolver
  :synopsis: Relative IRI resolution
"""

import re
from urllib.parse import urlsplit, urlunsplit

# scheme ":" per RFC 3986 section 3.1
_SCHEME = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:')


def is_absolute_iri(value) -> bool:
    """
    Returns True if the given value starts with a URI scheme.

    :param value: the value to check.
    """
    return isinstance(value, str) and bool(_SCHEME.match(value))


def remove_dot_segments(path: str) -> str:
    """
    Removes '.' and '..' segments from a path, as described in RFC 3986
    section 5.2.4.

    :param path: the path to normalize.

    :return: the path without dot segments.
    """
    output = []
    while path:
        if path.startswith('../'):
            path = path[3:]
        elif path.startswith('./'):
            path = path[2:]
        elif path.startswith('/./'):
            path = path[2:]
        elif path == '/.':
            path = '/'
        elif path.startswith('/../'):
            path = path[3:]
            if output:
                output.pop()
        elif path == '/..':
            path = '/'
            if output:
                output.pop()
        elif path in ('.', '..'):
            path = ''
        else:
            start = 1 if path.startswith('/') else 0
            end = path.find('/', start)
            if end == -1:
                end = len(path)
            output.append(path[:end])
            path = path[end:]
    return ''.join(output)


def _has_query(reference):
    return '?' in reference.split('#', 1)[0]


def _merge_paths(base, path):
    if base.netloc and not base.path:
        return '/' + path
    return base.path[:base.path.rfind('/') + 1] + path


def resolve(relative_iri: str, base_iri: str = None) -> str:
    """
    Resolves a (possibly relative) IRI reference against a base IRI.

    :param relative_iri: the reference to resolve.
    :param base_iri: the absolute base IRI, or None.

    :return: the absolute IRI.
    """
    if is_absolute_iri(relative_iri):
        parts = urlsplit(relative_iri)
        if parts.path.startswith('/'):
            parts = parts._replace(path=remove_dot_segments(parts.path))
            return urlunsplit(parts)
        return relative_iri

    if not base_iri:
        raise ValueError(
            f"Found invalid relative IRI '{relative_iri}' for a missing baseIRI")
    if not is_absolute_iri(base_iri):
        raise ValueError(
            f"Found invalid baseIRI '{base_iri}' for value '{relative_iri}'")

    base = urlsplit(base_iri)
    ref = urlsplit(relative_iri)

    if relative_iri.startswith('//'):
        netloc = ref.netloc
        path = remove_dot_segments(ref.path)
        query = ref.query
    else:
        netloc = base.netloc
        if not ref.path:
            path = base.path
            query = ref.query if _has_query(relative_iri) else base.query
        else:
            if ref.path.startswith('/'):
                path = remove_dot_segments(ref.path)
            else:
                path = remove_dot_segments(_merge_paths(base, ref.path))
            query = ref.query

    rval = urlunsplit((base.scheme, netloc, path, query, ref.fragment))
    if '#' in relative_iri and not ref.fragment:
        rval += '#'
    return rval
