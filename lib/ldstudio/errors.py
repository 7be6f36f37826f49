"""
Error types raised by the JSON-LD processor and its collaborators.

.. module:: ldstudio.errors
  :synopsis: JSON-LD processing errors
"""

import sys
import traceback


class JsonLdError(Exception):
    """
    Base class for JSON-LD errors.
    """

    def __init__(self, message, type_, details=None, code=None, cause=None):
        Exception.__init__(self, message)
        self.type = type_
        self.details = details
        self.code = code
        self.cause = cause
        self.causeTrace = traceback.extract_tb(*sys.exc_info()[2:])

    @property
    def message(self):
        return self.args[0] if self.args else ''

    def describe(self):
        """
        Builds a single readable message out of this error and its chain
        of causes, without tracebacks.

        :return: the description.
        """
        parts = [self.message]
        cause = self.cause
        while cause is not None:
            if isinstance(cause, JsonLdError):
                parts.append(cause.message)
                cause = cause.cause
            else:
                parts.append(str(cause) or cause.__class__.__name__)
                cause = None
        return ' '.join(p for p in parts if p)

    def __str__(self):
        rval = str(self.args)
        rval += '\nType: ' + self.type
        if self.code:
            rval += '\nCode: ' + self.code
        if self.details:
            rval += '\nDetails: ' + repr(self.details)
        if self.cause:
            rval += '\nCause: ' + str(self.cause)
            rval += ''.join(traceback.format_list(self.causeTrace))
        return rval


class ContextResolutionError(JsonLdError):
    """
    A context reference (remote URL or registry urn) could not be turned
    into a context document.
    """

    def __init__(self, message, details=None, code='loading remote context failed',
                 cause=None):
        JsonLdError.__init__(
            self, message, 'jsonld.ContextResolutionError', details,
            code=code, cause=cause)


class ContextNotFound(ContextResolutionError):
    """
    A ``urn:context:`` reference is not present in the registry.
    """

    def __init__(self, urn):
        ContextResolutionError.__init__(
            self, 'Context not found in registry: %s' % urn, {'urn': urn},
            code='context not found')
        self.urn = urn


class UnresolvableTerm(JsonLdError):
    """
    A property or type token has no IRI mapping in the active context.
    """

    def __init__(self, term, reason=None, details=None):
        message = 'Could not resolve term "%s" to an IRI' % term
        if reason:
            message += '; ' + reason
        message += '.'
        JsonLdError.__init__(
            self, message, 'jsonld.UnresolvableTerm',
            dict(details or {}, term=term), code='invalid IRI mapping')
        self.term = term


class RdfConversionError(JsonLdError):
    """
    A node or value cannot be mapped to a valid quad.
    """

    def __init__(self, message, details=None, cause=None):
        JsonLdError.__init__(
            self, message, 'jsonld.RdfConversionError', details,
            code='invalid RDF term', cause=cause)


class ShaclSyntaxError(JsonLdError):
    """
    A shapes graph could not be parsed as Turtle.
    """

    def __init__(self, message, details=None, cause=None):
        JsonLdError.__init__(
            self, message, 'shacl.SyntaxError', details,
            code='invalid shapes graph', cause=cause)
