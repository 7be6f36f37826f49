""" The ldstudio module processes JSON-LD documents and their RDF forms. """
from . import jsonld
from .context import ContextResolver, ActiveContext
from .registry import ContextRegistry
from .service import Workbench

__all__ = [
    'jsonld', 'ContextResolver', 'ActiveContext', 'ContextRegistry',
    'Workbench']
