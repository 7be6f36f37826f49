"""
Registry of locally stored contexts addressed by ``urn:context:<uuid>``.

A registered context is stored as a complete context document
(``{'@context': ...}``) so that its urn resolves exactly like a remote
context. Entries are kept in an ordered list of ``[urn, document]`` pairs;
the store loads that list wholesale when the registry is created and saves
it wholesale on every registration.

.. module:: ldstudio.registry
  :synopsis: Context registry and its stores
"""

import copy
import json
import logging
import os
import uuid

from ldstudio.errors import ContextNotFound

__all__ = [
    'URN_PREFIX', 'ContextRegistry', 'MemoryRegistryStore',
    'JsonFileRegistryStore', 'is_registry_urn']

log = logging.getLogger(__name__)

URN_PREFIX = 'urn:context:'


def is_registry_urn(reference):
    """
    Returns True if the reference is a context registry key.

    :param reference: the context reference to check.
    """
    return isinstance(reference, str) and reference.startswith(URN_PREFIX)


class MemoryRegistryStore(object):
    """
    Keeps registry entries in memory only. Pass ``entries`` to preload.
    """

    def __init__(self, entries=None):
        self.entries = copy.deepcopy(entries) if entries else []
        self.saves = 0

    def load(self):
        return copy.deepcopy(self.entries)

    def save(self, entries):
        self.entries = copy.deepcopy(entries)
        self.saves += 1


class JsonFileRegistryStore(object):
    """
    Persists registry entries as a JSON array of ``[urn, document]`` pairs.
    """

    def __init__(self, path):
        self.path = os.path.expanduser(path)

    def load(self):
        if not os.path.exists(self.path):
            return []
        with open(self.path, encoding='utf-8') as fp:
            entries = json.load(fp)
        if not isinstance(entries, list):
            raise ValueError(
                'Registry file %s must contain a JSON array.' % self.path)
        return entries

    def save(self, entries):
        tmp = self.path + '.tmp'
        with open(tmp, 'w', encoding='utf-8') as fp:
            json.dump(entries, fp, indent=2)
        os.replace(tmp, self.path)


class ContextRegistry(object):
    """
    Maps ``urn:context:`` keys to context documents.
    """

    def __init__(self, store=None):
        """
        Creates the registry and loads every entry from the store.

        :param store: an object with ``load()`` and ``save(entries)``,
          defaults to a MemoryRegistryStore.
        """
        self.store = store if store is not None else MemoryRegistryStore()
        self._entries = {}
        for entry in self.store.load():
            if not (isinstance(entry, (list, tuple)) and len(entry) == 2 and
                    is_registry_urn(entry[0])):
                log.warning('Ignoring malformed registry entry: %r', entry)
                continue
            self._entries[entry[0]] = entry[1]
        log.debug('Loaded %d registered contexts.', len(self._entries))

    def register(self, context):
        """
        Stores a context under a freshly minted urn and flushes the store.

        :param context: the raw context (object, list or string).

        :return: the urn.
        """
        urn = URN_PREFIX + str(uuid.uuid4())
        self._entries[urn] = {'@context': copy.deepcopy(context)}
        self.flush()
        log.info('Registered context %s.', urn)
        return urn

    def get(self, urn):
        """
        Gets a copy of the context document registered under urn.

        :param urn: the registry key.

        :return: the context document.
        """
        try:
            return copy.deepcopy(self._entries[urn])
        except KeyError:
            raise ContextNotFound(urn)

    def entries(self):
        """
        Returns the ``[urn, document]`` pairs in registration order.
        """
        return [[urn, copy.deepcopy(doc)] for urn, doc in self._entries.items()]

    def flush(self):
        self.store.save(self.entries())

    def __contains__(self, urn):
        return urn in self._entries

    def __len__(self):
        return len(self._entries)
