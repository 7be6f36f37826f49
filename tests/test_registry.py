import json

import pytest

from ldstudio.errors import ContextNotFound
from ldstudio.registry import (
    URN_PREFIX, ContextRegistry, JsonFileRegistryStore, MemoryRegistryStore,
    is_registry_urn)


class TestContextRegistry:
    def test_register_and_get(self):
        registry = ContextRegistry(MemoryRegistryStore())
        urn = registry.register({'ex': 'http://ex.org/'})
        assert is_registry_urn(urn)
        assert urn in registry
        assert registry.get(urn) == {'@context': {'ex': 'http://ex.org/'}}

    def test_urns_are_unique(self):
        registry = ContextRegistry(MemoryRegistryStore())
        first = registry.register({'a': 'http://ex.org/a'})
        second = registry.register({'a': 'http://ex.org/a'})
        assert first != second
        assert len(registry) == 2

    def test_get_returns_copy(self):
        registry = ContextRegistry(MemoryRegistryStore())
        urn = registry.register({'ex': 'http://ex.org/'})
        registry.get(urn)['@context']['ex'] = 'http://changed.org/'
        assert registry.get(urn)['@context']['ex'] == 'http://ex.org/'

    def test_unknown_urn(self):
        registry = ContextRegistry(MemoryRegistryStore())
        with pytest.raises(ContextNotFound) as excinfo:
            registry.get(URN_PREFIX + 'missing')
        assert excinfo.value.urn == URN_PREFIX + 'missing'
        assert excinfo.value.code == 'context not found'

    def test_every_registration_saved(self):
        store = MemoryRegistryStore()
        registry = ContextRegistry(store)
        urn = registry.register({'ex': 'http://ex.org/'})
        registry.register({'other': 'http://other.org/'})
        assert store.saves == 2
        assert store.entries[0] == [urn, {'@context': {'ex': 'http://ex.org/'}}]

    def test_loaded_from_store(self):
        urn = URN_PREFIX + '0f8fad5b-d9cb-469f-a165-70867728950e'
        store = MemoryRegistryStore([[urn, {'@context': {'a': 'http://a/'}}]])
        assert ContextRegistry(store).get(urn) == {'@context': {'a': 'http://a/'}}

    def test_malformed_entries_skipped(self):
        urn = URN_PREFIX + 'kept'
        store = MemoryRegistryStore([
            ['http://not-a-urn', {'@context': {}}],
            'garbage',
            [urn, {'@context': {}}]])
        registry = ContextRegistry(store)
        assert len(registry) == 1
        assert urn in registry


class TestJsonFileRegistryStore:
    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFileRegistryStore(str(tmp_path / 'registry.json')).load() == []

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / 'registry.json')
        urn = ContextRegistry(JsonFileRegistryStore(path)).register(
            {'ex': 'http://ex.org/'})

        reopened = ContextRegistry(JsonFileRegistryStore(path))
        assert reopened.get(urn) == {'@context': {'ex': 'http://ex.org/'}}
        with open(path, encoding='utf-8') as fp:
            assert json.load(fp) == [[urn, {'@context': {'ex': 'http://ex.org/'}}]]

    def test_rejects_non_array(self, tmp_path):
        path = tmp_path / 'registry.json'
        path.write_text('{"urn:context:1": {}}', encoding='utf-8')
        with pytest.raises(ValueError, match='must contain a JSON array'):
            JsonFileRegistryStore(str(path)).load()


def test_is_registry_urn():
    assert is_registry_urn('urn:context:abc')
    assert not is_registry_urn('https://schema.org')
    assert not is_registry_urn(None)
