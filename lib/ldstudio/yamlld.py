"""
YAML-LD preview of JSON-LD documents.

The preview is meant for reading: short lists of scalars stay on one line
and any string that YAML could read as something else is double-quoted.

.. module:: ldstudio.yamlld
  :synopsis: YAML rendering of JSON-LD
"""

import re

import yaml

STR_TAG = 'tag:yaml.org,2002:str'
SEQ_TAG = 'tag:yaml.org,2002:seq'
MAP_TAG = 'tag:yaml.org,2002:map'

# lists of at most this many scalars are written inline
INLINE_LIST_LIMIT = 5

_RESERVED_WORDS = frozenset(['true', 'false', 'null', 'yes', 'no'])


def _needs_quotes(value):
    return (
        any(c in value for c in '\n:#"\'') or
        value.startswith('@') or
        value.startswith(' ') or value.endswith(' ') or
        re.match(r'^[0-9]', value) is not None or
        value.lower() in _RESERVED_WORDS)


def _key_needs_quotes(key):
    return ':' in key or ' ' in key or key.startswith('@')


class PreviewDumper(yaml.SafeDumper):
    """
    SafeDumper that keeps key order, never emits anchors, and applies the
    preview quoting and inline-list rules.
    """

    def ignore_aliases(self, data):
        return True

    def represent_str(self, data):
        style = '"' if _needs_quotes(data) else None
        return self.represent_scalar(STR_TAG, data, style=style)

    def represent_list(self, data):
        inline = len(data) <= INLINE_LIST_LIMIT and not any(
            isinstance(item, (dict, list)) for item in data)
        return self.represent_sequence(SEQ_TAG, data, flow_style=inline)

    def represent_dict(self, data):
        pairs = []
        for key, value in data.items():
            key = str(key)
            style = '"' if _key_needs_quotes(key) else None
            pairs.append((
                self.represent_scalar(STR_TAG, key, style=style),
                self.represent_data(value)))
        return yaml.MappingNode(MAP_TAG, pairs, flow_style=not pairs)


PreviewDumper.add_representer(str, PreviewDumper.represent_str)
PreviewDumper.add_representer(list, PreviewDumper.represent_list)
PreviewDumper.add_representer(dict, PreviewDumper.represent_dict)


def to_yaml_preview(doc):
    """
    Renders a JSON-LD document as YAML.

    :param doc: the document.

    :return: the YAML text, without a trailing newline.
    """
    text = yaml.dump(
        doc, Dumper=PreviewDumper, default_flow_style=False,
        allow_unicode=True, sort_keys=False, width=4096)
    text = text.rstrip('\n')
    # scalar documents get an explicit end marker
    if text.endswith('\n...'):
        text = text[:-4]
    return text
