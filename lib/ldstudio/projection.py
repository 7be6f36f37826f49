"""
Table and node/link projections of quads for display.

.. module:: ldstudio.projection
  :synopsis: Graph and table views of RDF data
"""

from ldstudio.turtle import shorten_iri

DEFAULT_GRAPH_LABEL = 'default'

# literal node labels longer than this are truncated
LABEL_LIMIT = 30


def to_table(quads):
    """
    Lists quads as table rows.

    :param quads: the quads.

    :return: a list of ``{subject, predicate, object, objectType, graph}``
      dicts.
    """
    rows = []
    for quad in quads:
        graph = quad.get('graph')
        rows.append({
            'subject': quad['subject']['value'],
            'predicate': quad['predicate']['value'],
            'object': quad['object']['value'],
            'objectType': quad['object']['type'],
            'graph': graph['value'] if graph else DEFAULT_GRAPH_LABEL
        })
    return rows


def _label(value):
    if len(value) > LABEL_LIMIT:
        return value[:LABEL_LIMIT] + '...'
    return value


def to_graph(quads):
    """
    Builds a node/link view of quads. Subjects and IRI or blank node
    objects become resource nodes; each subject and predicate pair with
    literal values gets one literal node.

    :param quads: the quads.

    :return: ``{'nodes': [...], 'links': [...]}``.
    """
    nodes = {}
    links = []
    for quad in quads:
        subject = quad['subject']['value']
        predicate = quad['predicate']['value']
        object_ = quad['object']

        if subject not in nodes:
            nodes[subject] = {
                'id': subject,
                'label': shorten_iri(subject),
                'type': 'resource'
            }

        if object_['type'] == 'literal':
            target = '%s-%s-literal' % (subject, predicate)
            if target not in nodes:
                nodes[target] = {
                    'id': target,
                    'label': _label(object_['value']),
                    'type': 'literal',
                    'value': object_['value']
                }
        else:
            target = object_['value']
            if target not in nodes:
                nodes[target] = {
                    'id': target,
                    'label': shorten_iri(target),
                    'type': 'resource'
                }

        links.append({
            'source': subject,
            'target': target,
            'label': shorten_iri(predicate)
        })

    return {'nodes': list(nodes.values()), 'links': links}
