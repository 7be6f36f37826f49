"""
URDNA2015 RDF dataset canonicalization.

Blank nodes are relabeled ``_:c14n0``, ``_:c14n1``, ... in an order that
depends only on the structure of the dataset, so isomorphic datasets
serialize to identical N-Quads.

.. module:: ldstudio.canon
  :synopsis: RDF dataset canonicalization
"""

import hashlib
import itertools

from ldstudio.identifier_issuer import IdentifierIssuer
from ldstudio.nquads import serialize_nquad

# quad components that may hold blank nodes, with their hash position tag
POSITIONS = (('subject', 's'), ('object', 'o'), ('graph', 'g'))


def canonicalize(quads):
    """
    Canonicalizes a list of quads.

    :param quads: the quads to canonicalize.

    :return: the canonical N-Quads string.
    """
    return URDNA2015().main(quads)


def _blank_nodes(quad):
    for key, position in POSITIONS:
        component = quad.get(key)
        if component is not None and component['type'] == 'blank node':
            yield key, position, component['value']


class URDNA2015(object):
    """
    URDNA2015 implements the URDNA2015 RDF Dataset Normalization Algorithm.
    """

    def __init__(self):
        self.blank_node_info = {}
        self.canonical_issuer = IdentifierIssuer('_:c14n')
        self.quads = []

    def main(self, quads):
        """
        Canonicalizes the given quads; the input is left untouched.

        :return: the sorted canonical N-Quads string.
        """
        for quad in quads:
            self.quads.append(quad)
            for _, _, id_ in _blank_nodes(quad):
                quad_list = self.blank_node_info.setdefault(
                    id_, {'quads': []})['quads']
                if not quad_list or quad_list[-1] is not quad:
                    quad_list.append(quad)

        # issue identifiers for blank nodes with a unique first degree hash,
        # repeating until no more can be issued that way
        non_normalized = set(self.blank_node_info)
        hash_to_blank_nodes = {}
        simple = True
        while simple:
            simple = False
            hash_to_blank_nodes = {}
            for id_ in non_normalized:
                hash_to_blank_nodes.setdefault(
                    self.hash_first_degree_quads(id_), []).append(id_)

            for hash_, id_list in sorted(hash_to_blank_nodes.items()):
                if len(id_list) > 1:
                    continue
                self.canonical_issuer.get_id(id_list[0])
                non_normalized.remove(id_list[0])
                del hash_to_blank_nodes[hash_]
                simple = True

        # break the remaining ties with N-degree hashes
        for _, id_list in sorted(hash_to_blank_nodes.items()):
            hash_path_list = []
            for id_ in sorted(id_list):
                if self.canonical_issuer.has_id(id_):
                    continue
                issuer = IdentifierIssuer('_:b')
                issuer.get_id(id_)
                hash_path_list.append(self.hash_n_degree_quads(id_, issuer))

            for result in sorted(hash_path_list, key=lambda r: r['hash']):
                for existing in result['issuer'].order:
                    self.canonical_issuer.get_id(existing)

        normalized = []
        for quad in self.quads:
            relabeled = dict(quad)
            for key, _, id_ in _blank_nodes(quad):
                relabeled[key] = {
                    'type': 'blank node',
                    'value': self.canonical_issuer.get_id(id_)
                }
            normalized.append(serialize_nquad(relabeled))

        # equal quads collapse to one line
        return ''.join(sorted(set(normalized)))

    def hash_first_degree_quads(self, id_):
        """
        Hashes the quads mentioning a blank node with that node written
        ``_:a`` and every other blank node ``_:z``.
        """
        info = self.blank_node_info[id_]
        if 'hash' in info:
            return info['hash']

        nquads = []
        for quad in info['quads']:
            masked = dict(quad)
            for key, _, other in _blank_nodes(quad):
                masked[key] = {
                    'type': 'blank node',
                    'value': '_:a' if other == id_ else '_:z'
                }
            nquads.append(serialize_nquad(masked))
        nquads.sort()

        info['hash'] = self.hash_nquads(nquads)
        return info['hash']

    def hash_related_blank_node(self, related, quad, issuer, position):
        if self.canonical_issuer.has_id(related):
            id_ = self.canonical_issuer.get_id(related)
        elif issuer.has_id(related):
            id_ = issuer.get_id(related)
        else:
            id_ = self.hash_first_degree_quads(related)

        md = self.create_hash()
        md.update(position.encode('utf8'))
        if position != 'g':
            md.update(('<' + quad['predicate']['value'] + '>').encode('utf8'))
        md.update(id_.encode('utf8'))
        return md.hexdigest()

    def hash_n_degree_quads(self, id_, issuer):
        """
        Hashes a blank node by the paths to its related blank nodes,
        choosing the permutation of equally-hashed neighbours that yields
        the lexicographically least path.

        :param id_: the blank node identifier.
        :param issuer: the temporary issuer of the current path.

        :return: ``{'hash': ..., 'issuer': ...}`` with the issuer that
          labeled the chosen path.
        """
        hash_to_related = self.create_hash_to_related(id_, issuer)
        md = self.create_hash()

        for hash_, blank_nodes in sorted(hash_to_related.items()):
            md.update(hash_.encode('utf8'))
            chosen_path = ''
            chosen_issuer = None

            for permutation in itertools.permutations(sorted(blank_nodes)):
                issuer_copy = issuer.clone()
                path = ''
                recursion_list = []
                skip = False

                for related in permutation:
                    if self.canonical_issuer.has_id(related):
                        path += self.canonical_issuer.get_id(related)
                    else:
                        if not issuer_copy.has_id(related):
                            recursion_list.append(related)
                        path += issuer_copy.get_id(related)
                    if _worse(path, chosen_path):
                        skip = True
                        break
                if skip:
                    continue

                for related in recursion_list:
                    result = self.hash_n_degree_quads(related, issuer_copy)
                    path += issuer_copy.get_id(related)
                    path += '<' + result['hash'] + '>'
                    issuer_copy = result['issuer']
                    if _worse(path, chosen_path):
                        skip = True
                        break
                if skip:
                    continue

                if not chosen_path or path < chosen_path:
                    chosen_path = path
                    chosen_issuer = issuer_copy

            md.update(chosen_path.encode('utf8'))
            issuer = chosen_issuer

        return {'hash': md.hexdigest(), 'issuer': issuer}

    def create_hash_to_related(self, id_, issuer):
        hash_to_related = {}
        for quad in self.blank_node_info[id_]['quads']:
            for _, position, related in _blank_nodes(quad):
                if related == id_:
                    continue
                hash_ = self.hash_related_blank_node(
                    related, quad, issuer, position)
                hash_to_related.setdefault(hash_, []).append(related)
        return hash_to_related

    def create_hash(self):
        return hashlib.sha256()

    def hash_nquads(self, nquads):
        md = self.create_hash()
        for nquad in nquads:
            md.update(nquad.encode('utf8'))
        return md.hexdigest()


def _worse(path, chosen_path):
    return (
        len(chosen_path) != 0 and len(path) >= len(chosen_path) and
        path > chosen_path)
