class IdentifierIssuer(object):
    """
    Issues blank node identifiers of the form '<prefix><counter>' and
    remembers which identifier was issued for each existing one.
    """

    def __init__(self, prefix):
        """
        :param prefix: the prefix to use, e.g. '_:b' or '_:c14n'.
        """
        self.prefix = prefix
        self.counter = 0
        self.existing = {}
        self.order = []

    def get_id(self, old=None):
        """
        Gets the identifier issued for the given old identifier, issuing a
        fresh one if none was issued yet. Without an old identifier a fresh
        identifier is always returned.

        :param [old]: the old identifier.

        :return: the issued identifier.
        """
        if old is not None and old in self.existing:
            return self.existing[old]

        id_ = '%s%d' % (self.prefix, self.counter)
        self.counter += 1

        if old is not None:
            self.existing[old] = id_
            self.order.append(old)

        return id_

    def has_id(self, old):
        """
        Returns True if an identifier was already issued for old.
        """
        return old in self.existing

    def clone(self):
        """
        Returns an independent copy of this issuer, used to try out an
        issuance order without committing to it.
        """
        issuer = IdentifierIssuer(self.prefix)
        issuer.counter = self.counter
        issuer.existing = dict(self.existing)
        issuer.order = list(self.order)
        return issuer

    def __len__(self):
        return len(self.order)

    def __repr__(self):
        return 'IdentifierIssuer(%r, issued=%d)' % (self.prefix, self.counter)
