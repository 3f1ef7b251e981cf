import threading


def quote(val):
    return "'" + str(val) + "'" if val is not None else "None"


class StringerMixin:
    """
    Renders the class name and the public attributes in key sorted order.
    Private attributes (leading underscore) are left out.
    """

    def __repr__(self):
        return type(self).__name__ + self._sorted_items_string()

    def _sorted_items_string(self):
        return "{" + ", ".join(["'" + str(key) + "': " + quote(val)
                                for key, val in sorted(self.__dict__.items())
                                if not key.startswith('_')]) + "}"


class CommonEqualityMixin(object):
    """  a deep equals comparison for value objects. """
    local = threading.local()

    def __eq__(self, other):
        if not hasattr(CommonEqualityMixin.local, 'seen'):
            CommonEqualityMixin.local.seen = []
        seen = CommonEqualityMixin.local.seen
        return hasattr(other, '__dict__') and isinstance(other, self.__class__) \
            and self._dicts_equal(other, seen)

    def _dicts_equal(self, other, seen):
        p = (id(self), id(other))
        if p in seen:
            raise ValueError("recursive comparison of %s and %s" % (type(self).__name__, type(other).__name__))

        try:
            seen.append(p)
            result = self._comparable(self) == self._comparable(other)
        finally:
            seen.pop()
        return result

    @staticmethod
    def _comparable(obj):
        """ the attributes that take part in the comparison. Locks and other private state are skipped. """
        return {k: v for k, v in obj.__dict__.items() if not k.startswith('_')}

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = None
