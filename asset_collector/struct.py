class Struct(dict):
    """
    A dict that can be accessed like an object, with a predictable repr so it reads well in tests and logs.

    .. code-block:: python

        >>> s = Struct(kind='css', url='/static/bundles/abc.css')
        >>> s
        Struct(kind='css', url='/static/bundles/abc.css')
        >>> s.kind
        'css'
    """

    __slots__ = ()

    def __repr__(self):
        pieces = (
            "{}={}".format(key, (repr(val) if val is not self else "{}(...)".format(type(self).__name__)))
            for (key, val) in sorted(self.items())
        )
        return "{}({})".format(type(self).__name__, ", ".join(pieces))

    __str__ = __repr__

    def __getattribute__(self, item):
        try:
            return dict.__getitem__(self, item)
        except KeyError:
            pass
        return object.__getattribute__(self, item)

    __setattr__ = dict.__setitem__

    def __delattr__(self, item):
        try:
            del self[item]
        except KeyError:
            object.__delattr__(self, item)


class Frozen:
    """
    Mixin making a Struct read-only and hashable. Sources, bundles and configs are all frozen once created.
    """

    __slots__ = ()

    def __hash__(self):
        hash_key = '_hash'
        try:
            _hash = dict.__getattribute__(self, hash_key)
        except AttributeError:
            _hash = hash(tuple((k, _hashable(self[k])) for k in sorted(self.keys())))
            dict.__setattr__(self, hash_key, _hash)
        return _hash

    def _read_only(self, *_, **__):
        raise TypeError(f"'{type(self).__name__}' object attributes are read-only")

    __setitem__ = _read_only
    __setattr__ = _read_only
    __delitem__ = _read_only
    __delattr__ = _read_only
    setdefault = _read_only
    update = _read_only
    clear = _read_only
    pop = _read_only
    popitem = _read_only

    def __reduce__(self):
        return type(self), (), dict(self)

    def __setstate__(self, state):
        dict.update(self, state)

    def __copy__(self):
        return self


class FrozenStruct(Frozen, Struct):
    __slots__ = ('_hash',)

    def replace(self, **kwargs):
        """Return a copy with the given keys replaced."""
        return type(self)(dict(self, **kwargs))


def _hashable(value):
    if isinstance(value, dict):
        return tuple((k, _hashable(v)) for k, v in sorted(value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(x) for x in value)
    return value
