# coding=utf-8


class Point(object):
    """Fixed-dimension coordinate vector.

    The number of coordinates is set on creation and never changes; the
    coordinates themselves may be overwritten in place."""
    __slots__ = ('coords',)

    def __init__(self, coords):
        """
        :param coords: iterable of real coordinates, copied into the point
        """
        self.coords = list(coords)

    @classmethod
    def zeros(cls, n):
        return cls([0.0] * n)

    def __len__(self):
        return len(self.coords)

    def _check_index(self, index):
        if not 0 <= index < len(self.coords):
            raise IndexError(f'coordinate index {index} out of range for {len(self.coords)}-d point')

    def __getitem__(self, index):
        self._check_index(index)
        return self.coords[index]

    def __setitem__(self, index, value):
        self._check_index(index)
        self.coords[index] = value

    def __iter__(self):
        return iter(self.coords)

    def sq_distance(self, other):
        """
        Squared euclidean distance to another point of the same dimension.

        The root is never taken; ordering by squared distance is the same as ordering by distance.
        """
        if len(other) != len(self.coords):
            raise ValueError(f'dimension mismatch: {len(self.coords)}-d point against {len(other)}-d point')
        return sum((a - b)**2 for a, b in zip(self.coords, other))

    def __eq__(self, other):
        if isinstance(other, Point):
            return self.coords == other.coords
        try:
            return len(other) == len(self.coords) and all(a == b for a, b in zip(self.coords, other))
        except TypeError:
            return NotImplemented

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    # mutable, so not hashable
    __hash__ = None

    def copy(self):
        return Point(self.coords)

    __copy__ = copy

    def __repr__(self):
        return f'Point({self.coords!r})'
