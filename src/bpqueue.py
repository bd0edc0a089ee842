# coding=utf-8
from bisect import insort
from itertools import count


class BoundedPriorityQueue(object):
    """
    Priority queue that keeps at most max_size of the lowest-priority values.

    Whenever an enqueue pushes the size past max_size, the entry with the highest
    priority is ejected, which may be the entry that was just enqueued. Among entries
    of equal priority the most recently enqueued one is ejected first, and iteration
    and dequeueing return them in the order they were enqueued.

    Entries live in a sorted list, so enqueue and dequeue_min shift up to max_size entries;
    the queue is meant for small capacities such as a k-NN candidate set.
    """
    __slots__ = ('entries', 'max_size', 'sequence')

    def __init__(self, max_size):
        if max_size < 1:
            raise ValueError(f'max_size must be at least 1, got {max_size}')
        # (priority, sequence, value) kept in ascending order; sequence is unique so values are never compared
        self.entries = []
        self.max_size = max_size
        self.sequence = count()

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        """Yields (priority, value) pairs from best to worst without consuming them."""
        for priority, _, value in self.entries:
            yield priority, value

    def enqueue(self, value, priority):
        insort(self.entries, (priority, next(self.sequence), value))
        if len(self.entries) > self.max_size:
            self.entries.pop()

    def dequeue_min(self):
        """Remove and return the value with the smallest priority."""
        if not self.entries:
            raise IndexError('dequeue from an empty bounded priority queue')
        return self.entries.pop(0)[2]

    def best(self):
        return self.entries[0][0] if self.entries else float('inf')

    def worst(self):
        return self.entries[-1][0] if self.entries else float('inf')

    def __repr__(self):
        return f'BoundedPriorityQueue({self.max_size}, {list(self)!r})'
