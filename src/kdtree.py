# coding=utf-8
import random
from collections import Counter

from bpqueue import BoundedPriorityQueue
from point import Point


class PointNotFound(KeyError):
    """Raised by strict lookups of a point that is not in the tree."""


def select(items, lo, hi, nth, dim):
    """
    Partially order (point, value) items[lo:hi] along dimension dim.

    Afterwards items[nth] holds the item it would hold if the range were sorted, every item
    before it is no greater and every item after it is no smaller. Items equal to it along dim
    end up adjacent to it. Expected linear time.
    """
    while hi - lo > 1:
        pivot = items[random.randrange(lo, hi)][0].coords[dim]
        # three-way partition: [lo, lt) < pivot, [lt, i) == pivot, [gt, hi) > pivot
        lt, i, gt = lo, lo, hi
        while i < gt:
            v = items[i][0].coords[dim]
            if v < pivot:
                items[lt], items[i] = items[i], items[lt]
                lt += 1
                i += 1
            elif v > pivot:
                gt -= 1
                items[gt], items[i] = items[i], items[gt]
            else:
                i += 1
        if nth < lt:
            hi = lt
        elif nth >= gt:
            lo = gt
        else:
            return


def split_at_median(items, lo, hi, dim):
    """
    Choose the pivot for items[lo:hi] along dimension dim.

    Returns the index of the pivot item; everything before it is strictly less along dim and
    everything after it is greater or equal.
    """
    mid = lo + (hi - lo) // 2
    select(items, lo, hi, mid, dim)
    median = items[mid][0].coords[dim]
    # move left past ties so they all fall on the right side
    while mid > lo and items[mid - 1][0].coords[dim] == median:
        mid -= 1
    return mid


class KdTree(object):
    """Mutable k-d tree mapping points to values.

    Bulk construction yields a balanced tree. Insertions are never rebalanced, so a tree grown
    mostly by insertion can unavoidably become unbalanced. Points that tie with a node along its
    splitting dimension are always stored in its right subtree."""
    __slots__ = ('head', 'k', 'count')

    def __init__(self, k, items=()):
        """
        :param k: dimensionality
        :param items: iterable of (point, value) to bulk-build the tree from. Points with
            identical coordinates are not merged.
        """
        if k < 1:
            raise ValueError(f'dimensionality must be at least 1, got {k}')
        self.k = k
        self.head = None
        self.count = 0
        items = [(self._as_point(point, copy=True), value) for point, value in items]
        if items:
            self.head = self._build(items)
            self.count = len(items)

    @property
    def dimension(self):
        return self.k

    def __len__(self):
        return self.count

    def _as_point(self, point, copy=False):
        if copy or not isinstance(point, Point):
            point = Point(point)
        if len(point) != self.k:
            raise ValueError(f'expected a {self.k}-d point, got {len(point)} coordinates')
        return point

    def _build(self, items):
        head = None
        # (lo, hi, level, parent, attach as left child)
        stack = [(0, len(items), 0, None, False)]
        while stack:
            lo, hi, level, parent, left = stack.pop()
            if lo >= hi:
                continue
            mid = split_at_median(items, lo, hi, level % self.k)
            point, value = items[mid]
            node = KdNode(point, value, level)
            if parent is None:
                head = node
            elif left:
                parent.left = node
            else:
                parent.right = node
            stack.append((lo, mid, level + 1, node, True))
            stack.append((mid + 1, hi, level + 1, node, False))
        return head

    def _find_node(self, point):
        """
        Descend towards point.

        Returns the node holding point if there is one, otherwise the node below which point
        would be inserted. Returns None only if the tree is empty.
        """
        current = self.head
        while current is not None:
            if current.point == point:
                return current
            dim = current.level % self.k
            if point.coords[dim] < current.point.coords[dim]:
                child = current.left
            else:
                child = current.right
            if child is None:
                return current
            current = child
        return None

    def __contains__(self, point):
        point = self._as_point(point)
        node = self._find_node(point)
        return node is not None and node.point == point

    def _insert(self, point, value, overwrite=True):
        """Returns the node holding point after the insert."""
        target = self._find_node(point)
        if target is None:
            node = self.head = KdNode(point.copy(), value, 0)
        elif target.point == point:
            if overwrite:
                target.val = value
            return target
        else:
            node = KdNode(point.copy(), value, target.level + 1)
            dim = target.level % self.k
            if point.coords[dim] < target.point.coords[dim]:
                target.left = node
            else:
                target.right = node
        self.count += 1
        return node

    def insert(self, point, value=None):
        """Associate value with point, overwriting the value already stored for it, if any."""
        self._insert(self._as_point(point), value)

    def __setitem__(self, point, value):
        self.insert(point, value)

    def setdefault(self, point, default=None):
        """
        Return the value stored for point, first inserting point with default if it is absent.

        The stored object itself is returned, so a mutable value may be updated in place.
        """
        return self._insert(self._as_point(point), default, overwrite=False).val

    def get(self, point):
        """Return the value stored for point, raising PointNotFound if it is absent."""
        point = self._as_point(point)
        node = self._find_node(point)
        if node is None or node.point != point:
            raise PointNotFound(point)
        return node.val

    __getitem__ = get

    def _search(self, point, neighbors):
        """Branch-and-bound search for the nodes nearest to point, queued by squared distance."""
        queue = BoundedPriorityQueue(neighbors)
        value = point.coords
        # (node, squared distance to the parent's splitting plane, or None for the near side)
        stack = [(self.head, None)] if self.head is not None else []
        while stack:
            node, plane_sqd = stack.pop()
            # the far side only matters if the plane is closer than the worst kept candidate
            if plane_sqd is not None and len(queue) >= neighbors and plane_sqd >= queue.worst():
                continue
            queue.enqueue(node, sum((a - b)**2 for a, b in zip(value, node.point.coords)))
            dim = node.level % self.k
            diff = value[dim] - node.point.coords[dim]
            if diff < 0:
                near, far = node.left, node.right
            else:
                near, far = node.right, node.left
            # push the far side first so the whole near side is searched before it is checked
            if far is not None:
                stack.append((far, diff * diff))
            if near is not None:
                stack.append((near, None))
        return queue

    def nearest(self, point, neighbors=1):
        """
        Return the given number of items nearest to the given point.

        Returns a list of (point, value, squared_distance) tuples, nearest first. If the tree holds
        fewer items than that, all of them are returned.
        """
        if neighbors < 1:
            raise ValueError(f'neighbors must be at least 1, got {neighbors}')
        point = self._as_point(point)
        if not self:
            return []
        return [(node.point.copy(), node.val, sqd) for sqd, node in self._search(point, neighbors)]

    def knn_value(self, point, neighbors, default=None):
        """
        Classify point by majority vote among the values of its nearest neighbors.

        Among equally frequent values, the one with the nearest neighbor wins. Returns default if
        the tree is empty.
        """
        if neighbors < 1:
            raise ValueError(f'neighbors must be at least 1, got {neighbors}')
        point = self._as_point(point)
        if not self:
            return default
        queue = self._search(point, neighbors)
        votes = Counter()
        while queue:
            votes[queue.dequeue_min().val] += 1
        # most_common keeps first-counted order among equal counts
        return votes.most_common(1)[0][0]

    def items(self):
        """Yield (point, value) pairs in pre-order."""
        stack = [self.head] if self.head is not None else []
        while stack:
            node = stack.pop()
            yield node.point.copy(), node.val
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)

    def height(self):
        """Number of levels in the tree, 0 if it is empty."""
        height = 0
        stack = [self.head] if self.head is not None else []
        while stack:
            node = stack.pop()
            height = max(height, node.level + 1)
            stack.extend(child for child in (node.left, node.right) if child is not None)
        return height

    def copy(self):
        """Structural clone of the tree. The stored values themselves are shared, not copied."""
        clone = KdTree(self.k)
        clone.count = self.count
        if self.head is None:
            return clone
        clone.head = self.head.detached_copy()
        stack = [(self.head, clone.head)]
        while stack:
            source, target = stack.pop()
            if source.left is not None:
                target.left = source.left.detached_copy()
                stack.append((source.left, target.left))
            if source.right is not None:
                target.right = source.right.detached_copy()
                stack.append((source.right, target.right))
        return clone

    __copy__ = copy

    def __repr__(self):
        return f'KdTree({self.k}, <{self.count} items>)'


class KdNode(object):
    __slots__ = ('point', 'val', 'level', 'left', 'right')

    def __init__(self, point, val, level):
        self.point = point
        self.val = val
        self.level = level  # depth of this node, 0 at the head; splits on level % k
        self.left = None
        self.right = None

    def detached_copy(self):
        """Copy of this node without its children."""
        return KdNode(self.point.copy(), self.val, self.level)
