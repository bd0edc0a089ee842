# coding=utf-8
import gzip
import math
import os
import sys
import time
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import numpy as np
from PIL import Image
from tqdm import tqdm

from kdtree import KdTree
from point import Point


MNIST_SIDE = 28

# IDX type code -> big-endian numpy dtype
idx_types = {
    0x08: '>u1',
    0x09: '>i1',
    0x0B: '>i2',
    0x0C: '>i4',
    0x0D: '>f4',
    0x0E: '>f8',
}


class IdxFormatError(ValueError):
    pass


def log(*s):
    print(*s)


def read_idx(path):
    """
    Read an IDX file into a numpy array.

    The header is two zero bytes, a type code and a dimension count, followed by one big-endian
    uint32 size per dimension. Files ending in .gz are decompressed on the fly.
    """
    opener = gzip.open if str(path).endswith('.gz') else open
    with opener(path, 'rb') as f:
        data = f.read()

    if len(data) < 4 or data[0] != 0 or data[1] != 0:
        raise IdxFormatError(f'{path}: not an IDX file')
    type_code, ndims = data[2], data[3]
    if type_code not in idx_types:
        raise IdxFormatError(f'{path}: unknown IDX type code 0x{type_code:02x}')
    header_size = 4 + 4 * ndims
    if len(data) < header_size:
        raise IdxFormatError(f'{path}: truncated header')

    shape = tuple(int(n) for n in np.frombuffer(data, dtype='>u4', count=ndims, offset=4))
    dtype = np.dtype(idx_types[type_code])
    count = math.prod(shape)
    if len(data) - header_size < count * dtype.itemsize:
        raise IdxFormatError(f'{path}: expected {count} values of shape {shape}, file is truncated')
    return np.frombuffer(data, dtype=dtype, count=count, offset=header_size).reshape(shape)


def load_mnist(images_path, labels_path, limit=None):
    """
    Load an image/label file pair as a list of (Point, label) pairs.

    Each image is flattened row by row, with pixel values scaled to [0, 1].
    """
    images = read_idx(images_path)
    labels = read_idx(labels_path)
    if images.ndim < 2 or labels.ndim != 1:
        raise IdxFormatError(f'expected images and a label vector, got shapes {images.shape} and {labels.shape}')
    if len(images) != len(labels):
        raise IdxFormatError(f'{len(images)} images but {len(labels)} labels')
    if limit is not None:
        images, labels = images[:limit], labels[:limit]

    values = images.reshape(len(images), -1).astype(np.float64) / 255
    return [(Point(row), label) for row, label in zip(values.tolist(), labels.tolist())]


class Evaluation(namedtuple('Evaluation', 'correct total elapsed misclassified')):
    """
    Outcome of classifying a labelled sample set.

    misclassified holds (sample index, predicted label) for every wrong prediction.
    """
    __slots__ = ()

    @property
    def accuracy(self):
        return self.correct / self.total if self.total else 0.0


def evaluate(tree, samples, k=1, workers=1):
    """
    Classify every (point, label) sample against a fully built tree.

    With more than one worker the queries are fanned out over a thread pool. The tree must not be
    modified while this runs. Predictions are collected here, so workers share nothing but the tree.
    """
    def classify(sample):
        point, _ = sample
        return tree.knn_value(point, k)

    start = time.perf_counter()
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            predictions = list(tqdm(pool.map(classify, samples), total=len(samples)))
    else:
        predictions = [classify(sample) for sample in tqdm(samples)]
    elapsed = time.perf_counter() - start

    misclassified = [
        (i, predicted)
        for i, ((_, label), predicted) in enumerate(zip(samples, predictions))
        if predicted != label
    ]
    return Evaluation(len(samples) - len(misclassified), len(samples), elapsed, misclassified)


def save_misclassified(samples, evaluation, path, columns=20):
    """Write the misclassified samples as a grid of grayscale digits to a PNG file."""
    wrong = evaluation.misclassified
    if not wrong:
        return False
    dimension = len(samples[wrong[0][0]][0])
    side = int(round(dimension ** 0.5))
    if side * side != dimension:
        raise ValueError(f'{dimension}-d samples are not square images')

    columns = min(columns, len(wrong))
    rows = -(-len(wrong) // columns)
    sheet = np.zeros((rows * side, columns * side), dtype=np.uint8)
    for slot, (index, _) in enumerate(wrong):
        row, col = divmod(slot, columns)
        pixels = np.array(samples[index][0].coords, dtype=np.float64).reshape(side, side)
        sheet[row * side:(row + 1) * side, col * side:(col + 1) * side] = np.clip(np.rint(pixels * 255), 0, 255).astype(np.uint8)

    Image.fromarray(sheet).save(path, 'PNG')
    return True


def find_data_file(data_dir, name):
    """Path of the named data file, preferring the uncompressed version."""
    path = os.path.join(data_dir, name)
    if not os.path.exists(path) and os.path.exists(path + '.gz'):
        return path + '.gz'
    return path


def main(data_dir='mnist_data', k='1', workers='1', limit=None, output=None):
    k = int(k)
    workers = int(workers)
    limit = int(limit) if limit else None

    log('loading data from disk')
    train = load_mnist(
        find_data_file(data_dir, 'train-images-idx3-ubyte'),
        find_data_file(data_dir, 'train-labels-idx1-ubyte'),
        limit,
    )
    test = load_mnist(
        find_data_file(data_dir, 't10k-images-idx3-ubyte'),
        find_data_file(data_dir, 't10k-labels-idx1-ubyte'),
        limit,
    )
    log(f'training set size: {len(train)}')
    log(f'test set size: {len(test)}')

    log('building kd-tree')
    dimension = len(train[0][0]) if train else MNIST_SIDE * MNIST_SIDE
    tree = KdTree(dimension, train)
    log(f'kd-tree holds {len(tree)} points in {tree.height()} levels')

    log(f'evaluating kNN on the test set (k = {k}) with {workers} worker(s)')
    evaluation = evaluate(tree, test, k, workers)
    log(f'test set accuracy: {evaluation.accuracy * 100:.2f}%')
    log(f'time elapsed: {evaluation.elapsed:.2f}s')

    if output:
        log(f'writing {len(evaluation.misclassified)} misclassified digits to {output}')
        save_misclassified(test, evaluation, output)
    log('done!')
    return evaluation


if __name__ == '__main__':
    main(*sys.argv[1:])
