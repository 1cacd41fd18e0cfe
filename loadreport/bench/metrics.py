from typing import List, Sequence

from loadreport.bench.types import Bucket, LatencyDistribution

PERCENTILES = (10, 25, 50, 75, 90, 95, 99)
BUCKET_COUNT = 10


def latency_distribution(lats: Sequence[float]) -> List[LatencyDistribution]:
    """
    Nearest-rank percentiles of an ascending sorted sequence, in one pass.

    Index i has rank i * 100 // n; each target takes the first sample whose
    rank reaches it. Targets left at 0 (never reached, or a real 0.0 sample)
    are dropped from the result.
    """
    n = len(lats)
    data = [0.0] * len(PERCENTILES)
    j = 0
    i = 0
    while i < n and j < len(PERCENTILES):
        if i * 100 // n >= PERCENTILES[j]:
            data[j] = lats[i]
            j += 1
        i += 1

    return [
        LatencyDistribution(percentage=p, latency=v)
        for p, v in zip(PERCENTILES, data)
        if v > 0
    ]


def histogram(lats: Sequence[float], fastest: float, slowest: float) -> List[Bucket]:
    """
    Fixed-width histogram of an ascending sorted sequence.

    BUCKET_COUNT + 1 marks from fastest to slowest; the last mark is slowest
    itself. A sample goes to the first mark it does not exceed; anything
    left once the last bucket is reached is counted there.
    """
    n = len(lats)
    if n == 0:
        return []
    width = (slowest - fastest) / BUCKET_COUNT
    marks = [fastest + width * i for i in range(BUCKET_COUNT)]
    marks.append(slowest)
    counts = [0] * len(marks)

    last = len(marks) - 1
    bi = 0
    i = 0
    while i < n:
        if lats[i] <= marks[bi]:
            counts[bi] += 1
            i += 1
        elif bi < last:
            bi += 1
        else:
            counts[bi] += 1
            i += 1

    return [
        Bucket(mark=mark, count=count, frequency=count / n)
        for mark, count in zip(marks, counts)
    ]
