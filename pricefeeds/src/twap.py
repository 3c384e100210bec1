"""Time-weighted average over a price series.

Each sample's value is weighted by how long it stayed the most recent
observation inside ``[start_time, end_time]``. The sample current at
``start_time`` is the last one at or before it; the final sample extends
flat to ``end_time``.

.. code-block:: python

    >>> series = [PriceSample(0, 10), PriceSample(50, 20)]
    >>> compute_twap(series, 0, 100)
    15
"""

from __future__ import annotations

from collections.abc import Sequence

from .models import PriceSample


def compute_twap(
    series: Sequence[PriceSample],
    start_time: int,
    end_time: int,
    default_value: int | None = None,
) -> int | None:
    """Compute the TWAP of a series over a window.

    Time before the first sample only counts when ``default_value`` is given,
    in which case that value is treated as current until the first sample.
    Samples sharing a timestamp are tolerated; the last one wins.

    :param series: Samples sorted non-decreasing by timestamp.
    :param start_time: Window start (inclusive).
    :param end_time: Window end (inclusive).
    :param default_value: Value assumed before the first sample, if any.
    :returns: Floor of the weighted average, or None if no value was current
        at any point in the window.
    :raises ValueError: If the window ends before it starts.
    """
    if end_time < start_time:
        raise ValueError(f"TWAP window ends ({end_time}) before it starts ({start_time})")

    current = default_value
    for sample in series:
        if sample.timestamp > start_time:
            break
        current = sample.value

    cursor = start_time
    weighted_sum = 0
    covered = 0
    for sample in series:
        if sample.timestamp <= start_time:
            continue
        if sample.timestamp > end_time:
            break
        if current is not None:
            elapsed = sample.timestamp - cursor
            weighted_sum += current * elapsed
            covered += elapsed
        current = sample.value
        cursor = sample.timestamp

    if current is not None:
        elapsed = end_time - cursor
        weighted_sum += current * elapsed
        covered += elapsed

    if covered == 0:
        # Zero-length window, or every sample lands exactly on end_time.
        return current
    return weighted_sum // covered
