"""
Interval and set helpers shared by the era builder, aggregator and matcher.
"""

from typing import Dict, FrozenSet, List

import numpy as np
import pandas as pd

START_EVENT = 0
END_EVENT = 1


def pad_dates(dates: pd.Series, days: int) -> pd.Series:
    """Shift dates forward by ``days``."""
    return dates + pd.Timedelta(days=days)


def unpad_dates(dates: pd.Series, days: int) -> pd.Series:
    """Undo pad_dates."""
    return dates - pd.Timedelta(days=days)


def interval_events(
    intervals: pd.DataFrame,
    pad_days: int,
    key: str = 'person_id',
    start_col: str = 'start_date',
    end_col: str = 'end_date'
) -> pd.DataFrame:
    """
    Turn intervals into a chronological stream of start and padded-end events.

    Each interval contributes a start event (+1) at its start and an end event
    (-1) at ``end + pad_days``. Events are ordered by key, date, then type, so
    on the same day starts come before ends: an interval starting exactly
    ``pad_days`` after another ends still joins it.

    Returns:
        DataFrame with key, event_date, event_type, delta
    """
    n = len(intervals)
    keys = intervals[key].to_numpy()

    events = pd.DataFrame({
        key: np.concatenate([keys, keys]),
        'event_date': pd.concat(
            [intervals[start_col], pad_dates(intervals[end_col], pad_days)],
            ignore_index=True
        ),
        'event_type': np.repeat(np.array([START_EVENT, END_EVENT], dtype=np.int8), n),
        'delta': np.repeat(np.array([1, -1], dtype=np.int64), n),
    })

    events = events.sort_values([key, 'event_date', 'event_type'], kind='mergesort')
    return events.reset_index(drop=True)


def assign_dense_ids(df: pd.DataFrame, order_by: List[str], column: str, start: int = 1) -> pd.DataFrame:
    """Sort by ``order_by`` and number rows densely from ``start``."""
    df = df.sort_values(order_by, kind='mergesort').reset_index(drop=True)
    df.insert(0, column, np.arange(start, start + len(df), dtype=np.int64))
    return df


def grouped_frozensets(df: pd.DataFrame, key: str, member: str) -> Dict[int, FrozenSet[int]]:
    """Map each key to the frozenset of its members."""
    return {
        int(k): frozenset(int(m) for m in group[member])
        for k, group in df.groupby(key)
    }
