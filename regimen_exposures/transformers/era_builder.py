"""
Exposure Era Builder
====================

Collapses each person's ingredient exposures into continuous exposure eras,
ignoring which ingredient each exposure is for. Two exposures belong to the
same era when the gap between one's end and the next one's start is at most
``gap_days`` (30 by default).

Algorithm (one chronological sweep per person):
1. Emit a start event for every exposure and an end event at end + gap_days
2. Sort events by date, starts before ends on the same day
3. Keep a running count of open (padded) exposures; an end event that
   brings the count to zero closes the era
4. Era start = earliest start in the group; era end = closing padded end
   minus the pad, i.e. the latest true end date in the group
"""

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from ..config.regimen_config import ERA_COLUMNS, ERA_CONFIG
from ..utils.interval_utils import (
    START_EVENT,
    END_EVENT,
    interval_events,
    unpad_dates,
    assign_dense_ids,
)

logger = logging.getLogger(__name__)


class EraConstructionError(RuntimeError):
    """Raised when an exposure or a built era ends before it starts."""


def empty_eras() -> pd.DataFrame:
    """Era table with no rows and the expected dtypes."""
    return pd.DataFrame({
        'era_id': pd.Series(dtype='int64'),
        'person_id': pd.Series(dtype='int64'),
        'era_start_date': pd.Series(dtype='datetime64[ns]'),
        'era_end_date': pd.Series(dtype='datetime64[ns]'),
    })[ERA_COLUMNS]


# =============================================================================
# SWEEP
# =============================================================================

def collapse_intervals(exposures: pd.DataFrame, gap_days: int) -> pd.DataFrame:
    """
    Collapse intervals into eras without assigning era ids.

    Args:
        exposures: DataFrame with person_id, start_date, end_date
        gap_days: Maximum gap that still merges two exposures

    Returns:
        DataFrame with person_id, era_start_date, era_end_date
    """
    if len(exposures) == 0:
        return empty_eras().drop(columns='era_id')

    events = interval_events(exposures, gap_days)

    # Open exposure count after each event, per person
    events['open'] = events.groupby('person_id')['delta'].cumsum()
    is_close = (events['event_type'] == END_EVENT) & (events['open'] == 0)

    # Eras closed before this event; the closing event belongs to the era it closes
    events['era_seq'] = is_close.astype(np.int64).groupby(events['person_id']).cumsum() - is_close

    starts = events[events['event_type'] == START_EVENT]
    closes = events[is_close]

    era_starts = starts.groupby(['person_id', 'era_seq'])['event_date'].min()
    era_ends = closes.set_index(['person_id', 'era_seq'])['event_date']

    eras = pd.DataFrame({
        'era_start_date': era_starts,
        'era_end_date': unpad_dates(era_ends, gap_days),
    }).reset_index()

    return eras[['person_id', 'era_start_date', 'era_end_date']]


def _collapse_partition(args) -> pd.DataFrame:
    """Worker entry point: collapse one chunk of persons."""
    exposures, gap_days = args
    return collapse_intervals(exposures, gap_days)


def _collapse_parallel(exposures: pd.DataFrame, gap_days: int, n_workers: int) -> pd.DataFrame:
    """Partition persons into chunks and collapse each in a worker process."""
    persons = exposures['person_id'].unique()
    chunk_size = max(1, int(np.ceil(len(persons) / n_workers)))

    person_chunks = [persons[i:i + chunk_size] for i in range(0, len(persons), chunk_size)]
    chunks = [
        (exposures[exposures['person_id'].isin(chunk)], gap_days)
        for chunk in person_chunks
    ]

    results: List[pd.DataFrame] = []
    with ProcessPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(_collapse_partition, chunk) for chunk in chunks]
        for future in tqdm(as_completed(futures), total=len(futures),
                           desc="  Building eras", unit="chunk"):
            results.append(future.result())

    return pd.concat(results, ignore_index=True)


# =============================================================================
# MAIN BUILDER
# =============================================================================

def build_eras(
    exposures: pd.DataFrame,
    gap_days: Optional[int] = None,
    n_workers: Optional[int] = None
) -> pd.DataFrame:
    """
    Build exposure eras.

    Args:
        exposures: Ingredient exposure records (person_id, ingredient_id,
            start_date, end_date); order does not matter
        gap_days: Gap tolerance in days (default from ERA_CONFIG)
        n_workers: Worker processes; >1 partitions persons across a process
            pool. The result does not depend on this value.

    Returns:
        DataFrame with era_id, person_id, era_start_date, era_end_date.
        era_id is dense from 1 in (person_id, era_start_date) order.

    Raises:
        EraConstructionError: if an exposure or a built era ends before it starts
    """
    if gap_days is None:
        gap_days = ERA_CONFIG.gap_days
    if n_workers is None:
        n_workers = ERA_CONFIG.n_workers

    missing = [c for c in ('person_id', 'start_date', 'end_date') if c not in exposures.columns]
    if missing:
        raise KeyError(f"Exposure table is missing columns: {missing}")

    intervals = exposures[['person_id', 'start_date', 'end_date']]
    if len(intervals) == 0:
        return empty_eras()

    # A padded end before its own start would close an era that never opened
    n_bad = int((intervals['end_date'] < intervals['start_date']).sum())
    if n_bad:
        raise EraConstructionError(f"{n_bad} exposures end before they start")

    n_persons = intervals['person_id'].nunique()
    if n_workers > 1 and n_persons > 1:
        logger.info(f"Building eras for {n_persons:,} persons with {n_workers} workers")
        eras = _collapse_parallel(intervals, gap_days, min(n_workers, n_persons))
    else:
        eras = collapse_intervals(intervals, gap_days)

    inverted = eras['era_end_date'] < eras['era_start_date']
    if inverted.any():
        raise EraConstructionError(
            f"{int(inverted.sum())} eras end before they start"
        )

    eras = assign_dense_ids(eras, ['person_id', 'era_start_date'], 'era_id')

    logger.info(
        f"Built {len(eras):,} eras from {len(intervals):,} exposures "
        f"({n_persons:,} persons, gap {gap_days} days)"
    )
    return eras[ERA_COLUMNS]
