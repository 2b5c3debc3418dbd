"""Result sink: one CSV row per simulated step per replicate.

Columns, in this exact order: mean_b, mean_lmax, time, replicate_id.
Downstream analysis depends on the order; do not reorder RESULT_FIELDS.
"""

from __future__ import annotations

import csv
import dataclasses
from pathlib import Path
from typing import Iterable, List, Union

import pandas as pd

from gla_evo.types import RESULT_FIELDS, ResultRecord


class CsvResultSink:
    """Append ResultRecords to a CSV file.

    Usable as a context manager and as a plain callable sink:

        with CsvResultSink("out.csv") as sink:
            run_replicate(..., sink=sink)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.n_written = 0
        self._fh = None
        self._writer = None

    def open(self) -> 'CsvResultSink':
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, 'w', newline='')
        self._writer = csv.writer(self._fh)
        self._writer.writerow(RESULT_FIELDS)
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._writer = None

    def __enter__(self) -> 'CsvResultSink':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, record: ResultRecord) -> None:
        if self._writer is None:
            raise RuntimeError(f"sink for {self.path} is not open")
        self._writer.writerow([
            repr(float(record.mean_b)),
            repr(float(record.mean_lmax)),
            repr(float(record.time)),
            int(record.replicate_id),
        ])
        self.n_written += 1

    def write_all(self, records: Iterable[ResultRecord]) -> None:
        for record in records:
            self.write(record)

    __call__ = write


def read_results(path: Union[str, Path]) -> List[ResultRecord]:
    """Load records written by CsvResultSink.

    Raises:
        ValueError: If the header does not match RESULT_FIELDS.
    """
    with open(path, newline='') as f:
        reader = csv.reader(f)
        header = tuple(next(reader, ()))
        if header != RESULT_FIELDS:
            raise ValueError(
                f"{path}: expected columns {RESULT_FIELDS}, got {header}"
            )
        return [
            ResultRecord(
                mean_b=float(row[0]),
                mean_lmax=float(row[1]),
                time=float(row[2]),
                replicate_id=int(row[3]),
            )
            for row in reader if row
        ]


def records_frame(records: Iterable[ResultRecord]) -> pd.DataFrame:
    """Records as a DataFrame with RESULT_FIELDS columns."""
    return pd.DataFrame(
        [dataclasses.astuple(r) for r in records],
        columns=list(RESULT_FIELDS),
    )


def load_results_frame(path: Union[str, Path]) -> pd.DataFrame:
    """Load a result CSV for analysis, one row per step per replicate.

    Raises:
        ValueError: If the columns do not match RESULT_FIELDS.
    """
    df = pd.read_csv(path)
    if tuple(df.columns) != RESULT_FIELDS:
        raise ValueError(
            f"{path}: expected columns {RESULT_FIELDS}, got {tuple(df.columns)}"
        )
    return df
