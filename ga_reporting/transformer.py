"""
Transformers for GA4 report rows.

Report rows arrive as lists of strings: dimension values first, then metric
values, in the order they were requested. Decoders map them positionally into
flat dicts and coerce the cells.
"""
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from .exceptions import MalformedResponse

logger = logging.getLogger(__name__)

OTHERS_LABEL = 'Others'


def to_date(value: str) -> date:
    """Parse a GA4 `date` dimension value (YYYYMMDD)."""
    return datetime.strptime(value, '%Y%m%d').date()


def to_int(value: str) -> int:
    return int(value)


def to_number(value: str):
    """Integer when the cell holds one, float otherwise (rates, durations)."""
    try:
        return int(value)
    except ValueError:
        return float(value)


class Column(NamedTuple):
    name: str
    convert: Callable[[str], Any] = str
    index: Optional[int] = None


class RowDecoder:
    """
    Maps report rows onto named, typed fields.

    Columns without an explicit index take the position after the previous
    column, so most decoders are a plain list of (name, convert) pairs. An
    explicit index lets a decoder skip cells it does not need.
    """

    def __init__(self, *columns):
        self.columns: List[Column] = []
        position = 0
        for column in columns:
            if not isinstance(column, Column):
                column = Column(*column)
            if column.index is None:
                column = column._replace(index=position)
            position = column.index + 1
            self.columns.append(column)
        self.width = max((c.index for c in self.columns), default=-1) + 1

    @classmethod
    def for_query(cls, dimensions: Sequence[str], metrics: Sequence[str]) -> 'RowDecoder':
        """
        Decoder named after the requested identifiers.
        The `date` dimension becomes a date, metrics become numbers.
        """
        columns = [Column(d, to_date if d == 'date' else str) for d in dimensions]
        columns += [Column(m, to_number) for m in metrics]
        return cls(*columns)

    def decode(self, row: Sequence[str]) -> Dict[str, Any]:
        if len(row) < self.width:
            raise MalformedResponse(
                f'Expected at least {self.width} columns, got {len(row)}: {row!r}',
                row=row,
                expected_columns=self.width,
            )
        record = {}
        for column in self.columns:
            raw = row[column.index]
            try:
                record[column.name] = column.convert(raw)
            except (TypeError, ValueError) as e:
                raise MalformedResponse(
                    f'Cannot convert column {column.index} ({column.name}) value {raw!r}: {e}',
                    row=row,
                    expected_columns=self.width,
                ) from e
        return record

    def decode_rows(self, rows: Optional[Sequence[Sequence[str]]]) -> List[Dict[str, Any]]:
        return [self.decode(row) for row in rows or []]


def summarize_top_n(
    records: Sequence[Dict[str, Any]],
    max_results: int,
    label_key: str = 'label',
    count_key: str = 'count',
    others_label: str = OTHERS_LABEL,
) -> List[Dict[str, Any]]:
    """
    Collapse the tail of a ranked list into a single "Others" entry.

    Records must already be sorted descending by count_key. When there are more
    than max_results of them the first max_results - 1 are kept as they are and
    the rest are summed into one trailing entry. Order is never changed locally.

    Args:
        records: ranked records
        max_results: maximum length of the result (0 and 1 both yield a lone "Others")
        label_key: field holding the label
        count_key: field holding the count to sum
        others_label: label of the synthetic entry

    Returns:
        New list of records
    """
    records = list(records)
    if not records or len(records) <= max_results:
        return records

    keep = max(max_results - 1, 0)
    tail = records[keep:]
    logger.debug(f"Summarizing {len(tail)} of {len(records)} records into '{others_label}'")
    summarized = records[:keep]
    summarized.append({
        label_key: others_label,
        count_key: sum(r[count_key] for r in tail),
    })
    return summarized
