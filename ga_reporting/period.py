"""
Date range value passed to historical report queries.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .exceptions import InvalidPeriod


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class Period:
    start_date: date
    end_date: date

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, 'start_date', _as_date(self.start_date))
        object.__setattr__(self, 'end_date', _as_date(self.end_date))
        for value in (self.start_date, self.end_date):
            if not isinstance(value, date):
                raise InvalidPeriod(f'Period bounds must be dates, got {value!r}')
        if self.start_date > self.end_date:
            raise InvalidPeriod(
                f'Start date {self.start_date.isoformat()} cannot be after end date {self.end_date.isoformat()}'
            )

    @classmethod
    def create(cls, start_date, end_date) -> 'Period':
        return cls(start_date, end_date)

    @classmethod
    def days(cls, number_of_days: int) -> 'Period':
        """
        Period ending today and starting number_of_days earlier.
        """
        end_date = date.today()
        return cls(end_date - timedelta(days=number_of_days), end_date)
