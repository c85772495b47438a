"""Month value type used as the partition key for bills, income and allocations."""
import re
from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date, datetime
from typing import Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from household_budget.config import MONTH_FORMAT
from household_budget.errors import ValidationError


MONTH_PATTERN = re.compile(r"^(\d{2})/(\d{4})$")


@dataclass(frozen=True, order=True)
class Month:
    """A calendar month, rendered at rest as "MM/YYYY".

    Ordering compares year first, then month.
    """

    year: int
    month: int

    def __post_init__(self):
        # The following month must also be a valid date
        if not 1 <= self.month <= 12 or not MINYEAR <= self.year < MAXYEAR:
            raise ValidationError(f"Invalid month format. Use {MONTH_FORMAT}")

    @classmethod
    def parse(cls, value: Optional[str]) -> "Month":
        """Parse a "MM/YYYY" string.

        Raises:
            ValidationError: if the string is not a zero-padded MM/YYYY month
        """
        match = MONTH_PATTERN.match(value or "")
        if not match:
            raise ValidationError(f"Invalid month format. Use {MONTH_FORMAT}")
        return cls(year=int(match.group(2)), month=int(match.group(1)))

    @classmethod
    def of(cls, day: Union[date, str]) -> "Month":
        """Month containing a date (or an ISO "YYYY-MM-DD" string)."""
        if isinstance(day, str):
            day = date.fromisoformat(day[:10])
        return cls(year=day.year, month=day.month)

    @classmethod
    def current(cls, now: Optional[datetime] = None) -> "Month":
        return cls.of((now or datetime.now()).date())

    def __str__(self) -> str:
        return f"{self.month:02d}/{self.year:04d}"

    @property
    def start(self) -> date:
        """First day of the month (inclusive)."""
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        """First day of the following month (exclusive)."""
        return self.start + relativedelta(months=1)

    def date_range(self) -> Tuple[str, str]:
        """Half-open ISO date range [start, end) for SQL comparisons."""
        return self.start.isoformat(), self.end.isoformat()

    def contains(self, day: Union[date, str]) -> bool:
        if isinstance(day, str):
            day = date.fromisoformat(day[:10])
        return self.start <= day < self.end

    def previous(self) -> "Month":
        return Month.of(self.start - relativedelta(months=1))

    def next(self) -> "Month":
        return Month.of(self.end)

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        """True once the first day of the following month has arrived."""
        now = now or datetime.now()
        return datetime(self.end.year, self.end.month, self.end.day) <= now
