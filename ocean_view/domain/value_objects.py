"""Domain Value Objects"""
from pydantic import BaseModel, validator
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from ocean_view.domain.exceptions import ValidationError

CENT = Decimal("0.01")


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    """Normalize an amount to a two-digit fixed-point Decimal"""
    try:
        amount = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid monetary amount: {value}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value}")
    return amount


class DateRange(BaseModel):
    """Half-open stay interval [check_in, check_out)"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def overlaps(self, other: "DateRange") -> bool:
        # A check-out on day X does not collide with a check-in on day X
        return self.check_in < other.check_out and other.check_in < self.check_out

    def contains(self, day: date) -> bool:
        """Check whether a guest is in the room on the given night"""
        return self.check_in <= day < self.check_out

    class Config:
        frozen = True
