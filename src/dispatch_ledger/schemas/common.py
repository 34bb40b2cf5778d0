"""Shared schema types."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import BaseModel, PlainSerializer

from ..models.domain import Coordinate

# Amounts stay Decimal in Python and are rendered as JSON numbers. Ledger amounts
# are capped at numeric(14, 2), which a double represents without loss.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# Request amounts are parsed by the ledger so malformed values surface as validation errors.
AmountInput = Optional[Union[Decimal, str]]


class LocationModel(BaseModel):
  latitude: float
  longitude: float

  @classmethod
  def from_domain(cls, coordinate: Coordinate | None) -> "LocationModel | None":
    if coordinate is None:
      return None
    return cls(latitude=coordinate.latitude, longitude=coordinate.longitude)
