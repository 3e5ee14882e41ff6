"""
Car input validation shared by the HTML form and the JSON API.

Both surfaces hand their raw payload (a form MultiDict or a JSON object) to
parse_car_fields(), which either returns a clean CarFields or raises
CarValidationError with a message that can be shown to the user as-is.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

MIN_YEAR = 1885
MAX_YEAR = 9999

REQUIRED_MESSAGE = "Model, year, and MPG are required fields."


class FuelType(str, Enum):
    GASOLINE = "gasoline"
    DIESEL = "diesel"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


class Transmission(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class CarValidationError(ValueError):
    """Raised when a car payload violates a field constraint."""


def _one_of(enum_cls) -> str:
    return ", ".join(member.value for member in enum_cls)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _choices_required(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("require_choices"))


def _as_number(value: Any) -> float:
    """Accept ints, floats and numeric strings; anything else is a TypeError."""
    if isinstance(value, bool):
        raise TypeError(value)
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            # ints beyond the float range
            return math.copysign(math.inf, value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise TypeError(value) from None
    raise TypeError(value)


class CarFields(BaseModel):
    """The mutable attributes of a car after validation and defaulting."""

    model_config = ConfigDict(frozen=True)

    model: str
    year: int
    mpg: float
    notes: str = ""
    fuel: FuelType = FuelType.GASOLINE
    is_electric: bool = False
    transmission: Transmission = Transmission.AUTO

    @field_validator("model", mode="before")
    @classmethod
    def model_is_text(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("Model must be text.")
        if not v.strip():
            raise ValueError(REQUIRED_MESSAGE)
        return v.strip()

    @field_validator("year", mode="before")
    @classmethod
    def year_in_range(cls, v: Any) -> int:
        try:
            number = _as_number(v)
        except TypeError:
            raise ValueError("Year must be a whole number.") from None
        if math.isnan(number) or (math.isfinite(number) and not number.is_integer()):
            raise ValueError("Year must be a whole number.")
        if number < MIN_YEAR:
            raise ValueError(f"Year must be {MIN_YEAR} or later.")
        if number > MAX_YEAR:
            raise ValueError(f"Year must be {MAX_YEAR} or earlier.")
        return int(number)

    @field_validator("mpg", mode="before")
    @classmethod
    def mpg_non_negative(cls, v: Any) -> float:
        try:
            number = _as_number(v)
        except TypeError:
            raise ValueError("MPG must be a number.") from None
        if not math.isfinite(number):
            raise ValueError("MPG must be a number.")
        if number < 0:
            raise ValueError("MPG must be zero or greater.")
        return number

    @field_validator("notes", mode="before")
    @classmethod
    def trim_notes(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("fuel", mode="before")
    @classmethod
    def fuel_in_whitelist(cls, v: Any, info: ValidationInfo) -> FuelType:
        if _is_blank(v) and not _choices_required(info):
            return FuelType.GASOLINE
        try:
            return FuelType(v.strip() if isinstance(v, str) else v)
        except ValueError:
            raise ValueError(f"Fuel must be one of: {_one_of(FuelType)}.") from None

    @field_validator("transmission", mode="before")
    @classmethod
    def transmission_in_whitelist(cls, v: Any, info: ValidationInfo) -> Transmission:
        if _is_blank(v) and not _choices_required(info):
            return Transmission.AUTO
        try:
            return Transmission(v.strip() if isinstance(v, str) else v)
        except ValueError:
            raise ValueError(
                f"Transmission must be one of: {_one_of(Transmission)}."
            ) from None

    @field_validator("is_electric", mode="before")
    @classmethod
    def checkbox_to_bool(cls, v: Any) -> bool:
        # HTML checkboxes post "on"; JSON clients send true
        if v is True:
            return True
        return isinstance(v, str) and v.strip().lower() in ("on", "true")


def _first_message(exc: ValidationError) -> str:
    error = exc.errors()[0]
    cause = error.get("ctx", {}).get("error")
    return str(cause) if cause is not None else error["msg"]


def parse_car_fields(data: Mapping[str, Any], require_choices: bool = False) -> CarFields:
    """
    Validate a raw car payload.

    Keys follow the wire names: model, year, mpg, notes, fuel, isElectric,
    transmission. Blank fuel and transmission fall back to their defaults
    unless require_choices is set. Raises CarValidationError on the first
    violated constraint.
    """
    if any(_is_blank(data.get(key)) for key in ("model", "year", "mpg")):
        raise CarValidationError(REQUIRED_MESSAGE)

    try:
        return CarFields.model_validate(
            {
                "model": data.get("model"),
                "year": data.get("year"),
                "mpg": data.get("mpg"),
                "notes": data.get("notes"),
                "fuel": data.get("fuel"),
                "is_electric": data.get("isElectric"),
                "transmission": data.get("transmission"),
            },
            context={"require_choices": require_choices},
        )
    except ValidationError as exc:
        raise CarValidationError(_first_message(exc)) from None
