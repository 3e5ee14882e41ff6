from datetime import datetime
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, ConfigDict, Field


class CarView(BaseModel):
    """JSON projection of a Car, using the camelCase wire names."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    owner_id: str = Field(serialization_alias="owner")
    model: str
    year: int
    mpg: float
    notes: str
    fuel: str
    is_electric: bool = Field(serialization_alias="isElectric")
    transmission: str
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")


class UserView(BaseModel):
    """JSON projection of a User. The password hash is never part of it."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    username: str
    created_at: datetime = Field(serialization_alias="createdAt")


def car_to_json(car) -> Dict[str, Any]:
    return CarView.model_validate(car).model_dump(mode="json", by_alias=True)


def cars_to_json(cars: Iterable) -> List[Dict[str, Any]]:
    return [car_to_json(car) for car in cars]


def user_to_json(user) -> Dict[str, Any]:
    return UserView.model_validate(user).model_dump(mode="json", by_alias=True)
