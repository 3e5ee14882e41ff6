"""
Car persistence and the one service both the HTML and JSON routes call.

Every query here filters on the car id AND the requesting owner. A car that
belongs to someone else is indistinguishable from a car that does not exist.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import db
from ..models.car import Car
from .gates import RequestContext
from .validation import CarFields, parse_car_fields

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """The store failed; the message is safe to show, the cause is logged."""


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error while trying to %s", action)
        raise PersistenceError(f"Failed to {action}.") from exc


def _apply(car: Car, fields: CarFields) -> None:
    car.model = fields.model
    car.year = fields.year
    car.mpg = fields.mpg
    car.notes = fields.notes
    car.fuel = fields.fuel.value
    car.is_electric = fields.is_electric
    car.transmission = fields.transmission.value


class CarRepository:
    """Owner-scoped reads and writes on the cars table."""

    def list_for_owner(self, owner_id: str) -> List[Car]:
        with _store_errors("list cars"):
            return (
                Car.query.filter_by(owner_id=owner_id)
                .order_by(Car.created_at.desc())
                .all()
            )

    def get_owned(self, car_id: str, owner_id: str) -> Optional[Car]:
        with _store_errors("load car"):
            return Car.query.filter_by(id=car_id, owner_id=owner_id).first()

    def insert(self, owner_id: str, fields: CarFields) -> Car:
        car = Car(owner_id=owner_id)
        _apply(car, fields)
        with _store_errors("add car"):
            db.session.add(car)
            db.session.commit()
        return car

    def replace(self, car: Car, fields: CarFields) -> Car:
        with _store_errors("update car"):
            _apply(car, fields)
            db.session.commit()
        return car

    def delete_owned(self, car_id: str, owner_id: str) -> bool:
        with _store_errors("delete car"):
            deleted = Car.query.filter_by(id=car_id, owner_id=owner_id).delete()
            db.session.commit()
        return deleted > 0


class CarService:
    """Validation plus persistence, independent of how the result is encoded."""

    def __init__(self, repository: CarRepository):
        self.repository = repository

    def list_for(self, ctx: RequestContext) -> List[Car]:
        return self.repository.list_for_owner(ctx.user_id)

    def add(
        self, ctx: RequestContext, data: Mapping[str, Any], require_choices: bool = False
    ) -> Car:
        fields = parse_car_fields(data, require_choices=require_choices)
        car = self.repository.insert(ctx.user_id, fields)
        logger.info("User %s added car %s", ctx.username, car.id)
        return car

    def update(self, ctx: RequestContext, car_id: str, data: Mapping[str, Any]) -> bool:
        """
        Replace every mutable field. False (and no change) if nothing matched.

        The payload is only validated once the caller is known to own the car,
        so a foreign id looks exactly like an unknown one.
        """
        car = self.repository.get_owned(car_id, ctx.user_id)
        if car is None:
            return False
        fields = parse_car_fields(data)
        self.repository.replace(car, fields)
        return True

    def delete(self, ctx: RequestContext, car_id: str) -> bool:
        return self.repository.delete_owned(car_id, ctx.user_id)
