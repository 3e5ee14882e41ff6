from . import db, new_id, utcnow


class Car(db.Model):
    """A vehicle record. Always read and written through its owner."""

    __tablename__ = "cars"
    __table_args__ = (
        db.CheckConstraint("year >= 1885", name="ck_cars_year"),
        db.CheckConstraint("mpg >= 0", name="ck_cars_mpg"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    owner_id = db.Column(
        db.String(32), db.ForeignKey("users.id"), nullable=False, index=True
    )

    model = db.Column(db.String(255), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    mpg = db.Column(db.Float, nullable=False)
    notes = db.Column(db.Text, nullable=False, default="")
    fuel = db.Column(db.String(16), nullable=False, default="gasoline")
    is_electric = db.Column(db.Boolean, nullable=False, default=False)
    transmission = db.Column(db.String(16), nullable=False, default="auto")

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Car {self.year} {self.model}>"
