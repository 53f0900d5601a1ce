from datetime import datetime, timezone
from carrental import db


class Car(db.Model):
    __tablename__ = "cars"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    brand = db.Column(db.String(80), nullable=False)
    model = db.Column(db.String(80), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)  # per day

    is_available = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def description(self) -> str:
        return f"{self.year} {self.brand} {self.model} ({self.name})"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "price": float(self.price),
        }

    def __repr__(self):
        return f"<Car {self.id}: {self.brand} {self.model} available={self.is_available}>"
