from datetime import date, datetime

from flask_login import UserMixin

from database import db
from utils.statuses import FabricCategory, FabricPattern, OrderStatus

MISSING_CLIENT_NAME = "Cliente no encontrado"


class User(db.Model, UserMixin):
    __tablename__ = "user"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(10), nullable=False, default="user", index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def get_id(self):
        return str(self.id)


class Client(db.Model):
    __tablename__ = "client"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    email = db.Column(db.String(120), index=True)
    phone = db.Column(db.String(40))
    address = db.Column(db.String(300))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    fabrics = db.relationship("Fabric", backref="client", lazy="dynamic")
    orders = db.relationship("CuttingOrder", backref="client", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<Client {self.name}>"


class Fabric(db.Model):
    __tablename__ = "fabric"
    id = db.Column(db.Integer, primary_key=True)
    article = db.Column(db.String(100), nullable=False, index=True)
    color = db.Column(db.String(100), nullable=False, default="")
    description = db.Column(db.Text, nullable=False, default="")
    meters = db.Column(db.Float, nullable=False, default=0)
    shipping_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    category = db.Column(
        db.String(10), nullable=False, default=FabricCategory.FABRIC.value, index=True
    )
    pattern = db.Column(
        db.String(10), nullable=False, default=FabricPattern.PLAIN.value
    )
    client_id = db.Column(
        db.Integer, db.ForeignKey("client.id"), nullable=True, index=True
    )
    image_path = db.Column(db.String(255))
    # NULL = active; a timestamp puts the fabric in the recycle bin
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def label(self) -> str:
        return f"{self.article} - {self.color}"

    @property
    def client_name(self) -> str | None:
        return self.client.name if self.client else None

    def to_dict(self):
        return {
            "id": self.id,
            "article": self.article,
            "color": self.color,
            "description": self.description,
            "meters": self.meters,
            "shipping_date": (
                self.shipping_date.isoformat() if self.shipping_date else None
            ),
            "category": self.category,
            "pattern": self.pattern,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "image_path": self.image_path,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def __repr__(self):
        return f"<Fabric {self.article} {self.color}>"


class CuttingOrder(db.Model):
    __tablename__ = "cutting_order"
    id = db.Column(db.Integer, primary_key=True)
    lot_number = db.Column(db.String(50), nullable=False, index=True)
    client_id = db.Column(
        db.Integer, db.ForeignKey("client.id"), nullable=False, index=True
    )
    created_on = db.Column(db.Date, nullable=False, default=date.today)
    status = db.Column(
        db.String(20), nullable=False, default=OrderStatus.PENDING.value, index=True
    )
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    lines = db.relationship(
        "CuttingOrderLine",
        backref="order",
        cascade="all, delete-orphan",
        order_by="CuttingOrderLine.id",
    )
    garments = db.relationship(
        "Garment",
        backref="order",
        cascade="all, delete-orphan",
        order_by="Garment.id",
    )

    @property
    def client_name(self) -> str:
        return self.client.name if self.client else MISSING_CLIENT_NAME

    @property
    def total_meters(self) -> float:
        return round(sum(line.meters or 0 for line in self.lines), 2)

    @property
    def lines_with_remarks(self) -> int:
        return len([line for line in self.lines if line.remarks])

    @property
    def total_pieces(self) -> int:
        return sum(g.total_quantity for g in self.garments)

    def to_dict(self, with_children: bool = False):
        data = {
            "id": self.id,
            "lot_number": self.lot_number,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "created_on": self.created_on.isoformat() if self.created_on else None,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_children:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["garments"] = [g.to_dict() for g in self.garments]
            data["total_meters"] = self.total_meters
            data["total_pieces"] = self.total_pieces
        return data

    def __repr__(self):
        return f"<CuttingOrder {self.lot_number}>"


class CuttingOrderLine(db.Model):
    __tablename__ = "cutting_order_line"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("cutting_order.id"), nullable=False, index=True
    )
    fabric_id = db.Column(
        db.Integer, db.ForeignKey("fabric.id"), nullable=False, index=True
    )
    meters = db.Column(db.Float, nullable=False)
    remarks = db.Column(db.Text)

    fabric = db.relationship("Fabric", backref=db.backref("order_lines", lazy="dynamic"))

    __table_args__ = (db.Index("idx_order_fabric", "order_id", "fabric_id"),)

    def to_dict(self):
        fabric = self.fabric
        return {
            "id": self.id,
            "fabric_id": self.fabric_id,
            "article": fabric.article if fabric else None,
            "color": fabric.color if fabric else None,
            "category": fabric.category if fabric else None,
            "description": fabric.description if fabric else None,
            "meters": self.meters,
            "remarks": self.remarks,
        }


class Garment(db.Model):
    __tablename__ = "garment"
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(
        db.Integer, db.ForeignKey("cutting_order.id"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)

    sizes = db.relationship(
        "GarmentSize",
        backref="garment",
        cascade="all, delete-orphan",
        order_by="GarmentSize.id",
    )

    @property
    def total_quantity(self) -> int:
        return sum(s.quantity or 0 for s in self.sizes)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "sizes": [{"size": s.size, "quantity": s.quantity} for s in self.sizes],
            "total_quantity": self.total_quantity,
        }


class GarmentSize(db.Model):
    __tablename__ = "garment_size"
    id = db.Column(db.Integer, primary_key=True)
    garment_id = db.Column(
        db.Integer, db.ForeignKey("garment.id"), nullable=False, index=True
    )
    size = db.Column(db.String(20), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
