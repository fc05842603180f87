# storefront/models.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def money(value) -> float:
    return float(value if value is not None else Decimal("0"))


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash
    name = Column(String(255))
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    cart_items = relationship("CartItem", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")

    def to_dict(self, with_created=False):
        d = {"id": self.id, "email": self.email, "name": self.name,
             "emailVerified": bool(self.email_verified)}
        if with_created:
            d["created_at"] = self.created_at.isoformat() if self.created_at else None
        return d


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    brand = Column(String(255))
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False, default=0)  # base currency (KES)
    category = Column(String(255))
    image_url = Column(String(1024))
    in_stock = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "price": money(self.price),
            "category": self.category,
            "image_url": self.image_url,
            "imageUrl": self.image_url,
            "in_stock": bool(self.in_stock),
            "inStock": bool(self.in_stock),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "product_id", "size", name="uq_cart_line"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    size = Column(String(32))
    created_at = Column(DateTime, default=utcnow)
    user = relationship("User", back_populates="cart_items")
    product = relationship("Product")


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="kes")
    customer_email = Column(String(255))
    shipping_address = Column(Text)
    shipping_city = Column(String(255))
    shipping_state = Column(String(255))
    shipping_zip = Column(String(20))
    shipping_country = Column(String(255))
    phone_number = Column(String(20))
    payment_status = Column(String(50), nullable=False, default="pending")  # pending|paid|failed
    payment_provider = Column(String(20))  # stripe|paystack
    payment_reference = Column(String(255), index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=utcnow)
    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    def to_dict(self, with_items=False):
        d = {
            "id": self.id,
            "totalAmount": money(self.total_amount),
            "currency": self.currency,
            "customerEmail": self.customer_email,
            "paymentStatus": self.payment_status,
            "paymentProvider": self.payment_provider,
            "paymentReference": self.payment_reference,
            "shipping": {
                "address": self.shipping_address,
                "city": self.shipping_city,
                "state": self.shipping_state,
                "zip": self.shipping_zip,
                "country": self.shipping_country,
                "phone": self.phone_number,
            },
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if with_items:
            d["items"] = [it.to_dict() for it in self.items]
        return d


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(10, 2), nullable=False)
    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    def to_dict(self):
        return {
            "productId": self.product_id,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price": money(self.price_at_purchase),
        }


class VerificationCode(Base):
    __tablename__ = "verification_codes"
    email = Column(String(255), primary_key=True)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False)
