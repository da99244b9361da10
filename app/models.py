import uuid
import enum
from datetime import datetime, timedelta, timezone
from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    JSON,
    Enum,
    ForeignKey,
    Index,
    Table,
    Uuid,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from app.config import CART_EXPIRY_DAYS, DEFAULT_CURRENCY
from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cart_expiry() -> datetime:
    return utcnow() + timedelta(days=CART_EXPIRY_DAYS)


# =========================
# ENUMS
# =========================

class OrderStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"


class AddressType(str, enum.Enum):
    shipping = "shipping"
    billing = "billing"
    both = "both"


class CartStatus(str, enum.Enum):
    active = "active"
    converted = "converted"


class PaymentMethodCode(str, enum.Enum):
    cash = "cash"
    bank_transfer = "bank_transfer"
    check = "check"
    money_order = "money_order"
    other = "other"


class UserRole(str, enum.Enum):
    customer = "customer"
    admin = "admin"
    manager = "manager"
    support = "support"
    moderator = "moderator"


# =========================
# ASSOCIATION TABLES
# =========================

product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", Uuid, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", Uuid, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

product_listing_option_groups = Table(
    "product_listing_option_groups",
    Base.metadata,
    Column("product_listing_id", Uuid, ForeignKey("product_listings.id", ondelete="CASCADE"), primary_key=True),
    Column("option_group_id", Uuid, ForeignKey("option_groups.id", ondelete="CASCADE"), primary_key=True),
)

variant_option_values = Table(
    "variant_option_values",
    Base.metadata,
    Column("variant_id", Uuid, ForeignKey("product_listing_variants.id", ondelete="CASCADE"), primary_key=True),
    Column("option_value_id", Uuid, ForeignKey("option_values.id", ondelete="CASCADE"), primary_key=True),
)


# =========================
# USER
# =========================

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    email = Column(String, nullable=False, unique=True, index=True)
    hashed_password = Column(String, nullable=False)

    full_name = Column(String)
    phone = Column(String)

    role = Column(String, default=UserRole.customer.value, nullable=False)
    role_assigned_at = Column(DateTime(timezone=True))
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    addresses = relationship("Address", back_populates="user")
    orders = relationship("Order", back_populates="user")
    carts = relationship("Cart", back_populates="user", cascade="all, delete-orphan")
    activities = relationship("UserActivity", back_populates="user", cascade="all, delete-orphan")
    wishlist = relationship("Wishlist", back_populates="user")
    privacy_setting = relationship("PrivacySetting", back_populates="user", uselist=False)
    preference = relationship("UserPreference", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value


# =========================
# ADDRESS
# =========================

class Address(Base):
    __tablename__ = "addresses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # owner is either a user or a guest session, never both
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = Column(String, nullable=True, index=True)

    type = Column(String, nullable=False, default=AddressType.shipping.value)
    is_default = Column(Boolean, nullable=False, default=False)

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    company = Column(String(255))
    address1 = Column(String(255), nullable=False)
    address2 = Column(String(255))
    city = Column(String(255), nullable=False)
    state = Column(String(255), nullable=False)
    postal_code = Column(String(20), nullable=False)
    country = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="addresses")

    __table_args__ = (
        CheckConstraint(
            "user_id IS NULL OR session_id IS NULL",
            name="ck_addresses_single_owner",
        ),
    )


Index("idx_addresses_is_default", Address.is_default)
Index(
    "uq_addresses_user_type_default",
    Address.user_id,
    Address.type,
    unique=True,
    postgresql_where=Address.is_default.is_(True),
    sqlite_where=Address.is_default.is_(True),
)
Index(
    "uq_addresses_session_type_default",
    Address.session_id,
    Address.type,
    unique=True,
    postgresql_where=Address.is_default.is_(True),
    sqlite_where=Address.is_default.is_(True),
)


# =========================
# CATALOGUE
# =========================

class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    sku = Column(String, unique=True, index=True)
    description = Column(Text)

    price = Column(Integer, nullable=False, default=0)  # cents
    inventory = Column(Integer, nullable=False, default=0)
    weight = Column(Float, default=0.5)  # kg

    is_active = Column(Boolean, default=True)
    status = Column(String, default="published", nullable=False)  # draft/published/inactive

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    categories = relationship("Category", secondary=product_categories, back_populates="products")
    listings = relationship("ProductListing", back_populates="product", cascade="all, delete-orphan")


Index("idx_products_status", Product.status)


class ProductListing(Base):
    __tablename__ = "product_listings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text)
    type = Column(String, nullable=False, default="single")  # single/variant

    base_price = Column(Integer, nullable=False)
    discount_price = Column(Integer)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    product = relationship("Product", back_populates="listings")
    option_groups = relationship(
        "OptionGroup",
        secondary=product_listing_option_groups,
        back_populates="product_listings",
    )
    variants = relationship("ProductListingVariant", back_populates="product_listing", cascade="all, delete-orphan")


class OptionGroup(Base):
    __tablename__ = "option_groups"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    type = Column(String, default="select")  # select/color/size/radio
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    option_values = relationship("OptionValue", back_populates="option_group", order_by="OptionValue.sort_order")
    product_listings = relationship(
        "ProductListing",
        secondary=product_listing_option_groups,
        back_populates="option_groups",
    )


class OptionValue(Base):
    __tablename__ = "option_values"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    option_group_id = Column(Uuid(as_uuid=True), ForeignKey("option_groups.id", ondelete="RESTRICT"), nullable=False, index=True)

    value = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    sort_order = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    option_group = relationship("OptionGroup", back_populates="option_values")
    variants = relationship(
        "ProductListingVariant",
        secondary=variant_option_values,
        back_populates="option_values",
    )


class ProductListingVariant(Base):
    __tablename__ = "product_listing_variants"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_listing_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("product_listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sku = Column(String, nullable=False, unique=True, index=True)
    base_price = Column(Integer, nullable=False)
    discount_price = Column(Integer)
    inventory = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    product_listing = relationship("ProductListing", back_populates="variants")
    option_values = relationship(
        "OptionValue",
        secondary=variant_option_values,
        back_populates="variants",
    )


# =========================
# CATEGORY
# =========================

class Category(Base):
    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String, nullable=False, index=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent")
    products = relationship("Product", secondary=product_categories, back_populates="categories")


# =========================
# CART
# =========================

class Cart(Base):
    __tablename__ = "carts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = Column(String, nullable=True, index=True)

    status = Column(String, nullable=False, default=CartStatus.active.value)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)
    expires_at = Column(DateTime(timezone=True), default=cart_expiry)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="carts")
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    __table_args__ = (
        CheckConstraint(
            "user_id IS NULL OR session_id IS NULL",
            name="ck_carts_single_owner",
        ),
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    cart_id = Column(Uuid(as_uuid=True), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    product_listing_id = Column(Uuid(as_uuid=True), ForeignKey("product_listings.id", ondelete="CASCADE"), nullable=False)
    variant_id = Column(Uuid(as_uuid=True), ForeignKey("product_listing_variants.id", ondelete="SET NULL"), nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Integer, nullable=False)  # unit price snapshot, cents
    total = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    product_listing = relationship("ProductListing")
    variant = relationship("ProductListingVariant")


# =========================
# ORDER
# =========================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_number = Column(String, nullable=False, unique=True, index=True)

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    session_id = Column(String, nullable=True, index=True)

    status = Column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.pending,
        nullable=False,
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.pending,
        nullable=False,
    )

    subtotal = Column(Integer, nullable=False, default=0)
    tax = Column(Integer, nullable=False, default=0)
    shipping = Column(Integer, nullable=False, default=0)
    discount = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)

    shipping_address = Column(JSON)
    customer_notes = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payments = relationship(
        "Payment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Payment.created_at",
    )


Index("idx_orders_status", Order.status)
Index("idx_orders_created_at", Order.created_at)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_listing_id = Column(Uuid(as_uuid=True), ForeignKey("product_listings.id", ondelete="SET NULL"), nullable=True)
    variant_id = Column(Uuid(as_uuid=True), ForeignKey("product_listing_variants.id", ondelete="SET NULL"), nullable=True)

    name = Column(String, nullable=False)  # snapshot
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    total = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="items")


# =========================
# PAYMENT
# =========================

class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name = Column(String(255), nullable=False)
    code = Column(String, nullable=False, unique=True, index=True)
    description = Column(String(1000))
    instructions = Column(String(2000))
    payment_type = Column(String, nullable=False, default="manual")  # manual/automated
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method_id = Column(Uuid(as_uuid=True), ForeignKey("payment_methods.id", ondelete="SET NULL"), nullable=True)

    amount = Column(Integer, nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.pending,
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    order = relationship("Order", back_populates="payments")
    payment_method = relationship("PaymentMethod")


# =========================
# PRIVACY & PREFERENCES
# =========================

class PrivacySetting(Base):
    __tablename__ = "privacy_settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    profile_visibility = Column(String, nullable=False, default="private")
    show_email = Column(Boolean, nullable=False, default=False)
    show_phone = Column(Boolean, nullable=False, default=False)
    show_location = Column(Boolean, nullable=False, default=False)

    data_sharing = Column(Boolean, nullable=False, default=False)
    analytics_consent = Column(Boolean, nullable=False, default=True)
    marketing_consent = Column(Boolean, nullable=False, default=False)
    third_party_sharing = Column(Boolean, nullable=False, default=False)

    gdpr_consent = Column(Boolean, nullable=False, default=False)
    consent_version = Column(String, nullable=False, default="1.0")
    consent_source = Column(String, nullable=False, default="registration")
    data_retention_consent = Column(Boolean, nullable=False, default=False)
    data_processing_consent = Column(Boolean, nullable=False, default=True)
    cookie_consent = Column(String, nullable=False, default="necessary")

    right_to_be_forgotten_requested = Column(Boolean, nullable=False, default=False)
    data_export_requested = Column(Boolean, nullable=False, default=False)

    last_consent_update = Column(DateTime(timezone=True))
    ip_address_at_consent = Column(String)
    user_agent_at_consent = Column(String)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="privacy_setting")


class UserPreference(Base):
    __tablename__ = "user_preferences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    language = Column(String, default="en")
    currency = Column(String(3), default=DEFAULT_CURRENCY)
    theme = Column(String, default="light")
    email_notifications = Column(Boolean, default=True)
    sms_notifications = Column(Boolean, default=False)
    marketing_emails = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    user = relationship("User", back_populates="preference")


class UserActivity(Base):
    __tablename__ = "user_activities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    activity_type = Column(String, nullable=False, index=True)
    description = Column(Text)
    details = Column("metadata", JSON)
    ip_address = Column(String)
    user_agent = Column(String)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="activities")


# =========================
# WISHLIST
# =========================

class Wishlist(Base):
    __tablename__ = "wishlists"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User", back_populates="wishlist")
    product = relationship("Product")


Index("idx_wishlists_user_product", Wishlist.user_id, Wishlist.product_id, unique=True)
