"""
Pytest fixtures for the storefront API tests.

Provides a throwaway SQLite database, a test client, users with bearer
headers, and a small catalogue (a single product listing and a variant
listing with size and colour options).
"""

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'storefront.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from fastapi.testclient import TestClient

from app.database import SessionLocal, drop_database, init_database
from app.main import app as fastapi_app
from app.models import (
    OptionGroup,
    OptionValue,
    Product,
    ProductListing,
    ProductListingVariant,
    User,
    UserRole,
)
from app.security import create_token, hash_password


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh schema for each test."""
    drop_database()
    init_database()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client. Startup hooks are not run; the schema comes from db_session."""
    return TestClient(fastapi_app)


def _make_user(db_session, email, role=UserRole.customer.value):
    user = User(
        email=email,
        hashed_password=hash_password("Password123!"),
        full_name=email.split("@")[0].title(),
        role=role,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _headers(user):
    return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}


# =============================================================================
# USERS
# =============================================================================


@pytest.fixture(scope="function")
def customer(db_session):
    return _make_user(db_session, "alice@example.com")


@pytest.fixture(scope="function")
def other_customer(db_session):
    return _make_user(db_session, "bob@example.com")


@pytest.fixture(scope="function")
def admin_user(db_session):
    return _make_user(db_session, "admin@example.com", role=UserRole.admin.value)


@pytest.fixture(scope="function")
def manager_user(db_session):
    return _make_user(db_session, "manager@example.com", role=UserRole.manager.value)


@pytest.fixture(scope="function")
def customer_headers(customer):
    return _headers(customer)


@pytest.fixture(scope="function")
def other_headers(other_customer):
    return _headers(other_customer)


@pytest.fixture(scope="function")
def admin_headers(admin_user):
    return _headers(admin_user)


@pytest.fixture(scope="function")
def manager_headers(manager_user):
    return _headers(manager_user)


# =============================================================================
# CATALOGUE
# =============================================================================


@pytest.fixture(scope="function")
def product(db_session):
    """A published product with 10 units in stock."""
    product = Product(
        name="Canvas Tote",
        sku="TOTE",
        description="Heavy canvas tote bag",
        price=2000,
        inventory=10,
        weight=0.5,
        is_active=True,
        status="published",
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture(scope="function")
def listing(db_session, product):
    """A single (non-variant) listing at 20.00."""
    listing = ProductListing(
        product_id=product.id,
        title="Canvas Tote",
        type="single",
        base_price=2000,
        is_active=True,
    )
    db_session.add(listing)
    db_session.commit()
    db_session.refresh(listing)
    return listing


@pytest.fixture(scope="function")
def option_groups(db_session):
    """Size (S, M) and colour (red, blue) option groups."""
    size = OptionGroup(name="size", display_name="Size", type="size", sort_order=1)
    color = OptionGroup(name="color", display_name="Colour", type="color", sort_order=2)
    db_session.add_all([size, color])
    db_session.flush()

    values = {
        "S": OptionValue(option_group_id=size.id, value="S", display_name="Small", sort_order=1),
        "M": OptionValue(option_group_id=size.id, value="M", display_name="Medium", sort_order=2),
        "red": OptionValue(option_group_id=color.id, value="red", display_name="Red", sort_order=1),
        "blue": OptionValue(option_group_id=color.id, value="blue", display_name="Blue", sort_order=2),
    }
    db_session.add_all(values.values())
    db_session.commit()
    return {"size": size, "color": color, "values": values}


@pytest.fixture(scope="function")
def variant_listing(db_session, product, option_groups):
    """A variant listing using both option groups, with one variant (S, red)."""
    listing = ProductListing(
        product_id=product.id,
        title="Canvas Tote (sized)",
        type="variant",
        base_price=2500,
        is_active=True,
    )
    listing.option_groups = [option_groups["size"], option_groups["color"]]
    db_session.add(listing)
    db_session.flush()

    variant = ProductListingVariant(
        product_listing_id=listing.id,
        sku="TOTE-S-RED",
        base_price=2500,
        discount_price=2200,
        inventory=3,
        is_active=True,
    )
    variant.option_values = [option_groups["values"]["S"], option_groups["values"]["red"]]
    db_session.add(variant)
    db_session.commit()
    db_session.refresh(listing)
    db_session.refresh(variant)
    return {"listing": listing, "variant": variant, **option_groups}
