"""
Category tree.

Categories form a forest through ``parent_id``. Writes keep three rules:
slugs are unique (exact, case-sensitive), names are unique among siblings,
and the parent chain never loops back on itself.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models import Category, Product
from app.schemas import isoformat, str_id

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 10
MAX_ANCESTOR_WALK = 100


# =====================================================
# HELPERS
# =====================================================

def serialize_category(category: Category) -> Dict[str, Any]:
    return {
        "id": str(category.id),
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent": str_id(category.parent_id),
        "sortOrder": category.sort_order,
        "isActive": category.is_active,
        "createdAt": isoformat(category.created_at),
        "updatedAt": isoformat(category.updated_at),
    }


def _summary(category: Category) -> Dict[str, Any]:
    return {
        "id": str(category.id),
        "name": category.name,
        "slug": category.slug,
        "sortOrder": category.sort_order,
    }


def _sorted(categories):
    return sorted(categories, key=lambda c: (c.sort_order or 0, c.name))


def get_category(db: Session, category_id) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def find_by_name_and_parent(db: Session, name: str, parent_id) -> Optional[Category]:
    query = db.query(Category).filter(Category.name == name)
    if parent_id is None:
        query = query.filter(Category.parent_id.is_(None))
    else:
        query = query.filter(Category.parent_id == parent_id)
    return query.first()


def creates_cycle(db: Session, category_id, proposed_parent_id) -> bool:
    """Walk up from the proposed parent; meeting ``category_id`` means a loop."""
    current_id = proposed_parent_id
    seen = set()
    while current_id is not None and len(seen) < MAX_ANCESTOR_WALK:
        if current_id == category_id:
            return True
        if current_id in seen:
            return True
        seen.add(current_id)
        current_id = (
            db.query(Category.parent_id)
            .filter(Category.id == current_id)
            .scalar()
        )
    return False


def next_sort_order(db: Session, parent_id) -> int:
    query = db.query(func.max(Category.sort_order))
    if parent_id is None:
        query = query.filter(Category.parent_id.is_(None))
    else:
        query = query.filter(Category.parent_id == parent_id)
    current = query.scalar()
    return 0 if current is None else current + 1


def _check_slug(db: Session, slug: str, exclude_id=None) -> None:
    query = db.query(Category).filter(Category.slug == slug)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=400, detail=f"Category with slug '{slug}' already exists")


def _check_name(db: Session, name: str, parent_id, exclude_id=None) -> None:
    existing = find_by_name_and_parent(db, name, parent_id)
    if existing and existing.id != exclude_id:
        raise HTTPException(
            status_code=400,
            detail="Category name must be unique within the same parent",
        )


def _check_parent(db: Session, parent_id) -> None:
    if parent_id is not None and not db.query(Category).filter(Category.id == parent_id).first():
        raise HTTPException(status_code=400, detail="Parent category not found")


def slugify(name: str) -> str:
    slug = "".join(ch.lower() if ch.isalnum() else "-" for ch in name.strip())
    return "-".join(part for part in slug.split("-") if part)


# =====================================================
# CRUD
# =====================================================

def list_categories(db: Session, page: int = 1, page_size: int = 25, parent=None, is_active=None) -> Dict[str, Any]:
    query = db.query(Category)
    if parent == "null":
        query = query.filter(Category.parent_id.is_(None))
    elif parent is not None:
        query = query.filter(Category.parent_id == parent)
    if is_active is not None:
        query = query.filter(Category.is_active.is_(is_active))

    total = query.count()
    categories = (
        query.order_by(Category.sort_order.asc(), Category.name.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "data": [serialize_category(c) for c in categories],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def create_category(db: Session, data: Dict[str, Any]) -> Category:
    name = (data.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Category name is required")

    slug = (data.get("slug") or "").strip() or slugify(name)
    parent_id = data.get("parent_id")

    _check_slug(db, slug)
    _check_parent(db, parent_id)
    _check_name(db, name, parent_id)

    sort_order = data.get("sort_order")
    if sort_order is None:
        sort_order = next_sort_order(db, parent_id)

    category = Category(
        name=name,
        slug=slug,
        description=data.get("description"),
        parent_id=parent_id,
        sort_order=sort_order,
        is_active=data.get("is_active", True),
    )
    db.add(category)
    db.commit()
    db.refresh(category)

    logger.info("Category %s (%s) created", category.id, category.slug)
    return category


def update_category(db: Session, category_id, data: Dict[str, Any]) -> Category:
    category = get_category(db, category_id)

    name = category.name
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise HTTPException(status_code=400, detail="Category name is required")

    if "slug" in data:
        slug = (data.get("slug") or "").strip()
        if not slug:
            raise HTTPException(status_code=400, detail="Category slug cannot be empty")
        _check_slug(db, slug, exclude_id=category.id)
        category.slug = slug

    parent_id = category.parent_id
    if "parent_id" in data:
        parent_id = data["parent_id"]
        if parent_id == category.id:
            raise HTTPException(status_code=400, detail="Category cannot be its own parent")
        _check_parent(db, parent_id)
        if parent_id is not None and creates_cycle(db, category.id, parent_id):
            raise HTTPException(status_code=400, detail="Circular reference detected in category hierarchy")

    if "name" in data or "parent_id" in data:
        _check_name(db, name, parent_id, exclude_id=category.id)

    category.name = name
    category.parent_id = parent_id
    for field in ("description", "sort_order", "is_active"):
        if field in data:
            setattr(category, field, data[field])

    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id) -> None:
    category = get_category(db, category_id)

    if db.query(Category).filter(Category.parent_id == category.id).count():
        raise HTTPException(status_code=400, detail="Cannot delete category with child categories")
    if category.products:
        raise HTTPException(status_code=400, detail="Cannot delete category with assigned products")

    db.delete(category)
    db.commit()
    logger.info("Category %s deleted", category_id)


# =====================================================
# TRAVERSALS
# =====================================================

def get_tree(db: Session) -> List[Dict[str, Any]]:
    categories = db.query(Category).all()
    children: Dict[Any, List[Category]] = {}
    for category in categories:
        children.setdefault(category.parent_id, []).append(category)

    def build(parent_id, depth=0):
        nodes = []
        for category in _sorted(children.get(parent_id, [])):
            node = serialize_category(category)
            node["children"] = build(category.id, depth + 1) if depth < MAX_ANCESTOR_WALK else []
            nodes.append(node)
        return nodes

    return build(None)


def get_breadcrumbs(db: Session, category_id) -> List[Dict[str, Any]]:
    category = get_category(db, category_id)

    chain = []
    current = category
    while current is not None and len(chain) < MAX_ANCESTOR_WALK:
        chain.append(current)
        current = current.parent
    chain.reverse()

    return [
        {
            **_summary(crumb),
            "url": f"/categories/{crumb.slug}",
            "isFirst": index == 0,
            "isLast": index == len(chain) - 1,
        }
        for index, crumb in enumerate(chain)
    ]


def get_siblings(db: Session, category_id) -> List[Dict[str, Any]]:
    category = get_category(db, category_id)

    query = db.query(Category).filter(Category.is_active.is_(True), Category.id != category.id)
    if category.parent_id is None:
        query = query.filter(Category.parent_id.is_(None))
    else:
        query = query.filter(Category.parent_id == category.parent_id)

    return [_summary(c) for c in query.order_by(Category.sort_order.asc(), Category.name.asc()).all()]


def get_navigation(db: Session, max_depth: int = 3) -> List[Dict[str, Any]]:
    active = db.query(Category).filter(Category.is_active.is_(True)).all()
    children: Dict[Any, List[Category]] = {}
    for category in active:
        children.setdefault(category.parent_id, []).append(category)

    def build(parent_id, depth):
        menu = []
        for category in _sorted(children.get(parent_id, [])):
            item = {**_summary(category), "url": f"/categories/{category.slug}", "children": []}
            if depth + 1 < max_depth:
                item["children"] = build(category.id, depth + 1)
            menu.append(item)
        return menu

    return build(None, 0)


def search_categories(db: Session, term: str, limit: int = 20) -> List[Dict[str, Any]]:
    if not term or not term.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    pattern = f"%{term.strip()}%"
    categories = (
        db.query(Category)
        .filter(
            Category.is_active.is_(True),
            or_(Category.name.ilike(pattern), Category.description.ilike(pattern)),
        )
        .order_by(Category.name.asc())
        .limit(limit)
        .all()
    )

    return [
        {
            **serialize_category(c),
            "url": f"/categories/{c.slug}",
            "breadcrumbPath": f"{c.parent.name} > {c.name}" if c.parent else c.name,
        }
        for c in categories
    ]


# =====================================================
# PRODUCTS
# =====================================================

def get_stats(db: Session, category_id) -> Dict[str, Any]:
    category = get_category(db, category_id)
    products = category.products

    total_value = sum(p.price or 0 for p in products)
    child_count = db.query(Category).filter(Category.parent_id == category.id).count()

    return {
        "totalProducts": len(products),
        "activeProducts": sum(1 for p in products if p.is_active and p.status == "published"),
        "draftProducts": sum(1 for p in products if p.status == "draft"),
        "inactiveProducts": sum(1 for p in products if not p.is_active or p.status == "inactive"),
        "outOfStockProducts": sum(1 for p in products if (p.inventory or 0) == 0),
        "lowStockProducts": sum(1 for p in products if 0 < (p.inventory or 0) <= LOW_STOCK_THRESHOLD),
        "totalValue": total_value,
        "averagePrice": round(total_value / len(products), 2) if products else 0,
        "childCategories": child_count,
        "isLeafCategory": child_count == 0,
    }


def get_products(db: Session, category_id, page: int = 1, page_size: int = 25) -> Dict[str, Any]:
    category = get_category(db, category_id)

    query = (
        db.query(Product)
        .filter(Product.categories.any(Category.id == category.id))
        .order_by(Product.name.asc())
    )
    total = query.count()
    products = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "data": [
            {
                "id": str(p.id),
                "name": p.name,
                "sku": p.sku,
                "price": p.price,
                "inventory": p.inventory,
                "status": p.status,
                "isActive": p.is_active,
            }
            for p in products
        ],
        "meta": {
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "pageCount": (total + page_size - 1) // page_size,
                "total": total,
            }
        },
    }


def _load_products(db: Session, product_ids) -> List[Product]:
    if not product_ids:
        raise HTTPException(status_code=400, detail="productIds must be a non-empty array")

    products = db.query(Product).filter(Product.id.in_(product_ids)).all()
    found = {p.id for p in products}
    missing = [str(pid) for pid in product_ids if pid not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Products not found: {', '.join(missing)}")
    return products


def assign_products(db: Session, category_id, product_ids) -> Dict[str, Any]:
    category = get_category(db, category_id)
    products = _load_products(db, product_ids)

    assigned = 0
    for product in products:
        if category not in product.categories:
            product.categories.append(category)
            assigned += 1
    db.commit()

    logger.info("Assigned %s products to category %s", assigned, category.id)
    return {"assigned": assigned, "total": len(products)}


def remove_products(db: Session, category_id, product_ids) -> Dict[str, Any]:
    category = get_category(db, category_id)
    products = _load_products(db, product_ids)

    removed = 0
    for product in products:
        if category in product.categories:
            product.categories.remove(category)
            removed += 1
    db.commit()

    return {"removed": removed, "total": len(products)}


def move_products(db: Session, category_id, product_ids, target_category_id) -> Dict[str, Any]:
    if not target_category_id:
        raise HTTPException(status_code=400, detail="targetCategoryId is required")

    source = get_category(db, category_id)
    target = db.query(Category).filter(Category.id == target_category_id).first()
    if not target:
        raise HTTPException(status_code=400, detail="Target category not found")

    products = _load_products(db, product_ids)
    for product in products:
        if source in product.categories:
            product.categories.remove(source)
        if target not in product.categories:
            product.categories.append(target)
    db.commit()

    logger.info("Moved %s products from category %s to %s", len(products), source.id, target.id)
    return {"moved": len(products), "from": str(source.id), "to": str(target.id)}
