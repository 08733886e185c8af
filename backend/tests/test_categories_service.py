"""
Category tests.

Verifies:
- Names are unique without regard to case
- Parents must exist and may not form a cycle
- Only empty categories can be deleted
"""

import pytest

from managepme.extensions import db
from managepme.models import Category, Product
from managepme.services import categories_service, products_service
from managepme.services.errors import ConflictError, NotFoundError, StateTransitionError, ValidationError


@pytest.fixture
def boissons(db_session):
    return categories_service.create_category({"name": "Boissons", "description": "Chaudes et froides"})


def test_create_and_list_with_counts(boissons, product):
    cafes = categories_service.create_category({"name": "  Cafés ", "parent_id": boissons.id})
    products_service.update_product(product.id, {"category_id": cafes.id})

    assert cafes.name == "Cafés"
    assert cafes.to_dict()["parent_name"] == "Boissons"

    listed = {c["name"]: c for c in categories_service.list_categories()}
    assert list(listed) == ["Boissons", "Cafés"]
    assert listed["Boissons"]["children_count"] == 1
    assert listed["Boissons"]["product_count"] == 0
    assert listed["Cafés"]["product_count"] == 1


def test_name_is_unique_ignoring_case(boissons):
    with pytest.raises(ConflictError):
        categories_service.create_category({"name": "BOISSONS"})
    with pytest.raises(ValidationError):
        categories_service.create_category({"name": "   "})


def test_unknown_parent(db_session):
    with pytest.raises(NotFoundError):
        categories_service.create_category({"name": "Thés", "parent_id": 999})


def test_reparenting_under_a_descendant_is_refused(boissons):
    cafes = categories_service.create_category({"name": "Cafés", "parent_id": boissons.id})
    moulus = categories_service.create_category({"name": "Moulus", "parent_id": cafes.id})

    with pytest.raises(ValidationError):
        categories_service.update_category(boissons.id, {"parent_id": moulus.id})
    with pytest.raises(ValidationError):
        categories_service.update_category(boissons.id, {"parent_id": boissons.id})

    assert db.session.get(Category, boissons.id).parent_id is None


def test_rename(boissons):
    categories_service.create_category({"name": "Epicerie"})

    with pytest.raises(ConflictError):
        categories_service.update_category(boissons.id, {"name": "epicerie"})

    updated = categories_service.update_category(boissons.id, {"name": "Boissons chaudes"})
    assert updated.name == "Boissons chaudes"


def test_detail_lists_products(boissons, product, other_product):
    for p in (product, other_product):
        products_service.update_product(p.id, {"category_id": boissons.id})

    detail = categories_service.get_category(boissons.id)

    assert detail["product_count"] == 2
    assert [p["sku"] for p in detail["products"]] == ["CAF-250", "THE-100"]
    assert detail["children"] == []


def test_delete_only_when_empty(boissons, product):
    products_service.update_product(product.id, {"category_id": boissons.id})

    with pytest.raises(StateTransitionError):
        categories_service.delete_category(boissons.id)

    products_service.update_product(product.id, {"category_id": None})
    categories_service.delete_category(boissons.id)

    assert db.session.get(Category, boissons.id) is None
    assert db.session.get(Product, product.id) is not None


def test_delete_refused_with_children(boissons):
    categories_service.create_category({"name": "Cafés", "parent_id": boissons.id})

    with pytest.raises(StateTransitionError):
        categories_service.delete_category(boissons.id)


def test_missing_category(db_session):
    with pytest.raises(NotFoundError):
        categories_service.get_category(42)
    with pytest.raises(NotFoundError):
        categories_service.delete_category(42)
