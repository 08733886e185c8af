# Overview: Client and supplier records (the parties sales and purchases point at).

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Client, Supplier
from managepme.validation import LIKE_ESCAPE, ModelValidationPolicy, contains_pattern, validate_payload
from .concurrency import run_with_retry
from .errors import NotFoundError, ValidationError
from .pagination import paginate


CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"type", "first_name", "last_name", "company_name", "email", "phone", "address", "city"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_name", "email", "phone", "address", "is_active"},
    required_on_create={"name"},
)

CLIENT_TYPES = {"INDIVIDUAL", "COMPANY"}


def create_client(data: dict) -> Client:
    patch = validate_payload(model=Client, payload=data, policy=CLIENT_POLICY, partial=False)
    if not any(patch.get(f) for f in ("first_name", "last_name", "company_name")):
        raise ValidationError("A client needs a name or a company name")
    if "type" in patch:
        patch["type"] = patch["type"].upper()
        if patch["type"] not in CLIENT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(sorted(CLIENT_TYPES))}")

    def _op() -> Client:
        client = Client(**patch)
        db.session.add(client)
        db.session.commit()
        return client

    return run_with_retry(_op)


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found")
    return client


def list_clients(search: str | None = None, page: int | None = None, limit: int | None = None) -> dict:
    query = db.session.query(Client)
    if search and search.strip():
        term = contains_pattern(search.strip())
        query = query.filter(or_(
            Client.first_name.ilike(term, escape=LIKE_ESCAPE),
            Client.last_name.ilike(term, escape=LIKE_ESCAPE),
            Client.company_name.ilike(term, escape=LIKE_ESCAPE),
            Client.email.ilike(term, escape=LIKE_ESCAPE),
            Client.phone.ilike(term, escape=LIKE_ESCAPE),
        ))
    query = query.order_by(Client.last_name.asc(), Client.first_name.asc(), Client.id.asc())
    return paginate(query, page, limit, lambda c: c.to_dict())


def create_supplier(data: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=data, policy=SUPPLIER_POLICY, partial=False)

    def _op() -> Supplier:
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def list_suppliers(include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()
