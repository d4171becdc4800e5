"""Admin-maintained reference data: partners, branches, accounts, catalog."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from service_ticketing import statuses
from service_ticketing.auth import create_user
from service_ticketing.errors import DuplicateEntryError, ErrorCodes, NotFoundError, ValidationFailed
from service_ticketing.models import Branch, BranchUser, Category, Partner, PartnerCategory, Service, User, utcnow
from service_ticketing.schemas import (
    BranchInput,
    CategoryInput,
    PartnerCategoryInput,
    PartnerInput,
    PartnerUpdateInput,
    PartnerUserInput,
    ServiceInput,
    StaffUserInput,
)

log = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

_CLEARABLE_PARTNER_FIELDS = frozenset({"contact_email", "contact_phone"})


def list_partners(session: Session, *, status: str | None = None) -> List[Partner]:
    statement = select(Partner).order_by(Partner.name.asc())
    if status:
        statement = statement.where(Partner.status == status)
    return list(session.scalars(statement).all())


def get_partner(session: Session, partner_id: int) -> Partner:
    partner = session.get(Partner, partner_id)
    if partner is None:
        raise NotFoundError("Partner not found", code=ErrorCodes.PARTNER_NOT_FOUND)
    return partner


def create_partner(session: Session, data: PartnerInput) -> Partner:
    partner = Partner(
        name=data.name,
        contact_email=data.contact_email,
        contact_phone=data.contact_phone,
        status=data.status,
    )
    session.add(partner)
    session.flush()
    log.info("partner_created", partner_id=partner.id)
    return partner


def update_partner(session: Session, partner_id: int, data: PartnerUpdateInput) -> Partner:
    partner = get_partner(session, partner_id)
    changes = {
        field: value
        for field, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field in _CLEARABLE_PARTNER_FIELDS
    }
    for field, value in changes.items():
        setattr(partner, field, value)
    partner.updated_at = utcnow()
    session.flush()
    log.info("partner_updated", partner_id=partner.id, fields=sorted(changes))
    return partner


def list_branches(session: Session, partner_id: int) -> List[Branch]:
    get_partner(session, partner_id)
    return list(
        session.scalars(select(Branch).where(Branch.partner_id == partner_id).order_by(Branch.name.asc())).all()
    )


def create_branch(session: Session, partner_id: int, data: BranchInput) -> Branch:
    get_partner(session, partner_id)
    branch = Branch(partner_id=partner_id, **data.model_dump())
    session.add(branch)
    session.flush()
    log.info("branch_created", partner_id=partner_id, branch_id=branch.id)
    return branch


@dataclass(frozen=True)
class NearestBranch:
    branch: Branch
    distance_km: float


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two coordinates (haversine)."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def find_nearest_branch(
    session: Session,
    lat: float,
    lng: float,
    category_id: int | None = None,
    partner_id: int | None = None,
) -> NearestBranch | None:
    """Closest active branch of an active partner, or ``None`` when it is outside its service radius.

    With ``category_id`` only partners that accept that category are considered.
    Branches without coordinates are skipped.
    """

    statement = (
        select(Branch)
        .join(Partner, Branch.partner_id == Partner.id)
        .where(
            Branch.is_active.is_(True),
            Branch.lat.is_not(None),
            Branch.lng.is_not(None),
            Partner.status == statuses.PARTNER_ACTIVE,
        )
        .order_by(Branch.id.asc())
    )
    if partner_id is not None:
        statement = statement.where(Branch.partner_id == partner_id)
    if category_id is not None:
        statement = statement.where(
            Branch.partner_id.in_(select(PartnerCategory.partner_id).where(PartnerCategory.category_id == category_id))
        )

    candidates = [
        NearestBranch(branch=branch, distance_km=distance_km(lat, lng, branch.lat, branch.lng))
        for branch in session.scalars(statement).all()
    ]
    if not candidates:
        log.info("nearest_branch_not_found", lat=lat, lng=lng, category_id=category_id, partner_id=partner_id)
        return None

    nearest = min(candidates, key=lambda item: item.distance_km)
    if nearest.distance_km > nearest.branch.radius_km:
        log.info(
            "nearest_branch_out_of_radius",
            branch_id=nearest.branch.id,
            distance_km=round(nearest.distance_km, 3),
            radius_km=nearest.branch.radius_km,
        )
        return None

    log.info("nearest_branch_found", branch_id=nearest.branch.id, distance_km=round(nearest.distance_km, 3))
    return nearest


def list_partner_categories(session: Session, partner_id: int) -> List[PartnerCategory]:
    get_partner(session, partner_id)
    statement = (
        select(PartnerCategory)
        .join(Category, PartnerCategory.category_id == Category.id)
        .where(PartnerCategory.partner_id == partner_id)
        .order_by(Category.name.asc())
    )
    return list(session.scalars(statement).all())


def assign_partner_category(
    session: Session,
    partner_id: int,
    data: PartnerCategoryInput,
    *,
    assigned_by_id: int | None = None,
) -> PartnerCategory:
    get_partner(session, partner_id)
    category = session.get(Category, data.category_id)
    if category is None or not category.is_active:
        raise NotFoundError("Category not found", code=ErrorCodes.CATEGORY_NOT_FOUND)

    existing = session.scalar(
        select(PartnerCategory.id).where(
            PartnerCategory.partner_id == partner_id,
            PartnerCategory.category_id == data.category_id,
        )
    )
    if existing is not None:
        raise DuplicateEntryError(
            "Category is already assigned to this partner",
            details={"partner_id": partner_id, "category_id": data.category_id},
        )

    link = PartnerCategory(partner_id=partner_id, category_id=data.category_id, created_by_id=assigned_by_id)
    session.add(link)
    session.flush()
    log.info("partner_category_assigned", partner_id=partner_id, category_id=data.category_id)
    return link


def remove_partner_category(session: Session, partner_id: int, category_id: int) -> None:
    link = session.scalar(
        select(PartnerCategory).where(
            PartnerCategory.partner_id == partner_id,
            PartnerCategory.category_id == category_id,
        )
    )
    if link is None:
        raise NotFoundError("Category is not assigned to this partner")
    session.delete(link)
    session.flush()
    log.info("partner_category_removed", partner_id=partner_id, category_id=category_id)


def create_partner_user(session: Session, partner_id: int, data: PartnerUserInput) -> User:
    """Create a partner login and attach it to the given branches of that partner."""

    get_partner(session, partner_id)
    branch_ids = list(dict.fromkeys(data.branch_ids))
    if branch_ids:
        found = set(
            session.scalars(
                select(Branch.id).where(Branch.id.in_(branch_ids), Branch.partner_id == partner_id)
            ).all()
        )
        missing = [branch_id for branch_id in branch_ids if branch_id not in found]
        if missing:
            raise ValidationFailed(
                "Branches do not belong to this partner",
                details={"branch_ids": missing},
            )

    user = create_user(
        session,
        name=data.name,
        email=data.email,
        password=data.password,
        phone=data.phone,
        user_type=statuses.USER_PARTNER,
        partner_id=partner_id,
    )
    for branch_id in branch_ids:
        session.add(BranchUser(branch_id=branch_id, user_id=user.id, role=data.role, is_active=True))
    session.flush()
    return user


def list_staff_users(session: Session) -> List[User]:
    statement = (
        select(User)
        .where(User.user_type.in_(statuses.STAFF_USER_TYPES))
        .order_by(User.name.asc())
    )
    return list(session.scalars(statement).all())


def create_staff_user(session: Session, data: StaffUserInput) -> User:
    return create_user(
        session,
        name=data.name,
        email=data.email,
        password=data.password,
        phone=data.phone,
        user_type=data.user_type,
    )


def list_categories(session: Session, *, include_inactive: bool = False) -> List[Category]:
    statement = select(Category).order_by(Category.name.asc())
    if not include_inactive:
        statement = statement.where(Category.is_active.is_(True))
    return list(session.scalars(statement).all())


def create_category(session: Session, data: CategoryInput) -> Category:
    existing = session.scalar(select(Category.id).where(func.lower(Category.name) == data.name.lower()))
    if existing is not None:
        raise DuplicateEntryError("Category already exists", details={"name": data.name})
    category = Category(name=data.name, description=data.description, is_active=True)
    session.add(category)
    session.flush()
    log.info("category_created", category_id=category.id)
    return category


def list_services(session: Session, *, category_id: int | None = None) -> List[Service]:
    statement = select(Service).where(Service.is_active.is_(True)).order_by(Service.name.asc())
    if category_id is not None:
        statement = statement.where(Service.category_id == category_id)
    return list(session.scalars(statement).all())


def create_service(session: Session, data: ServiceInput) -> Service:
    if session.get(Category, data.category_id) is None:
        raise NotFoundError("Category not found", code=ErrorCodes.CATEGORY_NOT_FOUND)
    service = Service(category_id=data.category_id, name=data.name, description=data.description, is_active=True)
    session.add(service)
    session.flush()
    log.info("service_created", service_id=service.id, category_id=data.category_id)
    return service
