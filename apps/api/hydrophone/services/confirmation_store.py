"""Durable CRUD and queries over confirmation records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Iterable

from sqlalchemy import func, inspect, or_, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, Session

from hydrophone.core.errors import StorageUnavailable
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType
from hydrophone.db.models import Confirmation, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationFilter:
    """
    Sparse pattern over confirmation fields.

    Only non-empty attributes take part in the match. ``emails`` and
    ``types`` match any of their values; emails are compared lowercase.
    """

    key: str | None = None
    type: ConfirmationType | None = None
    types: tuple[ConfirmationType, ...] | None = None
    status: ConfirmationStatus | None = None
    email: str | None = None
    emails: tuple[str, ...] | None = None
    creator_id: str | None = None
    user_id: str | None = None
    clinic_id: str | None = None
    team_id: str | None = None
    # Matches records addressed to this user by id OR by one of ``emails``
    recipient_id: str | None = None

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _apply_filter(query: Query, flt: ConfirmationFilter) -> Query:
    if flt.key:
        query = query.filter(Confirmation.key == flt.key)
    if flt.type:
        query = query.filter(Confirmation.type == flt.type.value)
    if flt.types:
        query = query.filter(Confirmation.type.in_([t.value for t in flt.types]))
    if flt.status:
        query = query.filter(Confirmation.status == flt.status.value)
    if flt.creator_id:
        query = query.filter(Confirmation.creator_id == flt.creator_id)
    if flt.clinic_id:
        query = query.filter(Confirmation.clinic_id == flt.clinic_id)
    if flt.team_id:
        query = query.filter(Confirmation.team_id == flt.team_id)

    emails = [_normalize_email(e) for e in (flt.emails or ()) if e]
    if flt.email:
        emails.append(_normalize_email(flt.email))

    if flt.recipient_id:
        clauses = [Confirmation.user_id == flt.recipient_id]
        if emails:
            clauses.append(func.lower(Confirmation.email).in_(emails))
        query = query.filter(or_(*clauses))
    else:
        if flt.user_id:
            query = query.filter(Confirmation.user_id == flt.user_id)
        if emails:
            query = query.filter(func.lower(Confirmation.email).in_(emails))
    return query


def _ordered(query: Query) -> Query:
    return query.order_by(Confirmation.created.desc(), Confirmation.key.asc())


# =============================================================================
# Operations
# =============================================================================

def ping(db: Session) -> None:
    try:
        db.execute(text("SELECT 1"))
    except OperationalError as exc:
        raise StorageUnavailable(str(exc.orig or exc)) from exc


def upsert(db: Session, confirmation: Confirmation) -> Confirmation:
    """Insert or replace a record by key."""
    confirmation.email = _normalize_email(confirmation.email)
    try:
        state = inspect(confirmation)
        if state.transient and db.get(Confirmation, confirmation.key) is None:
            db.add(confirmation)
        elif not state.persistent:
            confirmation = db.merge(confirmation)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.error("Upsert of confirmation failed: %s", exc)
        raise StorageUnavailable() from exc
    return confirmation


def replace_key(db: Session, confirmation: Confirmation) -> Confirmation:
    """
    Remove the stored record and persist it again under a fresh key.

    The delete and the insert share one commit; the loaded instance is
    detached first so its pending changes are never flushed against the
    removed row.
    """
    values = {
        attr.key: getattr(confirmation, attr.key)
        for attr in inspect(Confirmation).column_attrs
    }
    old_key = confirmation.key
    if inspect(confirmation).persistent:
        db.expunge(confirmation)

    fresh = Confirmation(**values)
    fresh.reset_key()
    fresh.email = _normalize_email(fresh.email)
    try:
        db.query(Confirmation).filter(Confirmation.key == old_key).delete(
            synchronize_session=False
        )
        db.add(fresh)
        db.commit()
    except OperationalError as exc:
        db.rollback()
        logger.error("Key replacement of confirmation failed: %s", exc)
        raise StorageUnavailable() from exc
    return fresh


def find_one(db: Session, flt: ConfirmationFilter) -> Confirmation | None:
    """Return the newest record matching the filter."""
    try:
        return _ordered(_apply_filter(db.query(Confirmation), flt)).first()
    except OperationalError as exc:
        raise StorageUnavailable() from exc


def find_many(
    db: Session,
    flt: ConfirmationFilter,
    statuses: Iterable[ConfirmationStatus] = (),
) -> list[Confirmation]:
    """Return all records matching the filter whose status is in ``statuses``."""
    query = _apply_filter(db.query(Confirmation), flt)
    wanted = [s.value for s in statuses]
    if wanted:
        query = query.filter(Confirmation.status.in_(wanted))
    try:
        return _ordered(query).all()
    except OperationalError as exc:
        raise StorageUnavailable() from exc


def remove(db: Session, key: str) -> None:
    try:
        db.query(Confirmation).filter(Confirmation.key == key).delete(
            synchronize_session=False
        )
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise StorageUnavailable() from exc


def remove_all_for_user(db: Session, user_id: str) -> int:
    """Delete every record created by or addressed to ``user_id``."""
    if not user_id:
        return 0
    try:
        deleted = (
            db.query(Confirmation)
            .filter(or_(Confirmation.creator_id == user_id, Confirmation.user_id == user_id))
            .delete(synchronize_session=False)
        )
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise StorageUnavailable() from exc
    db.expire_all()
    return deleted


def count_recent(
    db: Session, confirmation_type: ConfirmationType, user_id: str, since: timedelta
) -> int:
    """Number of ``confirmation_type`` records for ``user_id`` created within ``since``."""
    threshold = utcnow() - since
    try:
        return (
            db.query(func.count(Confirmation.key))
            .filter(
                Confirmation.type == confirmation_type.value,
                Confirmation.user_id == user_id,
                Confirmation.created >= threshold,
            )
            .scalar()
            or 0
        )
    except OperationalError as exc:
        raise StorageUnavailable() from exc
