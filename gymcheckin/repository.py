# gymcheckin/repository.py
"""
Checkin storage.

Two implementations of one contract:
- SqlCheckinRepository: durable storage through a SQLAlchemy session (server mode).
- LocalCheckinRepository: in-process store, optionally mirrored to a JSON file
  (local mode, no backing service).

Both enforce the same rules: owner-scoped reads, and status changes only
through `update_status`, a compare-and-set on the stored status.
"""

from __future__ import annotations

import abc
import json
import os
import threading
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gymcheckin import models
from gymcheckin.errors import ConflictError, InvalidTransitionError, NotFoundError
from gymcheckin.models import ALLOWED_TRANSITIONS, CheckinStatus

# Fields a status update may carry. Everything else on a checkin is immutable.
UPDATABLE_FIELDS = {"pin_code", "payment_reference"}


def new_checkin_id() -> str:
    return uuid.uuid4().hex


def check_transition(checkin_id: str, expected: CheckinStatus, new: CheckinStatus, fields: dict) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"fields not updatable: {sorted(unknown)}")
    if new not in ALLOWED_TRANSITIONS.get(expected, set()):
        raise InvalidTransitionError(
            f"Cannot move checkin from {expected.value} to {new.value}",
            checkin_id=checkin_id,
        )
    if new == CheckinStatus.PAID and not fields.get("pin_code"):
        raise ValueError("a transition into PAID must assign a pin_code")
    if new != CheckinStatus.PAID and "pin_code" in fields:
        raise ValueError("pin_code is only assigned on the transition into PAID")


class CheckinRepository(abc.ABC):
    """Storage contract used by the lifecycle manager and the payment protocol."""

    @abc.abstractmethod
    def upsert_user(self, external_identity_id: str, display_name: str, picture_url: Optional[str] = None) -> models.User:
        ...

    @abc.abstractmethod
    def create(self, checkin: models.Checkin) -> models.Checkin:
        """Persist a new checkin under a fresh id. ConflictError on id collision."""

    @abc.abstractmethod
    def find_by_id(self, checkin_id: str) -> models.Checkin:
        """Unscoped lookup; only the gateway callback uses this."""

    @abc.abstractmethod
    def find_by_id_for_user(self, checkin_id: str, user_id: int) -> models.Checkin:
        ...

    @abc.abstractmethod
    def list_for_user(self, user_id: int) -> List[models.Checkin]:
        """Newest first. Rows created in the same instant come back in a stable order."""

    @abc.abstractmethod
    def update_status(
        self,
        checkin_id: str,
        expected_status: CheckinStatus,
        new_status: CheckinStatus,
        **fields,
    ) -> models.Checkin:
        """
        Write only if the stored status still equals `expected_status`, else
        ConflictError. NotFoundError when there is no such checkin.
        """


# ------------------------------------------------------------------
# SQL
# ------------------------------------------------------------------

class SqlCheckinRepository(CheckinRepository):
    def __init__(self, db: Session):
        self.db = db

    def upsert_user(self, external_identity_id, display_name, picture_url=None):
        user = (
            self.db.query(models.User)
            .filter(models.User.external_identity_id == external_identity_id)
            .first()
        )
        if user is None:
            user = models.User(
                external_identity_id=external_identity_id,
                display_name=display_name,
                picture_url=picture_url,
            )
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError:
                # Another request created the same user first; update that row instead.
                self.db.rollback()
                return self.upsert_user(external_identity_id, display_name, picture_url)
            self.db.refresh(user)
            return user

        user.display_name = display_name
        user.picture_url = picture_url
        user.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def create(self, checkin):
        if not checkin.id:
            checkin.id = new_checkin_id()
        now = datetime.utcnow()
        checkin.created_at = checkin.created_at or now
        checkin.updated_at = checkin.updated_at or now
        self.db.add(checkin)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Checkin id collision: {str(e)[:120]}", checkin_id=checkin.id)
        self.db.refresh(checkin)
        return checkin

    def find_by_id(self, checkin_id):
        checkin = self.db.get(models.Checkin, checkin_id)
        if not checkin:
            raise NotFoundError(checkin_id=checkin_id)
        return checkin

    def find_by_id_for_user(self, checkin_id, user_id):
        checkin = (
            self.db.query(models.Checkin)
            .filter(models.Checkin.id == checkin_id, models.Checkin.user_id == user_id)
            .first()
        )
        if not checkin:
            raise NotFoundError(checkin_id=checkin_id)
        return checkin

    def list_for_user(self, user_id):
        return (
            self.db.query(models.Checkin)
            .filter(models.Checkin.user_id == user_id)
            .order_by(models.Checkin.created_at.desc(), models.Checkin.id.desc())
            .all()
        )

    def update_status(self, checkin_id, expected_status, new_status, **fields):
        expected_status = CheckinStatus(expected_status)
        new_status = CheckinStatus(new_status)
        check_transition(checkin_id, expected_status, new_status, fields)

        values = dict(fields)
        values["status"] = new_status
        values["updated_at"] = datetime.utcnow()
        try:
            updated = (
                self.db.query(models.Checkin)
                .filter(models.Checkin.id == checkin_id, models.Checkin.status == expected_status)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if updated != 1:
            if self.db.get(models.Checkin, checkin_id) is None:
                raise NotFoundError(checkin_id=checkin_id)
            raise ConflictError(
                f"Checkin is no longer {expected_status.value}",
                checkin_id=checkin_id,
            )
        # The commit expired the identity map, so this reloads the row.
        return self.find_by_id(checkin_id)


# ------------------------------------------------------------------
# LOCAL (no backing service)
# ------------------------------------------------------------------

_CHECKIN_COLUMNS = (
    "id", "user_id", "facility_type", "date", "start_time", "duration", "total_price",
    "pin_code", "payment_reference", "status", "created_at", "updated_at",
)
_USER_COLUMNS = ("id", "external_identity_id", "display_name", "picture_url", "created_at", "updated_at")


def _encode(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (models.FacilityType, models.CheckinStatus)):
        return value.value
    return value


def _decode_checkin(row: dict) -> dict:
    out = dict(row)
    out["facility_type"] = models.FacilityType(out["facility_type"])
    out["status"] = models.CheckinStatus(out["status"])
    out["date"] = date.fromisoformat(out["date"])
    for key in ("created_at", "updated_at"):
        if out.get(key):
            out[key] = datetime.fromisoformat(out[key])
    return out


def _decode_user(row: dict) -> dict:
    out = dict(row)
    for key in ("created_at", "updated_at"):
        if out.get(key):
            out[key] = datetime.fromisoformat(out[key])
    return out


class LocalCheckinRepository(CheckinRepository):
    """
    Process-local store for the deployment mode without a backing service.

    Rows are kept as plain dicts and handed out as detached `models.Checkin`
    copies, so callers can never mutate stored state behind the lock. When
    `path` is given the whole store is rewritten to that JSON file after
    every write and reloaded on startup.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.RLock()
        self._users: Dict[int, dict] = {}
        self._checkins: Dict[str, dict] = {}
        self._seq = 0
        if path and os.path.exists(path):
            self._load()

    # -- persistence --------------------------------------------------

    def _load(self) -> None:
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        for row in data.get("users", []):
            self._users[int(row["id"])] = _decode_user(row)
        for row in data.get("checkins", []):
            self._checkins[row["id"]] = _decode_checkin(row)
        self._seq = int(data.get("seq", len(self._checkins)))
        print(f"[LOCAL] Loaded {len(self._checkins)} checkins from {self.path}")

    def _flush(self) -> None:
        if not self.path:
            return
        data = {
            "seq": self._seq,
            "users": [{k: _encode(v) for k, v in row.items()} for row in self._users.values()],
            "checkins": [{k: _encode(v) for k, v in row.items()} for row in self._checkins.values()],
        }
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    # -- entities -----------------------------------------------------

    @staticmethod
    def _user_entity(row: dict) -> models.User:
        return models.User(**{k: row.get(k) for k in _USER_COLUMNS})

    @staticmethod
    def _checkin_entity(row: dict) -> models.Checkin:
        return models.Checkin(**{k: row.get(k) for k in _CHECKIN_COLUMNS})

    # -- contract -----------------------------------------------------

    def upsert_user(self, external_identity_id, display_name, picture_url=None):
        now = datetime.utcnow()
        with self._lock:
            for row in self._users.values():
                if row["external_identity_id"] == external_identity_id:
                    row["display_name"] = display_name
                    row["picture_url"] = picture_url
                    row["updated_at"] = now
                    self._flush()
                    return self._user_entity(row)

            user_id = max(self._users, default=0) + 1
            row = {
                "id": user_id,
                "external_identity_id": external_identity_id,
                "display_name": display_name,
                "picture_url": picture_url,
                "created_at": now,
                "updated_at": now,
            }
            self._users[user_id] = row
            self._flush()
            return self._user_entity(row)

    def create(self, checkin):
        now = datetime.utcnow()
        with self._lock:
            checkin_id = checkin.id or new_checkin_id()
            if checkin_id in self._checkins:
                raise ConflictError("Checkin id collision", checkin_id=checkin_id)
            self._seq += 1
            row = {k: getattr(checkin, k, None) for k in _CHECKIN_COLUMNS}
            row["id"] = checkin_id
            row["status"] = models.CheckinStatus(row["status"] or models.CheckinStatus.PENDING)
            row["facility_type"] = models.FacilityType(row["facility_type"])
            row["created_at"] = row["created_at"] or now
            row["updated_at"] = row["updated_at"] or now
            row["seq"] = self._seq
            self._checkins[checkin_id] = row
            self._flush()
            return self._checkin_entity(row)

    def find_by_id(self, checkin_id):
        with self._lock:
            row = self._checkins.get(checkin_id)
            if row is None:
                raise NotFoundError(checkin_id=checkin_id)
            return self._checkin_entity(row)

    def find_by_id_for_user(self, checkin_id, user_id):
        with self._lock:
            row = self._checkins.get(checkin_id)
            if row is None or row["user_id"] != user_id:
                raise NotFoundError(checkin_id=checkin_id)
            return self._checkin_entity(row)

    def list_for_user(self, user_id):
        with self._lock:
            rows = [r for r in self._checkins.values() if r["user_id"] == user_id]
            rows.sort(key=lambda r: (r["created_at"], r.get("seq", 0)), reverse=True)
            return [self._checkin_entity(r) for r in rows]

    def update_status(self, checkin_id, expected_status, new_status, **fields):
        expected_status = CheckinStatus(expected_status)
        new_status = CheckinStatus(new_status)
        check_transition(checkin_id, expected_status, new_status, fields)

        with self._lock:
            row = self._checkins.get(checkin_id)
            if row is None:
                raise NotFoundError(checkin_id=checkin_id)
            if row["status"] != expected_status:
                raise ConflictError(
                    f"Checkin is no longer {expected_status.value}",
                    checkin_id=checkin_id,
                )
            row.update(fields)
            row["status"] = new_status
            row["updated_at"] = datetime.utcnow()
            self._flush()
            return self._checkin_entity(row)
