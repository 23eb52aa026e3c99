"""Time-bounded overrides for gates and criteria.

An exception lets a named approver waive one criterion (or every criterion of
a gate) until it expires. Records are never deleted: deactivation flips
``active`` so the audit trail survives. Expiry is evaluated at lookup time.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

from .models import QualityGateException, utc_now

logger = logging.getLogger(__name__)


def new_exception_id() -> str:
    return f"exception-{uuid.uuid4().hex[:12]}"


def _aware(value: datetime, field_name: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValueError(f"{field_name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{field_name} must be timezone-aware, got naive {value.isoformat()}")
    return value


class ExceptionRegistry:
    """In-memory set of exception records, persisted by the owning manager."""

    def __init__(
        self,
        exceptions: Optional[Iterable[QualityGateException]] = None,
        *,
        id_factory: Callable[[], str] = new_exception_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._exceptions: List[QualityGateException] = list(exceptions or [])
        self._id_factory = id_factory
        self._clock = clock

    @classmethod
    def from_document(cls, payload: Optional[List[Any]], **kwargs: Any) -> "ExceptionRegistry":
        if payload is None:
            return cls(**kwargs)
        if not isinstance(payload, list):
            raise ValueError("Exceptions document must be a JSON array")
        return cls((QualityGateException.from_dict(item) for item in payload), **kwargs)

    def to_document(self) -> List[Any]:
        return [exc.to_dict() for exc in self._exceptions]

    def create(
        self,
        gate_id: str,
        reason: str,
        approver: str,
        expires_at: datetime,
        *,
        criteria_id: Optional[str] = None,
        approved_at: Optional[datetime] = None,
        conditions: Optional[Iterable[str]] = None,
    ) -> QualityGateException:
        """
        Record a new active exception.

        Raises:
            ValueError: ``expires_at`` or ``approved_at`` is not a
                timezone-aware datetime. Nothing is recorded.
        """
        expires_at = _aware(expires_at, "expires_at")
        approved_at = _aware(approved_at, "approved_at") if approved_at is not None else self._clock()
        exception = QualityGateException(
            id=self._id_factory(),
            gate_id=gate_id,
            criteria_id=criteria_id,
            reason=reason,
            approver=approver,
            approved_at=approved_at,
            expires_at=expires_at,
            conditions=list(conditions or []),
            active=True,
        )
        self._exceptions.append(exception)
        if exception.expires_at <= self._clock():
            logger.warning("Exception %s for gate %s is already expired", exception.id, gate_id)
        logger.info(
            "Created exception %s for %s%s by %s",
            exception.id,
            gate_id,
            f"/{criteria_id}" if criteria_id else "",
            approver,
        )
        return exception

    def remove(self, exception_id: str) -> None:
        """Drop a record outright; used to roll back a create that failed to persist."""
        self._exceptions = [e for e in self._exceptions if e.id != exception_id]

    def deactivate(self, exception_id: str) -> bool:
        for exception in self._exceptions:
            if exception.id == exception_id:
                exception.active = False
                logger.info("Deactivated exception %s", exception_id)
                return True
        return False

    def reactivate(self, exception_id: str) -> None:
        for exception in self._exceptions:
            if exception.id == exception_id:
                exception.active = True

    def find_in_effect(
        self,
        gate_id: str,
        criteria_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[QualityGateException]:
        """First active, unexpired exception covering the gate or criterion."""
        now = now or self._clock()
        for exception in self._exceptions:
            if exception.is_in_effect(gate_id, criteria_id, now):
                return exception
        return None

    def is_in_effect(
        self,
        gate_id: str,
        criteria_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        return self.find_in_effect(gate_id, criteria_id, now) is not None

    def list(self, active_only: bool = False) -> List[QualityGateException]:
        """Copies of the records; ``active_only`` drops inactive and expired ones."""
        now = self._clock()
        records = [
            e for e in self._exceptions
            if not active_only or (e.active and e.expires_at > now)
        ]
        return copy.deepcopy(records)

    def __len__(self) -> int:
        return len(self._exceptions)
