"""Quote status workflow with an append-only audit trail.

Stages run REQUESTED -> PROVIDED -> CONFIRMED -> IN_PRODUCTION ->
QUALITY_CHECK -> SHIPPED -> DELIVERED. Admins may skip stages forward or
re-enter the current stage with a note, but never move backwards, and
nothing leaves DELIVERED.

A status change and its history row are committed together. The quote row
is locked while the change is decided, and the ``version`` column rejects
a write that raced past the lock; the loser reloads and re-decides against
the state the winner left behind.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quotedesk.app import models
from quotedesk.app.core.errors import (
    BackendUnavailable,
    Forbidden,
    InvalidTransition,
    NotFound,
    QuoteDeskError,
    ValidationError,
)
from quotedesk.app.core.principal import Principal
from quotedesk.app.models import QuoteStatus
from quotedesk.app.ports.repository import IQuoteRepository
from quotedesk.app.services.object_acl import Visibility

logger = logging.getLogger(__name__)

CREATION_NOTE = "Quote requested"

# Largest amount a Numeric(12, 2) column holds.
MAX_PRICE = Decimal("9999999999.99")


@dataclass(frozen=True)
class UploadedFile:
    upload_url: str
    name: str
    size: int = 0

    @property
    def file_type(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


def parse_status(value: Any) -> QuoteStatus:
    try:
        return QuoteStatus(getattr(value, "value", value))
    except ValueError:
        raise ValidationError("Unknown quote status", {"status": str(value)}) from None


def check_transition(current: QuoteStatus, new_status: QuoteStatus) -> None:
    if current.is_terminal:
        raise InvalidTransition(
            f"Quote is {current.value}; no further transitions",
            {"from": current.value, "to": new_status.value},
        )
    if new_status.stage < current.stage:
        raise InvalidTransition(
            f"Cannot move quote back from {current.value} to {new_status.value}",
            {"from": current.value, "to": new_status.value},
        )


def _quote_id(quote) -> str:
    return quote if isinstance(quote, str) else quote.id


def _require_admin(actor: Principal, action: str) -> None:
    if not actor.is_admin:
        logger.warning("Non-admin attempted %s", action, extra={"principal": actor.principal_id})
        raise Forbidden("Admin access required")


class QuoteLifecycle:
    def __init__(self, session: Session, repo: IQuoteRepository, max_attempts: int = 3):
        self.session = session
        self.repo = repo
        self.max_attempts = max(1, max_attempts)

    def get(self, quote_id: str) -> models.Quote:
        quote = self.repo.get(quote_id)
        if quote is None:
            raise NotFound("Quote not found", {"quote_id": quote_id})
        return quote

    def get_visible(self, quote_id: str, viewer: Principal) -> models.Quote:
        quote = self.get(quote_id)
        if quote.user_id != viewer.principal_id and not viewer.is_admin:
            raise Forbidden("Forbidden")
        return quote

    def list_for_user(self, viewer: Principal) -> List[models.Quote]:
        return self.repo.list_for_user(viewer.principal_id)

    def list_all(self, actor: Principal, status: Optional[str] = None) -> List[models.Quote]:
        _require_admin(actor, "list all quotes")
        if status:
            status = parse_status(status).value
        return self.repo.list_all(status=status)

    def history(self, quote: models.Quote) -> List[models.QuoteStatusHistory]:
        return list(quote.status_history)

    def create_quote(
        self,
        customer: Principal,
        data: Dict[str, Any],
        files: Sequence[UploadedFile],
        object_gateway,
    ) -> models.Quote:
        """Create a quote in REQUESTED together with its files.

        Every uploaded object gets a private policy owned by the customer
        before any row is written. If one attach fails nothing is persisted
        and the error propagates.
        """
        if not files:
            raise ValidationError("At least one file is required")

        object_paths = [
            object_gateway.attach_policy_after_upload(
                f.upload_url,
                owner_id=customer.principal_id,
                visibility=Visibility.PRIVATE,
            )
            for f in files
        ]

        quote = models.Quote(
            user_id=customer.principal_id,
            status=QuoteStatus.REQUESTED.value,
            **data,
        )
        quote.status_history.append(
            models.QuoteStatusHistory(
                status=QuoteStatus.REQUESTED.value,
                notes=CREATION_NOTE,
                actor_id=customer.principal_id,
            )
        )
        for f, path in zip(files, object_paths):
            quote.files.append(
                models.QuoteFile(
                    file_name=f.name,
                    file_path=path,
                    file_type=f.file_type,
                    file_size=f.size or 0,
                )
            )

        try:
            self.repo.add(quote)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Failed to create quote: %s", exc, extra={"principal": customer.principal_id})
            raise BackendUnavailable("Failed to create quote", cause=exc) from exc

        logger.info(
            "Created quote with %d file(s)",
            len(files),
            extra={"principal": customer.principal_id, "quote_id": quote.id},
        )
        return quote

    def transition_to(
        self,
        quote: models.Quote | str,
        new_status: QuoteStatus | str,
        actor: Principal,
        notes: Optional[str] = None,
    ) -> models.Quote:
        _require_admin(actor, "status transition")
        target = parse_status(new_status)
        quote_id = _quote_id(quote)

        def apply(current: models.Quote) -> None:
            check_transition(current.current_status, target)
            current.status = target.value
            current.status_history.append(
                models.QuoteStatusHistory(
                    status=target.value,
                    notes=notes,
                    actor_id=actor.principal_id,
                )
            )

        updated = self._write(quote_id, apply, actor, "transition")
        logger.info(
            "Quote moved to %s",
            target.value,
            extra={"principal": actor.principal_id, "quote_id": updated.id},
        )
        return updated

    def set_final_price(self, quote: models.Quote | str, amount: Any, actor: Principal) -> models.Quote:
        _require_admin(actor, "price update")
        try:
            price = Decimal(str(amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise ValidationError("Final price is not a number", {"finalPrice": str(amount)}) from None
        if not price.is_finite() or price < 0:
            raise ValidationError("Final price must be a non-negative amount", {"finalPrice": str(amount)})
        if price > MAX_PRICE:
            raise ValidationError("Final price is too large", {"finalPrice": str(amount)})

        def apply(current: models.Quote) -> None:
            current.final_price = price

        updated = self._write(_quote_id(quote), apply, actor, "price")
        logger.info(
            "Final price set to %s",
            price,
            extra={"principal": actor.principal_id, "quote_id": updated.id},
        )
        return updated

    def _write(self, quote_id: str, apply, actor: Principal, action: str) -> models.Quote:
        for attempt in range(1, self.max_attempts + 1):
            try:
                current = self.repo.get_for_update(quote_id)
                if current is None:
                    raise NotFound("Quote not found", {"quote_id": quote_id})
                apply(current)
                # Always send the versioned UPDATE, even when apply changed no column.
                current.updated_at = dt.datetime.utcnow()
                self.session.commit()
                return current
            except StaleDataError:
                self.session.rollback()
                logger.info(
                    "Concurrent %s on quote; re-evaluating (attempt %d)",
                    action,
                    attempt,
                    extra={"principal": actor.principal_id, "quote_id": quote_id},
                )
            except QuoteDeskError:
                self.session.rollback()
                raise
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.error(
                    "Database error during %s: %s",
                    action,
                    exc,
                    extra={"principal": actor.principal_id, "quote_id": quote_id},
                )
                raise BackendUnavailable(f"Failed to apply {action}", cause=exc) from exc

        raise BackendUnavailable(
            f"Gave up on {action} after {self.max_attempts} concurrent updates",
            details={"quote_id": quote_id},
        )
