from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from quotedesk.app.models import Quote
from quotedesk.app.ports.repository import IQuoteRepository


class SQLAlchemyQuoteRepository(IQuoteRepository):
    def __init__(self, session: Session):
        self.session = session

    def get(self, quote_id: str) -> Optional[Quote]:
        return (
            self.session.query(Quote)
            .options(selectinload(Quote.files), selectinload(Quote.status_history))
            .filter(Quote.id == quote_id)
            .first()
        )

    def get_for_update(self, quote_id: str) -> Optional[Quote]:
        # SQLite ignores FOR UPDATE; the version column still catches races there.
        return (
            self.session.query(Quote)
            .filter(Quote.id == quote_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def add(self, quote: Quote) -> Quote:
        self.session.add(quote)
        return quote

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> List[Quote]:
        return (
            self.session.query(Quote)
            .options(selectinload(Quote.files))
            .filter(Quote.user_id == user_id)
            .order_by(Quote.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_all(self, limit: int = 100, offset: int = 0, status: Optional[str] = None) -> List[Quote]:
        query = self.session.query(Quote).options(selectinload(Quote.files))
        if status:
            query = query.filter(Quote.status == status)
        return query.order_by(Quote.created_at.desc()).offset(offset).limit(limit).all()
