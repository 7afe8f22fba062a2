"""Portfolio registry.

Minimal capital-pool management: create, look up, list and record
deposits/withdrawals. Name and notes editing belongs to the outer
portfolio-management surface and is not exposed here.
"""

from decimal import Decimal
from typing import Any

import pydantic
from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.orm import Session

from wheelbook.errors import NotFoundError, ValidationError
from wheelbook.services.clock import Clock, utc_now
from wheelbook.services.persistence import Database, PortfolioRow
from wheelbook.services.portfolio.models import Money, NewPortfolio, Portfolio, parse_input
from wheelbook.system import LoggerFactory

logger = LoggerFactory.get_logger()

_MONEY = TypeAdapter(Money)


def require_portfolio(
    session: Session,
    portfolio_id: str,
    user_id: str | None = None,
    for_update: bool = False,
) -> PortfolioRow:
    """
    Load a portfolio row, enforcing ownership when user_id is given.

    Raises:
        NotFoundError: Missing, or owned by another user
    """
    stmt = select(PortfolioRow).where(PortfolioRow.id == portfolio_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).one_or_none()
    if row is None or (user_id is not None and row.user_id != user_id):
        raise NotFoundError(f"Portfolio not found: {portfolio_id}")
    return row


class PortfolioRegistry:
    """
    Create and query portfolios.

    Example:
        >>> registry = PortfolioRegistry(db)
        >>> p = registry.create_portfolio("user-1", "Wheel", Decimal("50000"))
        >>> p.capital_base
        Decimal('50000')
    """

    def __init__(self, database: Database, clock: Clock = utc_now):
        self._db = database
        self._clock = clock
        logger.debug("portfolio_registry.initialized")

    def create_portfolio(
        self,
        user_id: str,
        name: str | None,
        starting_capital: Any,
        additional_capital: Any = Decimal("0"),
        notes: str | None = None,
    ) -> Portfolio:
        """
        Create a portfolio owned by user_id.

        Raises:
            ValidationError: Missing owner or negative starting capital
        """
        data = parse_input(
            NewPortfolio,
            user_id=user_id,
            name=name,
            starting_capital=starting_capital,
            additional_capital=additional_capital,
            notes=notes,
        )
        with self._db.transaction() as session:
            row = PortfolioRow(
                user_id=data.user_id,
                name=data.name,
                starting_capital=data.starting_capital,
                additional_capital=data.additional_capital,
                notes=data.notes,
                created_at=self._clock(),
            )
            session.add(row)
            session.flush()
            portfolio = Portfolio.model_validate(row)

        logger.info(
            "portfolio_registry.portfolio_created",
            portfolio_id=portfolio.id,
            user_id=portfolio.user_id,
            starting_capital=str(portfolio.starting_capital),
        )
        return portfolio

    def get_portfolio(self, portfolio_id: str, user_id: str | None = None) -> Portfolio:
        with self._db.read_session() as session:
            return Portfolio.model_validate(require_portfolio(session, portfolio_id, user_id))

    def list_portfolios(self, user_id: str) -> list[Portfolio]:
        """All portfolios of a user, oldest first."""
        with self._db.read_session() as session:
            rows = session.scalars(
                select(PortfolioRow)
                .where(PortfolioRow.user_id == user_id)
                .order_by(PortfolioRow.created_at, PortfolioRow.id)
            ).all()
            return [Portfolio.model_validate(row) for row in rows]

    def adjust_additional_capital(self, portfolio_id: str, delta: Any, user_id: str | None = None) -> Portfolio:
        """
        Record a deposit (positive delta) or withdrawal (negative delta).

        Raises:
            ValidationError: delta is not a number
            NotFoundError: Portfolio missing or not owned by user_id
        """
        try:
            amount = _MONEY.validate_python(delta)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"Invalid delta: {delta!r}") from exc

        with self._db.transaction() as session:
            row = require_portfolio(session, portfolio_id, user_id, for_update=True)
            row.additional_capital = row.additional_capital + amount
            session.flush()
            portfolio = Portfolio.model_validate(row)

        logger.info(
            "portfolio_registry.capital_adjusted",
            portfolio_id=portfolio_id,
            delta=str(amount),
            additional_capital=str(portfolio.additional_capital),
        )
        return portfolio

