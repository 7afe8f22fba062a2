"""Metrics service: loads positions and runs the pure reducers.

Read-only. Each portfolio is loaded in its own session and reduced
independently; account summaries fan the per-portfolio work out over a
thread pool and merge the partial results afterwards.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime

from sqlalchemy import select

from wheelbook.services.clock import Clock, utc_now
from wheelbook.services.metrics.aggregation import (
    PortfolioBook,
    PortfolioReduction,
    clamp_limit,
    reduce_account,
    reduce_portfolio,
    upcoming_expirations,
)
from wheelbook.services.metrics.models import AccountSummary, PortfolioSnapshot, UpcomingExpiration
from wheelbook.services.metrics.series import utc_day
from wheelbook.services.persistence import Database, PortfolioRow, ShareLotRow, TradeRow
from wheelbook.services.portfolio.models import Portfolio, ShareLot, ShareLotStatus, Trade, TradeStatus
from wheelbook.services.portfolio.registry import require_portfolio
from wheelbook.system import LoggerFactory
from wheelbook.system.config import MetricsConfig

logger = LoggerFactory.get_logger()


class MetricsService:
    """
    Portfolio snapshots and account summaries.

    Example:
        >>> metrics = MetricsService(db, MetricsConfig())
        >>> snap = metrics.get_portfolio_snapshot(portfolio_id)
        >>> snap.cash_available == snap.current_capital - snap.capital_in_use
        True
    """

    def __init__(self, database: Database, config: MetricsConfig | None = None, clock: Clock = utc_now):
        self._db = database
        self._config = config or MetricsConfig()
        self._clock = clock
        logger.debug("metrics_service.initialized", max_workers=self._config.max_workers)

    def get_portfolio_snapshot(
        self,
        portfolio_id: str,
        user_id: str | None = None,
        expirations_limit: int | None = None,
    ) -> PortfolioSnapshot:
        """
        Accounting snapshot of one portfolio.

        Raises:
            NotFoundError: Portfolio missing or not owned by user_id
        """
        now = self._clock()
        reduction = self._reduce(self._load_book(portfolio_id, user_id), now, expirations_limit)
        logger.debug(
            "metrics_service.snapshot_built",
            portfolio_id=portfolio_id,
            open_count=reduction.snapshot.open_count,
            capital_in_use=str(reduction.snapshot.capital_in_use),
        )
        return reduction.snapshot

    def get_upcoming_expirations(
        self,
        portfolio_id: str,
        limit: int | None = None,
        user_id: str | None = None,
    ) -> list[UpcomingExpiration]:
        """Earliest open trades expiring today or later (limit clamped to the configured range)."""
        book = self._load_book(portfolio_id, user_id)
        today = utc_day(self._clock())
        return upcoming_expirations(book.open_trades, today, clamp_limit(limit, self._config))

    def get_account_summary(self, user_id: str) -> AccountSummary:
        """
        All of a user's portfolios reduced into one summary.

        Portfolios are reduced in parallel; results keep portfolio creation order.
        """
        now = self._clock()
        with self._db.read_session() as session:
            portfolio_ids = list(
                session.scalars(
                    select(PortfolioRow.id)
                    .where(PortfolioRow.user_id == user_id)
                    .order_by(PortfolioRow.created_at, PortfolioRow.id)
                ).all()
            )

        reductions: dict[str, PortfolioReduction] = {}
        if portfolio_ids:
            workers = max(1, min(self._config.max_workers, len(portfolio_ids)))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = {
                    pool.submit(self._reduce_portfolio_id, portfolio_id, user_id, now): portfolio_id
                    for portfolio_id in portfolio_ids
                }
                for future in as_completed(futures):
                    reductions[futures[future]] = future.result()

        ordered = [reductions[pid] for pid in portfolio_ids]
        summary = reduce_account(user_id, ordered, utc_day(now), self._config)
        logger.debug(
            "metrics_service.account_summary_built",
            user_id=user_id,
            portfolio_count=summary.totals.portfolio_count,
            realized_mtd=str(summary.totals.realized_mtd),
        )
        return summary

    # ==================== Internals ====================

    def _reduce_portfolio_id(self, portfolio_id: str, user_id: str | None, now: datetime) -> PortfolioReduction:
        return self._reduce(self._load_book(portfolio_id, user_id), now, None)

    def _reduce(self, book: PortfolioBook, now: datetime, expirations_limit: int | None) -> PortfolioReduction:
        return reduce_portfolio(book, now, self._config, expirations_limit)

    def _load_book(self, portfolio_id: str, user_id: str | None) -> PortfolioBook:
        with self._db.read_session() as session:
            portfolio = Portfolio.model_validate(require_portfolio(session, portfolio_id, user_id))
            trades = session.scalars(
                select(TradeRow)
                .where(TradeRow.portfolio_id == portfolio_id)
                .order_by(TradeRow.created_at, TradeRow.id)
            ).all()
            lots = session.scalars(
                select(ShareLotRow).where(
                    ShareLotRow.portfolio_id == portfolio_id,
                    ShareLotRow.status == ShareLotStatus.OPEN.value,
                )
            ).all()

            open_trades: list[Trade] = []
            closed_trades: list[Trade] = []
            for row in trades:
                trade = Trade.model_validate(row)
                if trade.status == TradeStatus.OPEN:
                    open_trades.append(trade)
                else:
                    closed_trades.append(trade)

            return PortfolioBook(
                portfolio=portfolio,
                open_trades=open_trades,
                closed_trades=closed_trades,
                open_lots=[ShareLot.model_validate(lot) for lot in lots],
            )
