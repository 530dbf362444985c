# backend/folio/db/models.py

import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; every stored timestamp uses this convention."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


class Portfolio(Base):
    __tablename__ = "portfolios"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    base_currency = Column(String, nullable=False, default="USD")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    holdings = relationship("Holding", back_populates="portfolio")

    def __repr__(self):
        return f"<Portfolio(name='{self.name}', base_currency='{self.base_currency}')>"


class Holding(Base):
    __tablename__ = "holdings"
    __table_args__ = (Index("holdings_ticker_market_idx", "ticker", "market"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    portfolio_id = Column(Integer, ForeignKey("portfolios.id"), nullable=False, index=True)
    ticker = Column(String, nullable=False)
    market = Column(String, nullable=False)
    buy_date = Column(Date, nullable=False)
    buy_price = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    portfolio = relationship("Portfolio", back_populates="holdings")

    def __repr__(self):
        return f"<Holding(ticker='{self.ticker}', market='{self.market}')>"


class MarketSymbol(Base):
    __tablename__ = "market_symbols"
    __table_args__ = (
        UniqueConstraint("ticker", "market", "provider", name="market_symbols_natural_key"),
        Index("market_symbols_lookup_idx", "ticker", "market"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String, nullable=False)
    market = Column(String, nullable=False)
    name = Column(String)
    currency = Column(String)
    exchange = Column(String)
    provider = Column(String, nullable=False)
    last_verified_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<MarketSymbol(ticker='{self.ticker}', market='{self.market}', provider='{self.provider}')>"


class QuoteCache(Base):
    __tablename__ = "quote_cache"
    __table_args__ = (
        UniqueConstraint("ticker", "market", "source", "as_of", name="quote_cache_natural_key"),
        Index("quote_cache_lookup_idx", "ticker", "market", "expires_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String, nullable=False)
    market = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String)
    # As reported by the provider: a date or an ISO timestamp.
    as_of = Column(String, nullable=False)
    source = Column(String, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<QuoteCache(ticker='{self.ticker}', source='{self.source}', as_of='{self.as_of}')>"


class PriceHistory(Base):
    __tablename__ = "price_history"
    __table_args__ = (
        UniqueConstraint(
            "ticker", "market", "source", "interval", "date", name="price_history_natural_key"
        ),
        Index("price_history_lookup_idx", "ticker", "market", "interval", "date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    ticker = Column(String, nullable=False)
    market = Column(String, nullable=False)
    interval = Column(String, nullable=False, default="1d")
    price = Column(Float, nullable=False)
    currency = Column(String)
    date = Column(Date, nullable=False)
    source = Column(String, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PriceHistory(ticker='{self.ticker}', date='{self.date}', source='{self.source}')>"


class FxRate(Base):
    __tablename__ = "fx_rates"
    __table_args__ = (
        UniqueConstraint("base", "quote", "source", name="fx_rates_natural_key"),
        Index("fx_rates_lookup_idx", "base", "quote", "expires_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    base = Column(String, nullable=False)
    quote = Column(String, nullable=False)
    rate = Column(Float, nullable=False)
    source = Column(String, nullable=False)
    fetched_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<FxRate(base='{self.base}', quote='{self.quote}', source='{self.source}')>"
