"""Scan service — runs the indicator → evaluator → entry pipeline over a symbol universe.

Each symbol is analysed independently; a failure yields ``{symbol, error}``
for that symbol and never aborts the batch.  Symbols are processed in
batches of ``scan_concurrency`` with ``asyncio.gather``.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Optional

from screener.backtest.service import build_snapshot
from screener.backtest.session import market_state
from screener.config import Config
from screener.market.yahoo_client import is_likely_invalid_symbol, normalize_symbol
from screener.repos.store import SignalStore
from screener.risk.entry import MIN_NET_RR, REJECTED_ENTRY_TYPES
from screener.risk.intraday_entry import calculate_intraday_entry
from screener.risk.swing_entry import calculate_swing_entry
from screener.strategy import indicators as ind
from screener.strategy.gap import evaluate_gap
from screener.strategy.intraday import STRETCH_ZONE_LABEL, evaluate_intraday
from screener.strategy.long_term import evaluate_long_term
from screener.strategy.models import POSITIVE, Fundamentals, IndicatorContext
from screener.strategy.quality import build_quality_swing_list, candidate_net_rr
from screener.strategy.swing import evaluate_swing

logger = logging.getLogger("screener")

INVALID_SYMBOL_ERROR = "Invalid NSE symbol"

# Higher tier sorts first among intraday positives
_INTRADAY_TIERS = {
    "Strong Intraday Buy": 3,
    "Momentum Continuation": 2,
    "Breakout Candidate": 1,
}


def _round_or_none(value: Optional[float], digits: int = 2) -> Optional[float]:
    return round(value, digits) if value is not None else None


def is_intraday_positive(stock: dict) -> bool:
    """Positive verdict, a tradeable entry type and net RR of at least 1."""
    if stock.get("error"):
        return False
    if (stock.get("intraday_view") or {}).get("sentiment") != POSITIVE:
        return False
    if stock.get("entry_type") in REJECTED_ENTRY_TYPES:
        return False
    rr = candidate_net_rr(stock)
    return rr is not None and rr >= MIN_NET_RR


def rank_intraday_positives(results: list[dict]) -> list[dict]:
    positives = [s for s in results if is_intraday_positive(s)]
    positives.sort(
        key=lambda s: (
            _INTRADAY_TIERS.get(s["intraday_view"]["label"], 0),
            candidate_net_rr(s) or 0.0,
        ),
        reverse=True,
    )
    return positives


class ScanService:
    """Screens NSE symbols for intraday and swing setups.

    Args:
        client: Market-data client (``fetch_candles``, ``fetch_price_context``).
        config: Application config.
        store: Optional snapshot store; intraday scans are persisted when set.
    """

    def __init__(self, client, config: Config, store: Optional[SignalStore] = None) -> None:
        self._client = client
        self._config = config
        self._store = store

    # ── Shared pipeline ──────────────────────────────────────────────────

    async def _load(self, symbol: str, horizon: str) -> tuple[dict, IndicatorContext]:
        """Fetch market data for *symbol* and build the indicator context."""
        resolved = normalize_symbol(symbol)
        price_ctx = await self._client.fetch_price_context(resolved)
        period = self._config.rsi_period
        candles = await self._client.fetch_candles(resolved, max(60, period + 20))

        technical = ind.select_candles_for_technicals(candles, 20)
        last = technical[-1] if technical else None
        rsi = ind.compute_rsi([c.close for c in technical], period)
        volume = ind.detect_volume_spike(technical)
        support, resistance = ind.support_resistance(technical)
        vwap = ind.calculate_intraday_vwap(technical)
        swing_vwap = ind.calculate_swing_vwap(technical, 5)
        volatility = ind.estimate_atr_percent(technical, 14)

        ctx = IndicatorContext(
            price=price_ctx.current_price,
            rsi=rsi,
            vwap=vwap,
            swing_vwap=swing_vwap,
            support=support,
            resistance=resistance,
            volume_spike=volume.volume_spike,
            volatility_pct=volatility,
            candle_color=ind.candle_color(last),
            gap_open_pct=price_ctx.gap_open_pct,
            gap_now_pct=price_ctx.gap_now_pct,
            market_cap=price_ctx.market_cap,
        )
        base = {
            "symbol": symbol,
            "resolved_symbol": resolved,
            "company_name": price_ctx.company_name or symbol,
            "open": price_ctx.open,
            "prev_close": price_ctx.prev_close,
            "current_price": price_ctx.current_price,
            "gap_open_pct": _round_or_none(price_ctx.gap_open_pct),
            "gap_now_pct": _round_or_none(price_ctx.gap_now_pct),
            "market_cap": price_ctx.market_cap,
            "rsi": rsi,
            "rsi_category": ind.categorize_rsi(rsi),
            "candle_color": ctx.candle_color,
            "volume": {
                "volume_spike": volume.volume_spike,
                "avg_volume": volume.avg_volume,
                "latest_volume": volume.latest_volume,
            },
            "vwap": vwap if horizon == "intraday" else swing_vwap,
            "swing_vwap": swing_vwap,
            "support": support,
            "resistance": resistance,
            "volatility_pct": _round_or_none(volatility),
        }
        return base, ctx

    # ── Per-symbol analysis ──────────────────────────────────────────────

    async def analyze_intraday(self, symbol: str) -> dict:
        base, ctx = await self._load(symbol, "intraday")
        view = evaluate_intraday(ctx)
        plan = calculate_intraday_entry(
            ctx,
            cost_bps=self._config.intraday_cost_bps,
            force_scalp=view.label == STRETCH_ZONE_LABEL,
        )
        return {
            **base,
            "intraday_view": view.to_dict(),
            "final_sentiment": view.sentiment,
            **(plan.to_dict() if plan else {}),
        }

    async def analyze_swing(self, symbol: str) -> dict:
        base, ctx = await self._load(symbol, "swing")
        view = evaluate_swing(ctx)
        plan = calculate_swing_entry(ctx, cost_bps=self._config.swing_cost_bps)
        return {
            **base,
            "swing_view": view.to_dict(),
            "final_sentiment": view.sentiment,
            **(plan.to_dict() if plan else {}),
        }

    async def analyze_symbol(self, symbol: str, fundamentals: Optional[dict] = None) -> dict:
        """Gap decision plus swing and long-term views for one symbol."""
        base, ctx = await self._load(symbol, "swing")
        breakout = ind.detect_breakout(ctx.price, ctx.resistance) or (
            ctx.has_price
            and ctx.vwap is not None
            and ctx.price > ctx.vwap
            and ctx.candle_color == "green"
        )
        confirmation = bool(
            ctx.volume_spike and breakout and ctx.has_price
            and ctx.vwap is not None and ctx.price > ctx.vwap
        )
        gap = ctx.gap_now_pct if ctx.gap_now_pct is not None else ctx.gap_open_pct
        decision = evaluate_gap(gap, ctx.rsi, confirmation, ctx.candle_color)
        swing_view = evaluate_swing(ctx)
        long_term_view = evaluate_long_term(
            ctx.rsi,
            ctx.market_cap,
            Fundamentals.from_dict(fundamentals) if fundamentals else None,
        )
        return {
            **base,
            "breakout": bool(breakout),
            "decision": decision.to_dict(),
            "swing_view": swing_view.to_dict(),
            "long_term_view": long_term_view.to_dict(),
            "final_sentiment": decision.sentiment,
        }

    # ── Batch scans ──────────────────────────────────────────────────────

    async def _guarded(self, analyze: Callable[[str], Awaitable[dict]], symbol: str) -> dict:
        if is_likely_invalid_symbol(symbol):
            return {"symbol": symbol, "error": INVALID_SYMBOL_ERROR}
        try:
            return await analyze(symbol)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Scan of %s failed: %s", symbol, exc)
            return {"symbol": symbol, "error": str(exc) or "Failed to process symbol"}

    async def _scan(
        self, analyze: Callable[[str], Awaitable[dict]], symbols: Iterable[str],
    ) -> list[dict]:
        items = [str(s).strip() for s in symbols if str(s).strip()]
        size = self._config.scan_concurrency
        results: list[dict] = []
        for i in range(0, len(items), size):
            batch = items[i:i + size]
            results.extend(
                await asyncio.gather(*(self._guarded(analyze, s) for s in batch))
            )
        return results

    def _symbols(self, symbols: Optional[Iterable[str]]) -> list[str]:
        return list(symbols) if symbols else list(self._config.scan_universe)

    async def scan_intraday(
        self, symbols: Optional[Iterable[str]] = None, now: Optional[datetime] = None,
    ) -> dict:
        """Scan for intraday longs; persists a snapshot when a store is configured."""
        results = await self._scan(self.analyze_intraday, self._symbols(symbols))
        positives = rank_intraday_positives(results)
        meta = {
            "rsi_period": self._config.rsi_period,
            "cost_bps": self._config.intraday_cost_bps,
            "market_state": market_state(now),
        }
        snapshot_id = None
        if self._store is not None:
            stored = self._store.save_snapshot(
                build_snapshot(positives, len(results), meta, now)
            )
            snapshot_id = stored.get("id")
        logger.info(
            "Intraday scan: %d scanned, %d positive", len(results), len(positives),
        )
        return {
            "positive_stocks": positives,
            "total_scanned": len(results),
            "positive_count": len(positives),
            "snapshot_id": snapshot_id,
            "meta": meta,
            "results": results,
        }

    async def scan_swing(self, symbols: Optional[Iterable[str]] = None) -> dict:
        results = await self._scan(self.analyze_swing, self._symbols(symbols))
        ranked = build_quality_swing_list(results)
        logger.info(
            "Swing scan: %d scanned, %d above quality %d",
            len(results), len(ranked["stocks"]), ranked["quality_threshold"],
        )
        return {
            "positive_stocks": ranked["stocks"],
            "total_scanned": len(results),
            "positive_count": len(ranked["stocks"]),
            "quality_threshold": ranked["quality_threshold"],
            "meta": {
                "rsi_period": self._config.rsi_period,
                "cost_bps": self._config.swing_cost_bps,
            },
            "results": results,
        }

    async def scan(
        self,
        symbols: Optional[Iterable[str]] = None,
        fundamentals: Optional[dict[str, dict]] = None,
    ) -> dict:
        """Gap/swing/long-term overview for each symbol."""
        fundamentals = fundamentals or {}

        async def _analyze(symbol: str) -> dict:
            return await self.analyze_symbol(symbol, fundamentals.get(symbol))

        results = await self._scan(_analyze, self._symbols(symbols))
        return {"results": results, "total_scanned": len(results)}
