"""NSE Screener — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


_DEFAULT_UNIVERSE = (
    "RELIANCE,TCS,HDFCBANK,ICICIBANK,INFY,SBIN,BHARTIARTL,ITC,LT,AXISBANK,"
    "KOTAKBANK,HINDUNILVR,BAJFINANCE,MARUTI,SUNPHARMA,TATAMOTORS,TITAN,"
    "ULTRACEMCO,NTPC,POWERGRID"
)


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str = "data/screener.db"
    data_dir: str = "data"
    log_level: str = "INFO"
    api_port: int = 8080
    intraday_cost_bps: float = 18.0
    swing_cost_bps: float = 30.0
    backtest_intervals: tuple[str, ...] = ("1m", "2m", "5m")
    scan_concurrency: int = 3
    rsi_period: int = 14
    signal_history_limit: int = 500
    backtest_history_limit: int = 1000
    scan_universe: tuple[str, ...] = field(
        default_factory=lambda: tuple(_DEFAULT_UNIVERSE.split(","))
    )
    yahoo_base_url: str = "https://query1.finance.yahoo.com"


def _parse_number(name: str, default: str, cast=float):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for environment variable {name}: {raw!r}"
        ) from None


def _parse_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable
    when a numeric variable cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    intraday_cost_bps = _parse_number("INTRADAY_ROUND_TRIP_COST_BPS", "18")
    swing_cost_bps = _parse_number("SWING_ROUND_TRIP_COST_BPS", "30")
    for name, value in (
        ("INTRADAY_ROUND_TRIP_COST_BPS", intraday_cost_bps),
        ("SWING_ROUND_TRIP_COST_BPS", swing_cost_bps),
    ):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")

    scan_concurrency = _parse_number("SCAN_CONCURRENCY", "3", int)
    if scan_concurrency < 1:
        raise ValueError(
            f"SCAN_CONCURRENCY must be at least 1, got {scan_concurrency}"
        )

    intervals = _parse_list("INTRADAY_BACKTEST_INTERVALS", "1m,2m,5m")
    if not intervals:
        raise ValueError("INTRADAY_BACKTEST_INTERVALS must list at least one interval")

    # Clamped rather than rejected, matching the scan endpoints.
    rsi_period = min(max(_parse_number("RSI_PERIOD", "14", int), 2), 50)

    return Config(
        db_path=os.environ.get("DB_PATH", "data/screener.db"),
        data_dir=os.environ.get("DATA_DIR", "data"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_parse_number("API_PORT", "8080", int),
        intraday_cost_bps=intraday_cost_bps,
        swing_cost_bps=swing_cost_bps,
        backtest_intervals=intervals,
        scan_concurrency=scan_concurrency,
        rsi_period=rsi_period,
        signal_history_limit=max(
            100, _parse_number("SIGNAL_HISTORY_LIMIT", "500", int)
        ),
        backtest_history_limit=max(
            100, _parse_number("BACKTEST_HISTORY_LIMIT", "1000", int)
        ),
        scan_universe=_parse_list("SCAN_UNIVERSE", _DEFAULT_UNIVERSE),
        yahoo_base_url=os.environ.get(
            "YAHOO_BASE_URL", "https://query1.finance.yahoo.com"
        ),
    )
