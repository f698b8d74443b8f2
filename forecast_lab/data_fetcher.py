import time

import ccxt
import pandas as pd

DEFAULT_SLEEP_SEC = 0.2
MAX_PAGES = 50_000  # hard safety upper bound


def fetch_rates(exchange_name: str, pair: str, timeframe: str, since_ts: int) -> pd.DataFrame:
    """Fetches close prices for a pair as ``ts, pair, rate`` rows, paging through the exchange history."""
    exchange = getattr(ccxt, exchange_name)()

    if not exchange.has.get("fetchOHLCV", False):
        raise NotImplementedError(f"{exchange_name} does not support fetching OHLCV data.")

    all_candles = []
    limit = 1000
    pages = 0
    last_ts = None

    sleep_sec = max((getattr(exchange, "rateLimit", 200) / 1000.0), DEFAULT_SLEEP_SEC)

    while pages < MAX_PAGES:
        pages += 1
        candles = exchange.fetch_ohlcv(pair, timeframe, since=since_ts, limit=limit)
        if not candles:
            break

        all_candles.extend(candles)
        newest_ts = candles[-1][0]

        # timestamp must advance or we loop forever
        if last_ts is not None and newest_ts <= last_ts:
            break
        last_ts = newest_ts
        since_ts = newest_ts + 1

        if len(candles) < limit:
            break
        time.sleep(sleep_sec)

    if not all_candles:
        return pd.DataFrame(columns=["ts", "pair", "rate"])

    df = pd.DataFrame(all_candles, columns=["ts", "open", "high", "low", "close", "volume"])
    df["pair"] = pair
    df = df.rename(columns={"close": "rate"})
    return df[["ts", "pair", "rate"]].drop_duplicates(subset="ts")
