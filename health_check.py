"""Health check - verify credentials, exchange state and the local ledger."""
import asyncio
from datetime import datetime

from weather_agent.config import config, get_city_config
from weather_agent.errors import TraderError
from weather_agent.kalshi import KalshiAuth, KalshiExchange
from weather_agent.trading.ledger import JsonLedgerStore, recompute_stats


async def main():
    city = get_city_config(config.city)
    print("=== Weather Agent Health Check ===")
    print(f"Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"City: {city.name} ({city.series_ticker}) | "
          f"{'LIVE' if config.live_trading else 'PAPER'}\n")

    # 1. Credentials
    print("1. API Credentials")
    auth = KalshiAuth()
    ok, message = auth.validate_for_trading()
    if not ok:
        print(f"   ❌ {message}")
        return
    print(f"   ✅ Auth configured (Key: {auth.key_id[:8]}...)")

    async with KalshiExchange(city.series_ticker, auth=auth) as exchange:
        # 2. Balance
        print("\n2. Account Balance")
        try:
            balance = await exchange.balance()
            floor = config.trading.min_balance_cents
            mark = "✅" if balance >= floor else "⚠️"
            print(f"   {mark} Balance: ${balance / 100:.2f} (floor ${floor / 100:.2f})")
        except TraderError as e:
            print(f"   ❌ Error getting balance: {e}")
            return

        # 3. Active market
        print("\n3. Active Market")
        try:
            market = await exchange.active_market()
            if market is None:
                print("   No open market for this series")
            else:
                print(f"   ✅ {market.ticker} | yes {market.yes_bid}/{market.yes_ask}¢ "
                      f"no {market.no_bid}/{market.no_ask}¢ | "
                      f"closes in {market.minutes_to_expiry():.0f} min")
        except TraderError as e:
            print(f"   ❌ Error fetching market: {e}")

        # 4. Positions
        print("\n4. Open Positions")
        try:
            positions = [p for p in await exchange.positions()
                         if p.ticker.startswith(city.series_ticker)]
            if positions:
                for p in positions:
                    print(f"      - {p.ticker}: {p.count} {p.side.value.upper()}")
            else:
                print("   No positions in this series")
        except TraderError as e:
            print(f"   ❌ Error fetching positions: {e}")

        # 5. Resting orders
        print("\n5. Resting Orders")
        try:
            orders = await exchange.resting_orders()
            if orders:
                for o in orders:
                    side = o.side.value if o.side else "?"
                    print(f"      - {o.ticker} {side} {o.remaining_count} left ({o.order_id})")
            else:
                print("   No resting orders")
        except TraderError as e:
            print(f"   ❌ Error fetching orders: {e}")

    # 6. Ledger
    print("\n6. Ledger")
    try:
        entries = JsonLedgerStore(config.data_dir).read()
        stats = recompute_stats(entries)
        print(f"   ✅ {stats.total_trades} entries | {stats.wins}W-{stats.losses}L "
              f"({stats.win_rate:.0%}) | pending {stats.pending} | "
              f"P&L {stats.total_pnl_cents:+d}¢ | streak {stats.current_streak:+d}")
    except TraderError as e:
        print(f"   ❌ {e}")

    print("\n=== Health Check Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
