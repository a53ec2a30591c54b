import argparse
import sys
from datetime import datetime, timezone

from bybit_trader.config.logging import logger, setup_logging
from bybit_trader.config.settings import Settings, load_settings
from bybit_trader.core.exceptions import AppError
from bybit_trader.core.models import KlineInterval, OrderType, PositionSide, Side, TimeInForce
from bybit_trader.infrastructure.bybit.client import BybitClient
from bybit_trader.infrastructure.supabase.client import SupabaseAuth, SupabaseTradeStore
from bybit_trader.services.analytics import AnalyticsService
from bybit_trader.services.exporter import ExportFormat, TradeExporter
from bybit_trader.services.journal import Period, build_manual_trade, filter_trades
from bybit_trader.services.syncer import SyncService


def _client(settings: Settings) -> BybitClient:
    return BybitClient.from_settings(settings)


def _store(settings: Settings) -> SupabaseTradeStore:
    settings.require_supabase()
    auth = SupabaseAuth(
        settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, timeout=settings.SUPABASE_TIMEOUT_SECONDS
    ).sign_in(settings.SUPABASE_EMAIL, settings.SUPABASE_PASSWORD)
    return SupabaseTradeStore(
        settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, auth, timeout=settings.SUPABASE_TIMEOUT_SECONDS
    )


def _date(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def _journal_trades(args, settings: Settings):
    store = _store(settings)
    trades = store.get_trades(limit=args.limit)
    end = args.end.replace(hour=23, minute=59, second=59) if args.end else None
    return filter_trades(
        trades,
        period=Period(args.period),
        search=args.search,
        tags=args.tag,
        realized_pnl=args.pnl,
        start=args.start,
        end=end,
    )


def cmd_balance(args, settings: Settings):
    for b in _client(settings).fetch_balance(account_type=args.account_type):
        print(f"{b.coin:<8} wallet={b.wallet_balance} available={b.available_balance} upnl={b.unrealized_pnl}")


def cmd_positions(args, settings: Settings):
    positions = _client(settings).fetch_positions(settle_coin=args.settle_coin)
    if not positions:
        print("No open positions.")
    for p in positions:
        print(
            f"{p.symbol:<12} {p.side.value:<5} size={p.size} entry={p.entry_price} "
            f"mark={p.mark_price} lev={p.leverage}x upnl={p.unrealized_pnl}"
        )


def cmd_ticker(args, settings: Settings):
    ticker = _client(settings).fetch_ticker(args.symbol)
    if ticker is None:
        print(f"No ticker for {args.symbol}")
        return
    print(
        f"{ticker.symbol} last={ticker.last_price} 24h={ticker.price_24h_pcnt} "
        f"high={ticker.high_price_24h} low={ticker.low_price_24h} vol={ticker.volume_24h}"
    )


def cmd_klines(args, settings: Settings):
    klines = _client(settings).fetch_klines(args.symbol, KlineInterval(args.interval), args.limit)
    for k in klines:
        print(f"{k.start_time.isoformat()} O={k.open} H={k.high} L={k.low} C={k.close} V={k.volume}")


def cmd_orders(args, settings: Settings):
    for o in _client(settings).fetch_order_history(symbol=args.symbol, limit=args.limit):
        print(
            f"{o.create_time.isoformat()} {o.order_id} {o.symbol} {o.side.value} {o.order_type.value} "
            f"qty={o.qty} filled={o.executed_qty} avg={o.avg_price} {o.status.value}"
        )


def cmd_place(args, settings: Settings):
    result = _client(settings).place_order(
        args.symbol,
        Side(args.side),
        OrderType(args.type),
        args.qty,
        price=args.price,
        time_in_force=TimeInForce(args.tif),
    )
    print(f"Order placed: {result.order_id} (link id {result.order_link_id})")


def cmd_cancel(args, settings: Settings):
    result = _client(settings).cancel_order(args.symbol, args.order_id)
    print(f"Order cancelled: {result.order_id}")


def cmd_close(args, settings: Settings):
    result = _client(settings).close_position(args.symbol, PositionSide(args.side), args.qty)
    print(f"Close order placed: {result.order_id}")


def cmd_journal(args, settings: Settings):
    for t in _journal_trades(args, settings):
        tags = f" [{', '.join(t.tags)}]" if t.tags else ""
        notes = f" ({t.notes})" if t.notes else ""
        print(
            f"{t.created_at.isoformat()} {t.symbol} {t.side.value} {t.order_type.value} "
            f"qty={t.quantity} price={t.price} fee={t.fee} {t.status.value}{tags}{notes}"
        )


def cmd_add(args, settings: Settings):
    store = _store(settings)
    trade = build_manual_trade(
        store.user_id,
        args.symbol,
        Side(args.side),
        OrderType(args.type),
        args.qty,
        args.price,
        fee=args.fee,
        notes=args.notes,
        tags=args.tag,
        realized_pnl=args.pnl,
    )
    saved = store.save_trade(trade)
    print(f"Trade saved: {saved.id}")


def cmd_export(args, settings: Settings):
    trades = _journal_trades(args, settings)
    path = TradeExporter.export(trades, ExportFormat(args.format), args.output or settings.EXPORT_DIR)
    print(f"Exported {len(trades)} trades to {path}")


def cmd_report(args, settings: Settings):
    trades = _journal_trades(args, settings)
    report = AnalyticsService.calculate_report(trades, start=args.start, end=args.end)
    print(f"Trades: {report.total_trades} (wins {report.winning_trades}, losses {report.losing_trades})")
    print(f"Total P&L: {report.total_pnl}")
    print(f"Win rate: {report.win_rate}%")
    print(f"Average win: {report.average_win}  Average loss: {report.average_loss}")
    print(f"Max consecutive losses: {report.max_consecutive_losses}")
    print(f"Max drawdown: {report.max_drawdown}")


def cmd_sync(args, settings: Settings):
    saved = SyncService(_client(settings), _store(settings)).run_once(symbol=args.symbol, limit=args.limit)
    print(f"Synced {len(saved)} trades.")


def _add_journal_filters(parser: argparse.ArgumentParser):
    parser.add_argument("--period", choices=[p.value for p in Period], default=Period.ALL.value)
    parser.add_argument("--search", help="Match symbol, notes or tags")
    parser.add_argument("--tag", action="append", help="Keep trades with this tag (repeatable)")
    parser.add_argument("--start", type=_date, help="YYYY-MM-DD")
    parser.add_argument("--end", type=_date, help="YYYY-MM-DD (inclusive)")
    parser.add_argument("--limit", type=int, default=1000)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bybit Trader CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p = subparsers.add_parser("balance", help="Show wallet balance")
    p.add_argument("--account-type", default="UNIFIED")
    p.set_defaults(func=cmd_balance)

    p = subparsers.add_parser("positions", help="Show open positions")
    p.add_argument("--settle-coin", default="USDT")
    p.set_defaults(func=cmd_positions)

    p = subparsers.add_parser("ticker", help="Show 24h ticker")
    p.add_argument("symbol")
    p.set_defaults(func=cmd_ticker)

    p = subparsers.add_parser("klines", help="Show candles")
    p.add_argument("symbol")
    p.add_argument("--interval", choices=[i.value for i in KlineInterval], default=KlineInterval.H1.value)
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=cmd_klines)

    p = subparsers.add_parser("orders", help="Show order history")
    p.add_argument("--symbol")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=cmd_orders)

    p = subparsers.add_parser("place", help="Place an order")
    p.add_argument("symbol")
    p.add_argument("side", choices=[s.value for s in Side])
    p.add_argument("qty")
    p.add_argument("--type", choices=[OrderType.MARKET.value, OrderType.LIMIT.value], default=OrderType.MARKET.value)
    p.add_argument("--price")
    p.add_argument("--tif", choices=[t.value for t in TimeInForce], default=TimeInForce.GTC.value)
    p.set_defaults(func=cmd_place)

    p = subparsers.add_parser("cancel", help="Cancel an order")
    p.add_argument("symbol")
    p.add_argument("order_id")
    p.set_defaults(func=cmd_cancel)

    p = subparsers.add_parser("close", help="Close a position with a market order")
    p.add_argument("symbol")
    p.add_argument("side", choices=[s.value for s in PositionSide], help="Side of the open position")
    p.add_argument("qty")
    p.set_defaults(func=cmd_close)

    p = subparsers.add_parser("journal", help="List journal trades")
    _add_journal_filters(p)
    p.set_defaults(func=cmd_journal)

    p = subparsers.add_parser("add", help="Add a manual journal entry")
    p.add_argument("symbol")
    p.add_argument("side", choices=[s.value for s in Side])
    p.add_argument("qty")
    p.add_argument("price")
    p.add_argument("--type", choices=[t.value for t in OrderType], default=OrderType.MARKET.value)
    p.add_argument("--fee", default="0")
    p.add_argument("--notes")
    p.add_argument("--tag", action="append")
    p.add_argument("--pnl", help="Realized P&L of the trade (may be negative)")
    p.set_defaults(func=cmd_add)

    p = subparsers.add_parser("export", help="Export journal trades to a file")
    _add_journal_filters(p)
    p.add_argument("--format", choices=[f.value for f in ExportFormat], default=ExportFormat.CSV.value)
    p.add_argument("--output", help="Directory (defaults to EXPORT_DIR)")
    p.set_defaults(func=cmd_export)

    p = subparsers.add_parser("report", help="Trading performance report")
    _add_journal_filters(p)
    p.set_defaults(func=cmd_report)

    p = subparsers.add_parser("sync", help="Copy filled orders into the journal")
    p.add_argument("--symbol")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=cmd_sync)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = load_settings()
        setup_logging(level=settings.LOG_LEVEL)
        args.func(args, settings)
    except AppError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
