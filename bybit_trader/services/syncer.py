from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from bybit_trader.config.logging import logger
from bybit_trader.core.models import OrderHistory, OrderStatus, Trade
from bybit_trader.infrastructure.bybit.client import BybitClient
from bybit_trader.infrastructure.supabase.client import SupabaseTradeStore


def trade_from_order(
    order: OrderHistory,
    user_id: str,
    now: Optional[datetime] = None,
    realized_pnl: Optional[Decimal] = None,
) -> Trade:
    """Journal entry for a filled exchange order."""
    now = now or datetime.now(timezone.utc)
    executed_price = order.avg_price or order.price
    quantity = order.executed_qty or order.qty
    return Trade(
        id="",
        user_id=user_id,
        symbol=order.symbol,
        side=order.side,
        order_type=order.order_type,
        quantity=quantity,
        price=order.price or executed_price,
        fee=order.cum_exec_fee,
        status=OrderStatus.FILLED,
        created_at=order.create_time,
        updated_at=now,
        executed_price=executed_price,
        total_amount=quantity * executed_price,
        bybit_order_id=order.order_id,
        realized_pnl=realized_pnl,
    )


class SyncService:
    """
    Copies filled exchange orders into the trade journal.
    Orders already journalled (matched by bybit_order_id) are skipped.
    Closing fills carry their realized P&L from the closed-pnl records.
    """

    def __init__(self, source: BybitClient, destination: SupabaseTradeStore):
        self.source = source
        self.destination = destination

    def _closed_pnl_by_order(self, symbol: Optional[str], limit: int) -> Dict[str, Decimal]:
        pnl: Dict[str, Decimal] = {}
        for record in self.source.fetch_closed_pnl(symbol=symbol, limit=limit):
            # A partially closed order can produce several records
            pnl[record.order_id] = pnl.get(record.order_id, Decimal("0")) + record.closed_pnl
        return pnl

    def run_once(self, symbol: Optional[str] = None, limit: int = 50) -> List[Trade]:
        logger.info("Starting journal sync...")

        orders = self.source.fetch_order_history(symbol=symbol, limit=limit)
        filled = [o for o in orders if o.status is OrderStatus.FILLED]
        if not filled:
            logger.info("No filled orders returned from Bybit.")
            return []

        new_orders = [
            o for o in filled
            if self.destination.find_by_bybit_order_id(o.order_id) is None
        ]
        if not new_orders:
            logger.info("No new trades to sync.")
            return []

        closed_pnl = self._closed_pnl_by_order(symbol, limit)

        # Oldest first so the journal reads chronologically
        logger.info(f"Found {len(new_orders)} new filled orders. Syncing...")
        saved = []
        for order in sorted(new_orders, key=lambda o: o.create_time):
            trade = trade_from_order(
                order, self.destination.user_id, realized_pnl=closed_pnl.get(order.order_id)
            )
            saved.append(self.destination.save_trade(trade))

        logger.info("Journal sync completed.")
        return saved
