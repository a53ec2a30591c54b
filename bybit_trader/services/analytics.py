from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from bybit_trader.core.models import Trade, TradingReport

ZERO = Decimal("0")
CENT = Decimal("0.01")


class AnalyticsService:
    @staticmethod
    def calculate_report(
        trades: List[Trade],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> TradingReport:
        """
        Performance statistics over the closed results in a list of journal trades.
        A trade's result is its realized_pnl: > 0 is a win, < 0 a loss.
        Entries without realized P&L (opening fills) are left out.
        """
        closed = [t for t in trades if t.realized_pnl is not None]
        if not closed:
            return TradingReport(
                total_trades=0,
                winning_trades=0,
                losing_trades=0,
                total_pnl=ZERO,
                win_rate=ZERO,
                average_win=ZERO,
                average_loss=ZERO,
                max_consecutive_losses=0,
                max_drawdown=ZERO,
                start_date=start,
                end_date=end,
            )

        # Streaks and drawdown are computed in chronological order
        ordered = sorted(closed, key=lambda t: t.created_at)
        results = [t.realized_pnl for t in ordered]

        count = len(results)
        wins = [r for r in results if r > 0]
        losses = [r for r in results if r < 0]
        total_pnl = sum(results, ZERO)
        win_rate = (Decimal(len(wins)) / Decimal(count) * 100).quantize(CENT, rounding=ROUND_HALF_UP)
        average_win = sum(wins, ZERO) / len(wins) if wins else ZERO
        average_loss = sum(losses, ZERO) / len(losses) if losses else ZERO

        # Max Consecutive Loss
        max_loss_streak = 0
        current_loss_streak = 0
        for r in results:
            if r < 0:
                current_loss_streak += 1
            else:
                max_loss_streak = max(max_loss_streak, current_loss_streak)
                current_loss_streak = 0
        max_loss_streak = max(max_loss_streak, current_loss_streak)

        # Max Drawdown: largest decline from a running peak of cumulative P&L (starting at 0)
        equity = ZERO
        peak = ZERO
        max_dd = ZERO
        for r in results:
            equity += r
            if equity > peak:
                peak = equity
            if peak - equity > max_dd:
                max_dd = peak - equity

        return TradingReport(
            total_trades=count,
            winning_trades=len(wins),
            losing_trades=len(losses),
            total_pnl=total_pnl,
            win_rate=win_rate,
            average_win=average_win,
            average_loss=average_loss,
            max_consecutive_losses=max_loss_streak,
            max_drawdown=max_dd,
            start_date=start or ordered[0].created_at,
            end_date=end or ordered[-1].created_at,
        )
