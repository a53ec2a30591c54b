import csv
import html
import io
import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from bybit_trader.config.logging import logger
from bybit_trader.core.exceptions import PersistenceError, ValidationError
from bybit_trader.core.models import OrderStatus, OrderType, Side, Trade
from bybit_trader.infrastructure.supabase.mapper import TradeRowMapper

HEADERS = [
    "Date", "Time", "Symbol", "Side", "Type", "Quantity",
    "Price", "Amount", "Fee", "Status", "Notes", "Tags",
]
TAG_SEPARATOR = "; "
DATE_FORMAT = "%d.%m.%Y"
TIME_FORMAT = "%H:%M:%S"


class ExportFormat(Enum):
    CSV = "csv"
    HTML = "html"  # HTML table, opened by spreadsheet software
    JSON = "json"

    @property
    def extension(self) -> str:
        return self.value


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _number(value: Decimal) -> str:
    """Plain text without trailing zeros; whole numbers keep one decimal place (500.0)."""
    text = format(value.normalize(), "f")
    return text if "." in text else text + ".0"


def _cells(trade: Trade) -> List[str]:
    created = _utc(trade.created_at)
    return [
        created.strftime(DATE_FORMAT),
        created.strftime(TIME_FORMAT),
        trade.symbol,
        trade.side.value,
        trade.order_type.value,
        _number(trade.quantity),
        _number(trade.price),
        _number(trade.amount),
        _number(trade.fee),
        trade.status.value,
        trade.notes or "",
        TAG_SEPARATOR.join(trade.tags),
    ]


class TradeExporter:
    """
    Renders journal trades as CSV, an HTML table or JSON.
    All render methods are pure; an empty input gives a header-only / empty document.
    """

    @staticmethod
    def to_csv(trades: Iterable[Trade]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(HEADERS)
        for trade in trades:
            writer.writerow(_cells(trade))
        text = buffer.getvalue()
        return text[:-1] if text.endswith("\n") else text

    @staticmethod
    def from_csv(text: str) -> List[Trade]:
        """
        Parses CSV produced by to_csv back into trades.
        Ids and owner are not exported, so they come back empty.
        Tags are split on "; ", so a tag containing that separator splits in two.
        """
        reader = csv.reader(io.StringIO(text))
        header = next(reader, None)
        if header is None:
            return []
        if header != HEADERS:
            raise ValidationError(f"Unexpected CSV header: {header}")

        trades = []
        for line_no, cells in enumerate(reader, start=2):
            if not cells:
                continue
            if len(cells) != len(HEADERS):
                raise ValidationError(f"Line {line_no}: expected {len(HEADERS)} columns, got {len(cells)}")
            date, time_, symbol, side, order_type, qty, price, _amount, fee, status, notes, tags = cells
            try:
                created_at = datetime.strptime(
                    f"{date} {time_}", f"{DATE_FORMAT} {TIME_FORMAT}"
                ).replace(tzinfo=timezone.utc)
                trades.append(Trade(
                    id="",
                    user_id="",
                    symbol=symbol,
                    side=Side(side),
                    order_type=OrderType(order_type),
                    quantity=Decimal(qty),
                    price=Decimal(price),
                    fee=Decimal(fee),
                    status=OrderStatus(status),
                    created_at=created_at,
                    updated_at=created_at,
                    notes=notes or None,
                    tags=tuple(t for t in tags.split(TAG_SEPARATOR) if t),
                ))
            except (ValueError, InvalidOperation) as e:
                raise ValidationError(f"Line {line_no}: {e}") from e
        return trades

    @staticmethod
    def to_html_table(trades: Iterable[Trade]) -> str:
        header_row = "".join(f"<th>{html.escape(h)}</th>" for h in HEADERS)
        data_rows = "".join(
            "<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in _cells(trade)) + "</tr>"
            for trade in trades
        )
        return (
            "<!DOCTYPE html>\n"
            "<html>\n"
            "<head>\n"
            '    <meta charset="UTF-8">\n'
            "    <title>Trades</title>\n"
            "</head>\n"
            "<body>\n"
            '    <table border="1">\n'
            f"        <tr>{header_row}</tr>\n"
            f"        {data_rows}\n"
            "    </table>\n"
            "</body>\n"
            "</html>\n"
        )

    @staticmethod
    def to_json(trades: Iterable[Trade]) -> str:
        rows = [TradeRowMapper.to_row(trade) for trade in trades]
        return json.dumps(rows, indent=2, ensure_ascii=False)

    @staticmethod
    def render(trades: Sequence[Trade], fmt: ExportFormat) -> str:
        if fmt is ExportFormat.CSV:
            return TradeExporter.to_csv(trades)
        if fmt is ExportFormat.HTML:
            return TradeExporter.to_html_table(trades)
        return TradeExporter.to_json(trades)

    @staticmethod
    def export(
        trades: Sequence[Trade],
        fmt: ExportFormat,
        directory: Union[str, Path],
        now: Optional[datetime] = None,
    ) -> Path:
        """Writes trades_<unix seconds>.<ext> into directory and returns its path."""
        now = now or datetime.now(timezone.utc)
        target_dir = Path(directory)
        path = target_dir / f"trades_{int(now.timestamp())}.{fmt.extension}"
        content = TradeExporter.render(trades, fmt)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write export {path}: {e}")
            raise PersistenceError(f"Failed to write export file {path}: {e}") from e
        logger.info(f"Exported {len(trades)} trades to {path}")
        return path
