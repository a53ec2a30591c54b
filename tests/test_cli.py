from bybit_trader.cmd import cli


def test_no_command_prints_help():
    assert cli.main([]) == 1


def test_parser_place_order_arguments():
    args = cli.build_parser().parse_args(["place", "BTCUSDT", "buy", "0.01", "--type", "limit", "--price", "50000"])

    assert args.func is cli.cmd_place
    assert args.qty == "0.01"
    assert args.price == "50000"


def test_validation_error_exits_with_failure(monkeypatch):
    monkeypatch.setenv("BYBIT_API_KEY", "key")
    monkeypatch.setenv("BYBIT_API_SECRET", "secret")

    # Empty quantity is rejected before any request is made
    assert cli.main(["place", "BTCUSDT", "buy", ""]) == 1


def test_parser_add_accepts_negative_pnl():
    args = cli.build_parser().parse_args(["add", "BTCUSDT", "sell", "1", "40000", "--pnl", "-125.5"])

    assert args.func is cli.cmd_add
    assert args.pnl == "-125.5"
