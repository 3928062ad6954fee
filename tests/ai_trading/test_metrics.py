from ai_trading.risk_engine.metrics import HISTOGRAM_WINDOW, MetricRegistry, Timer


def test_counters_are_keyed_by_sorted_labels():
    registry = MetricRegistry()
    registry.inc("orders_submitted_total", labels={"side": "buy", "op": "place_order"})
    registry.inc("orders_submitted_total", labels={"op": "place_order", "side": "buy"}, amount=2)

    assert registry.counter_value("orders_submitted_total", labels={"side": "buy", "op": "place_order"}) == 3
    assert registry.counter_value("orders_submitted_total") == 0
    assert registry.snapshot()["orders_submitted_total{op=place_order,side=buy}"] == 3


def test_latency_window_is_bounded_and_summarised():
    registry = MetricRegistry()
    for value in range(HISTOGRAM_WINDOW + 10):
        registry.observe("risk_loop_latency_seconds", float(value))
    with Timer(registry, "broker_api_latency_seconds", labels={"op": "get_account_balance"}):
        pass

    snapshot = registry.snapshot()

    loop = snapshot["risk_loop_latency_seconds"]
    assert loop["count"] == HISTOGRAM_WINDOW
    assert loop["max"] == float(HISTOGRAM_WINDOW + 9)
    assert snapshot["broker_api_latency_seconds{op=get_account_balance}"]["count"] == 1
