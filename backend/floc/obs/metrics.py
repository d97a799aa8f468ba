"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNTER = Counter(
	"floc_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"floc_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

STORE_RETRIES = Counter(
	"floc_store_txn_retries_total",
	"Document transactions retried after a WATCH conflict",
	["collection"],
)

CONNECTION_WRITES = Counter(
	"floc_connection_writes_total",
	"Connection graph writes",
	["op", "result"],
)

INCONSISTENT_EDGES = Counter(
	"floc_inconsistent_edges_total",
	"One-sided connection edges detected",
	["source", "healed"],
)

ACTIVITY_JOINS = Counter(
	"floc_activity_joins_total",
	"Join attempts by outcome",
	["result"],
)

ACTIVITY_LEAVES = Counter(
	"floc_activity_leaves_total",
	"Leave calls by outcome",
	["result"],
)

ACTIVITY_WRITES = Counter(
	"floc_activity_writes_total",
	"Owner-side activity writes",
	["op", "result"],
)

PAYMENT_ORDERS = Counter(
	"floc_payment_orders_total",
	"Payment order transitions",
	["status"],
)

PAYMENT_VERIFY_FAILURES = Counter(
	"floc_payment_verify_failures_total",
	"Payment confirmations rejected",
	["reason"],
)

VISIBILITY_DROPPED = Counter(
	"floc_visibility_dropped_total",
	"Activities removed by the visibility filter",
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_store_retry(collection: str) -> None:
	STORE_RETRIES.labels(collection=collection).inc()


def inc_connection_write(op: str, result: str) -> None:
	CONNECTION_WRITES.labels(op=op, result=result).inc()


def inc_inconsistent_edge(source: str, healed: bool) -> None:
	INCONSISTENT_EDGES.labels(source=source, healed="yes" if healed else "no").inc()


def inc_join(result: str) -> None:
	ACTIVITY_JOINS.labels(result=result).inc()


def inc_leave(result: str) -> None:
	ACTIVITY_LEAVES.labels(result=result).inc()


def inc_activity_write(op: str, result: str) -> None:
	ACTIVITY_WRITES.labels(op=op, result=result).inc()


def inc_payment_order(status: str) -> None:
	PAYMENT_ORDERS.labels(status=status).inc()


def inc_payment_verify_failure(reason: str) -> None:
	PAYMENT_VERIFY_FAILURES.labels(reason=reason).inc()


def inc_visibility_dropped(count: int = 1) -> None:
	if count > 0:
		VISIBILITY_DROPPED.inc(count)
