from flask import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

# Ledger Metrics
ledger_writes_total = Counter(
    "watchvault_ledger_writes_total", "Ledger direction writes", ["direction", "outcome"]
)

ledger_deletes_total = Counter("watchvault_ledger_deletes_total", "Ledger records deleted", ["reason"])

ledger_records = Gauge("watchvault_ledger_records", "Ledger records by direction", ["direction"])

# Discovery Metrics
provider_pages_fetched_total = Counter(
    "watchvault_provider_pages_fetched_total", "Content provider pages fetched", ["status"]
)

# Remote Sync Metrics
remote_writes_total = Counter("watchvault_remote_writes_total", "Remote document writes", ["operation", "status"])

followed_list_updates_total = Counter(
    "watchvault_followed_list_updates_total", "Followed list cache refreshes", ["status"]
)


def update_ledger_metrics():
    from watchvault.models.ledger_record import Direction
    from watchvault.repositories.ledger_repository import LedgerRepository

    for direction in Direction:
        ledger_records.labels(direction=direction.value).set(LedgerRepository.count(direction))


def init_metrics(app):
    @app.route("/api/metrics")
    def metrics():
        update_ledger_metrics()
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    app.logger.info("Prometheus metrics initialized at /api/metrics")
