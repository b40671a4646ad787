from prometheus_client import start_http_server, Counter, Gauge

c_runs = Counter("pipeline_runs_total", "Pipeline invocations by outcome", ["outcome"])
c_indexed = Counter("documents_indexed_total", "Documents accepted by bulk writes")
c_chunks = Counter("bulk_chunks_total", "Bulk chunk writes by outcome", ["outcome"])
c_dropped = Counter("raw_items_dropped_total", "Raw items dropped during normalization")
g_count = Gauge("last_index_count", "Document count reported after the last load")


def start_metrics_server(port: int) -> None:
    start_http_server(port)
