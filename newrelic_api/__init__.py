"""NewRelic REST API v2 client"""

__version__ = "0.3.0"

# Chunk size of metric data requests
CHUNK_SIZE = 10

USER_AGENT = f"Prometheus-NewRelic-Exporter/{__version__}"
