"""FastAPI server setup and routes"""
import time
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.responses import HTMLResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from config import Config
from exporter.collector import NewRelicCollector
from logging_config import get_logger


logger = get_logger(__name__)


class MetricsServer:
    """FastAPI server exposing NewRelic metrics for Prometheus"""

    def __init__(self, config: Config, collector: Optional[NewRelicCollector] = None):
        self.config = config
        self.app = FastAPI(
            title="NewRelic Exporter",
            version=config.service_version,
            docs_url=None,  # Disable docs for security
            redoc_url=None,  # Disable redoc for security
            openapi_url=None  # Disable OpenAPI schema for security
        )
        self.collector = collector or NewRelicCollector.from_config(config)
        self.registry = CollectorRegistry()
        self.registry.register(self.collector)
        self.start_time = time.time()

        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get(self.config.metrics_path, response_class=Response)
        def get_metrics():
            """Serve metrics in Prometheus format, scraping NewRelic on every request"""
            return Response(generate_latest(self.registry), media_type=CONTENT_TYPE_LATEST)

        @self.app.get('/health')
        def health_check():
            """Health check endpoint"""
            return {
                "status": "healthy",
                "uptime_seconds": round(time.time() - self.start_time, 1),
                **self.collector.stats.status(),
            }

        @self.app.get('/', response_class=HTMLResponse)
        def index():
            """Web interface"""
            return self._generate_html_interface()

    def _generate_html_interface(self) -> str:
        """Generate HTML interface"""
        return f"""<html>
<head><title>NewRelic exporter</title></head>
<body>
<h1>NewRelic exporter</h1>
<p><a href='{self.config.metrics_path}'>Metrics</a></p>
</body>
</html>
"""

    def get_app(self) -> FastAPI:
        """Get the FastAPI application"""
        return self.app
