#!/usr/bin/env python3
"""Main entry point for NewRelic Exporter"""
import argparse
import sys
from pathlib import Path
import uvicorn
from config import Config, load_config
from app.server import MetricsServer
from logging_config import setup_structured_logging, get_logger, log_server_startup, log_error


DEFAULT_CONFIG_FILE = Path("newrelic_exporter.yml")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prometheus exporter for NewRelic metrics")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config file path. Defaults to '{DEFAULT_CONFIG_FILE}' when present, environment otherwise",
    )
    return parser.parse_args(argv)


def build_config(config_file: Path = None) -> Config:
    """Load configuration from a YAML file if available, environment otherwise"""
    if config_file is None and DEFAULT_CONFIG_FILE.exists():
        config_file = DEFAULT_CONFIG_FILE
    if config_file is not None:
        return load_config(config_file)
    return Config()


def main(argv=None):
    """Main application entry point"""
    args = parse_args(argv)
    try:
        config = build_config(args.config)

        setup_structured_logging(config)
        logger = get_logger(__name__)

        log_server_startup(logger, config)

        server = MetricsServer(config)
        app = server.get_app()

        uvicorn.run(
            app,
            host=config.metrics_host,
            port=config.metrics_port,
            log_config=None  # We handle logging ourselves
        )

    except Exception as e:
        logger = get_logger(__name__)
        log_error(logger, e, {"component": "main", "phase": "startup"})
        sys.exit(1)


if __name__ == '__main__':
    main()
