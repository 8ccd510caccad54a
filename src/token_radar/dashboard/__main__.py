"""Entry point for launching the pipeline behind the dashboard API."""

from __future__ import annotations

import argparse

import uvicorn

from ..config.settings import get_app_config
from ..monitoring import bootstrap_observability
from ..pipeline import TokenPipeline
from .app import create_dashboard_app
from .state import DashboardState


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the token radar API")
    parser.add_argument("--host", help="Override dashboard host")
    parser.add_argument("--port", type=int, help="Override dashboard port")
    args = parser.parse_args()

    config = get_app_config()
    bootstrap_observability(config)
    state = DashboardState(config=config, pipeline=TokenPipeline(config))
    app = create_dashboard_app(state, manage_pipeline=True)
    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port
    uvicorn.run(app, host=host, port=port, log_level=config.monitoring.log_level.lower())


if __name__ == "__main__":
    main()
