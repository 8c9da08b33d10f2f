"""Health check and metrics endpoints for the operator."""

from __future__ import annotations

import threading
from typing import Any, Callable

from prometheus_client import make_wsgi_app
from werkzeug.serving import BaseWSGIServer, make_server
from werkzeug.wrappers import Response

ReadinessCheck = Callable[[], bool]


def create_combined_wsgi_app(ready_check: ReadinessCheck | None = None) -> Any:
    """Create a WSGI app that combines metrics and health check endpoints.

    Args:
        ready_check: Callable reporting whether the operator is ready to
            reconcile; always ready when omitted

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        """WSGI app that routes /healthz and /readyz, delegates /metrics to prometheus."""
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            response = Response('{"status":"ok"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        elif path == "/readyz":
            if ready_check is None or ready_check():
                response = Response('{"status":"ready"}', mimetype="application/json", status=200)
            else:
                response = Response('{"status":"not ready"}', mimetype="application/json", status=503)
            return response(environ, start_response)
        else:
            # Delegate all other paths (including /metrics) to prometheus app
            return metrics_app(environ, start_response)

    return combined_app


def start_health_server(port: int, ready_check: ReadinessCheck | None = None) -> BaseWSGIServer:
    """Serve metrics and health checks from a background thread.

    Args:
        port: Port to listen on
        ready_check: Readiness callable passed to the combined app

    Returns:
        The running server
    """
    server = make_server("", port, create_combined_wsgi_app(ready_check), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
