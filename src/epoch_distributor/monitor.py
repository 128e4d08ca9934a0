"""
epoch_distributor/monitor.py

Read-only monitoring dashboard for recorded epochs.

Runs as its own process and only reads the summary log:

    GET /              HTML table of the most recent epochs
    GET /metrics.json  the same records as JSON
    GET /metrics       Prometheus text format
    GET /stats         window totals and the latest epoch as JSON
    GET /health        liveness

Usage:
    from epoch_distributor.monitor import MonitorAPI
    from epoch_distributor.protocol.storage import SummaryStore

    api = MonitorAPI(SummaryStore(path), port=8787)
    trio.run(api.start)
"""

import html
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import trio

from .config import DEFAULT_MONITOR_LIMIT, DEFAULT_MONITOR_PORT, NATIVE_UNITS_PER_TOKEN
from .metrics import EpochMetricsCollector
from .protocol.storage import EpochSummary, SummaryStore

logger = logging.getLogger("epoch_distributor.monitor")

# Whole-token display precision
DISPLAY_QUANTUM = Decimal("0.000001")

# Request line plus headers
MAX_HEADER_BYTES = 16 * 1024


@dataclass
class Request:
    """HTTP request representation."""
    method: str
    path: str
    query: Dict[str, List[str]]
    headers: Dict[str, str]


@dataclass
class Response:
    """HTTP response representation."""
    status: int
    headers: Dict[str, str]
    body: bytes

    @classmethod
    def json(cls, data: Any, status: int = 200) -> "Response":
        """Create JSON response."""
        body = json.dumps(data, indent=2).encode("utf-8")
        return cls(
            status=status,
            headers={"Content-Type": "application/json"},
            body=body,
        )

    @classmethod
    def text(cls, text: str, status: int = 200, content_type: str = "text/plain") -> "Response":
        """Create text response."""
        return cls(
            status=status,
            headers={"Content-Type": content_type},
            body=text.encode("utf-8"),
        )

    @classmethod
    def error(cls, message: str, status: int = 400) -> "Response":
        """Create error response."""
        return cls.json({"error": message}, status=status)


def format_tokens(lamports: int) -> str:
    """Lamports as whole tokens with six decimals."""
    return str((Decimal(lamports) / NATIVE_UNITS_PER_TOKEN).quantize(DISPLAY_QUANTUM))


def render_html(summaries: List[EpochSummary]) -> str:
    """Render the epoch table page."""
    rows = []
    for summary in summaries:
        rows.append(
            "<tr>"
            f"<td>{html.escape(summary.epoch_id)}</td>"
            f"<td>{html.escape(summary.timestamp)}</td>"
            f"<td>{html.escape(str(summary.price_at_epoch))}</td>"
            f"<td>{format_tokens(summary.claimed_amount)}</td>"
            f"<td>{format_tokens(summary.distribution_amount)}</td>"
            f"<td>{format_tokens(summary.reserve_balance_after)}</td>"
            f"<td>{summary.eligible_holder_count}</td>"
            f"<td>{len(summary.transaction_signatures)}</td>"
            f"<td>{html.escape(summary.status)}</td>"
            "</tr>"
        )
    body = "\n".join(rows) or '<tr><td colspan="9">No epochs recorded</td></tr>'

    return f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>Epoch Distributions</title>
    <style>
      body {{ font-family: Arial, sans-serif; padding: 20px; background: #0d1117; color: #c9d1d9; }}
      table {{ border-collapse: collapse; width: 100%; }}
      th, td {{ border: 1px solid #30363d; padding: 8px; }}
      th {{ background: #161b22; }}
      tr:nth-child(even) {{ background: #1c2128; }}
    </style>
  </head>
  <body>
    <h1>Epoch Distribution Summaries</h1>
    <table>
      <thead>
        <tr>
          <th>Epoch ID</th>
          <th>Timestamp</th>
          <th>Price (USD)</th>
          <th>Claimed</th>
          <th>Moved to Reserve</th>
          <th>Reserve Balance</th>
          <th>Eligible Holders</th>
          <th>Tx Count</th>
          <th>Status</th>
        </tr>
      </thead>
      <tbody>
{body}
      </tbody>
    </table>
  </body>
</html>
"""


class MonitorAPI:
    """
    HTTP dashboard over the summary log.

    Usage:
        api = MonitorAPI(SummaryStore(path), host="0.0.0.0", port=8787)
        trio.run(api.start)
    """

    def __init__(
        self,
        store: SummaryStore,
        host: str = "0.0.0.0",
        port: int = DEFAULT_MONITOR_PORT,
        limit: int = DEFAULT_MONITOR_LIMIT,
    ):
        """
        Initialize dashboard server.

        Args:
            store: Summary log to read
            host: Host to bind to
            port: Port to listen on
            limit: Epochs shown per page and covered by metrics
        """
        self.store = store
        self.host = host
        self.port = port
        self.limit = limit
        self.metrics = EpochMetricsCollector(store, limit=limit)
        self._start_time = time.time()

        self._routes: Dict[Tuple[str, str], Callable] = {
            ("GET", "/"): self._handle_root,
            ("GET", "/metrics.json"): self._handle_metrics_json,
            ("GET", "/metrics"): self._handle_metrics,
            ("GET", "/stats"): self._handle_stats,
            ("GET", "/health"): self._handle_health,
        }

    async def start(self) -> None:
        """Serve until cancelled."""
        logger.info(f"Monitoring UI started on {self.host}:{self.port}")
        await trio.serve_tcp(self._handle_connection, self.port, host=self.host)

    async def _handle_connection(self, stream: trio.SocketStream) -> None:
        """Handle incoming TCP connection."""
        try:
            request = await self._read_request(stream)
            if not request:
                return
            response = await self._route_request(request)
            await self._send_response(stream, response)
        except trio.BrokenResourceError as e:
            logger.debug(f"Client went away: {e}")
        except Exception as e:
            logger.error(f"Connection error: {e}")
            try:
                await self._send_response(stream, Response.error("Bad request", status=500))
            except trio.BrokenResourceError as send_error:
                logger.debug(f"Could not send error response: {send_error}")
        finally:
            await stream.aclose()

    async def _read_request(self, stream: trio.SocketStream) -> Optional[Request]:
        """
        Read and parse the request line and headers.

        Returns:
            Parsed request, or None if the client closed early

        Raises:
            ValueError: If the headers exceed MAX_HEADER_BYTES or the
                request target cannot be parsed
        """
        data = b""
        while b"\r\n\r\n" not in data:
            if len(data) > MAX_HEADER_BYTES:
                raise ValueError(f"Request headers exceed {MAX_HEADER_BYTES} bytes")
            chunk = await stream.receive_some(4096)
            if not chunk:
                return None
            data += chunk

        header_data = data[:data.index(b"\r\n\r\n")].decode("utf-8", errors="replace")
        lines = header_data.split("\r\n")
        request_line = lines[0].split(" ")
        method = request_line[0]
        parsed = urlparse(request_line[1] if len(request_line) > 1 else "/")

        headers = {}
        for line in lines[1:]:
            if ":" in line:
                key, value = line.split(":", 1)
                headers[key.strip().lower()] = value.strip()

        return Request(
            method=method,
            path=parsed.path,
            query=parse_qs(parsed.query),
            headers=headers,
        )

    async def _send_response(self, stream: trio.SocketStream, response: Response) -> None:
        """Send HTTP response."""
        status_text = {
            200: "OK",
            404: "Not Found",
            500: "Internal Server Error",
        }.get(response.status, "Unknown")

        lines = [f"HTTP/1.1 {response.status} {status_text}"]
        response.headers["Content-Length"] = str(len(response.body))
        response.headers["Connection"] = "close"
        for key, value in response.headers.items():
            lines.append(f"{key}: {value}")
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        await stream.send_all(header_bytes + response.body)

    async def _route_request(self, request: Request) -> Response:
        handler = self._routes.get((request.method, request.path))
        if handler is None:
            return Response.error("Not Found", status=404)
        try:
            return await handler(request)
        except OSError as e:
            logger.error(f"Failed to load epoch summaries: {e}")
            return Response.error("Failed to read summaries", status=500)

    async def _read_recent(self) -> List[EpochSummary]:
        return await trio.to_thread.run_sync(self.store.read_recent, self.limit)

    # ========== Route Handlers ==========

    async def _handle_root(self, request: Request) -> Response:
        summaries = await self._read_recent()
        return Response.text(render_html(summaries), content_type="text/html; charset=utf-8")

    async def _handle_metrics_json(self, request: Request) -> Response:
        summaries = await self._read_recent()
        return Response.json([s.to_dict() for s in summaries])

    async def _handle_metrics(self, request: Request) -> Response:
        """Handle Prometheus metrics endpoint."""
        output = await trio.to_thread.run_sync(self.metrics.collect)
        return Response.text(output, content_type="text/plain; version=0.0.4; charset=utf-8")

    async def _handle_stats(self, request: Request) -> Response:
        stats = await trio.to_thread.run_sync(self.metrics.get_stats)
        return Response.json(stats)

    async def _handle_health(self, request: Request) -> Response:
        return Response.json({
            "status": "healthy",
            "summary_path": str(self.store.path),
            "uptime_seconds": time.time() - self._start_time,
        })
