"""Logging setup for suzuri-mcp.

- Plain stderr output for local runs and container logs
- JSONFormatter for structured rows ([TAG] prefixes become a column)
- Optional SupabaseHandler that ships batched rows to a `logs` table
"""

import atexit
import logging
import re
import sys
import threading
from queue import Empty, Queue
from typing import Optional

SERVICE_NAME = "suzuri-mcp"

_TAG_RE = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)


def split_tag(message: str) -> tuple[Optional[str], str]:
    """Split "[TAG] text" into ("TAG", "text")."""
    match = _TAG_RE.match(message)
    if match:
        return match.group(1), match.group(2)
    return None, message


class JSONFormatter(logging.Formatter):
    """Turns a record into a dict row for structured sinks."""

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> dict:
        tag, message = split_tag(record.getMessage())
        entry = {
            "service": self.service,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "logger": record.name,
                "function": record.funcName,
                "line": record.lineno,
            },
        }
        if record.exc_info:
            entry["extra"]["exception"] = self.formatException(record.exc_info)
        return entry


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SupabaseHandler(logging.Handler):
    """Batches log rows and inserts them into a Supabase table.

    Rows are flushed every flush_interval seconds by a daemon thread, or as
    soon as batch_size rows are queued.
    """

    def __init__(
        self,
        supabase_client,
        table: str = "logs",
        batch_size: int = 20,
        flush_interval: float = 10.0,
        start_thread: bool = True,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._queue: Queue = Queue()
        self._shutdown = threading.Event()
        self._flush_lock = threading.Lock()

        if start_thread:
            self._thread = threading.Thread(target=self._flush_worker, daemon=True)
            self._thread.start()
            atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            formatter = self.formatter if isinstance(self.formatter, JSONFormatter) else JSONFormatter()
            self._queue.put(formatter.format(record))
            if self._queue.qsize() >= self.batch_size:
                self.flush()
        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        while not self._shutdown.wait(self.flush_interval):
            self.flush()

    def flush(self):
        """Send queued rows to Supabase."""
        with self._flush_lock:
            rows = []
            while len(rows) < self.batch_size * 2:
                try:
                    rows.append(self._queue.get_nowait())
                except Empty:
                    break
            if not rows:
                return
            try:
                self.supabase.table(self.table).insert(rows).execute()
            except Exception as e:
                # Write to stderr directly; logging here would recurse
                print(f"[WARNING] Failed to ship {len(rows)} log rows to Supabase: {e}", file=sys.stderr)

    def close(self):
        self._shutdown.set()
        self.flush()
        super().close()


def setup_logging(
    level: str = "INFO",
    supabase_client=None,
    service: str = SERVICE_NAME,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        level: Root log level name
        supabase_client: If given, rows are also shipped to Supabase
        service: Service name recorded in structured rows

    Returns:
        Configured root logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    supabase_enabled = False
    if supabase_client is not None:
        try:
            handler = SupabaseHandler(supabase_client)
            handler.setLevel(logging.INFO)
            handler.setFormatter(JSONFormatter(service))
            root_logger.addHandler(handler)
            supabase_enabled = True
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # Outbound HTTP is logged by our own tagged messages
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"[STARTUP] Logging configured (level: {level}, supabase: {supabase_enabled})")
    return root_logger
