"""
Debug logging for outbound provider and content calls.
"""
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from .errors import redact_secrets


def redact_url(url: str) -> str:
    """Strip API keys from a URL before it is written anywhere."""
    return redact_secrets(url)


class DebugLogger:
    """File-based logger for outbound calls using loguru."""

    def __init__(self, log_dir: str = "debug_logs", enabled: bool = True):
        """
        Initialize debug logger.

        Args:
            log_dir: Directory for log files
            enabled: Enable/disable logging
        """
        self.enabled = enabled
        self.log_dir = Path(log_dir)
        self._handler_id = None

        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.session_log = self.log_dir / f"session_{timestamp}.log"
            self.api_log = self.log_dir / f"api_calls_{timestamp}.jsonl"

            self._handler_id = logger.add(
                self.session_log,
                format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
                level="DEBUG",
                enqueue=True
            )

            logger.info(f"Debug logging session started: {timestamp}")
            logger.info(f"Session log: {self.session_log}")
            logger.info(f"API log: {self.api_log}")

    def cleanup(self):
        """Remove the debug file handler."""
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None

    def log_api_call(
        self,
        kind: str,
        url: str,
        status_code: Optional[int],
        elapsed_ms: float,
        error: Optional[str] = None,
    ):
        """
        Append one outbound call to the JSONL log.

        Args:
            kind: Call category (embed, complete, fetch)
            url: Called URL (credentials are redacted)
            status_code: HTTP status code, None on transport failure
            elapsed_ms: Wall time of the call
            error: Error message if the call failed
        """
        if not self.enabled:
            return

        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "kind": kind,
            "url": redact_url(url),
            "status_code": status_code,
            "success": status_code == 200 and error is None,
            "elapsed_ms": round(elapsed_ms, 1),
            "error": redact_secrets(error) if error else error,
        }

        with open(self.api_log, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry) + '\n')

        if log_entry['success']:
            logger.debug(f"[{kind}] {log_entry['url']} -> {status_code} ({elapsed_ms:.0f} ms)")
        else:
            logger.warning(f"[{kind}] {log_entry['url']} failed: status={status_code}, error={log_entry['error']}")

    def summarize(self) -> Dict[str, Dict[str, Any]]:
        """
        Aggregate logged calls by kind.

        Returns:
            {kind: {"calls", "failures", "avg_ms"}}
        """
        if not self.enabled or not self.api_log.exists():
            return {}

        summary: Dict[str, Dict[str, Any]] = {}
        with open(self.api_log, 'r', encoding='utf-8') as f:
            for line in f:
                entry = json.loads(line)
                stats = summary.setdefault(entry['kind'], {'calls': 0, 'failures': 0, 'total_ms': 0.0})
                stats['calls'] += 1
                stats['total_ms'] += entry['elapsed_ms']
                if not entry['success']:
                    stats['failures'] += 1

        for stats in summary.values():
            stats['avg_ms'] = round(stats.pop('total_ms') / stats['calls'], 1)
        return summary

    def analyze_logs(self):
        """Log a per-kind summary of the calls made in this session."""
        summary = self.summarize()
        if not summary:
            logger.info("No API calls logged")
            return

        logger.info(f"\n{'='*60}")
        logger.info("API CALL ANALYSIS")
        logger.info(f"{'='*60}")
        for kind, stats in sorted(summary.items()):
            logger.info(
                f"  {kind}: {stats['calls']} calls, {stats['failures']} failed, "
                f"avg {stats['avg_ms']} ms"
            )
        logger.info(f"Full logs: {self.session_log}")
        logger.info(f"API data: {self.api_log}")


# Global logger instance, None until enabled
_global_logger: Optional[DebugLogger] = None


def get_logger() -> Optional[DebugLogger]:
    """Return the active debug logger, or None when debug logging is off."""
    return _global_logger


def enable_debug_logging(log_dir: str = "debug_logs") -> DebugLogger:
    """Enable debug logging (call at start of program)."""
    global _global_logger
    _global_logger = DebugLogger(log_dir=log_dir, enabled=True)
    return _global_logger


def disable_debug_logging():
    """Disable debug logging and cleanup handlers."""
    global _global_logger
    if _global_logger:
        _global_logger.cleanup()
        _global_logger.enabled = False
    _global_logger = None


def record_api_call(kind: str, url: str, status_code: Optional[int], elapsed_ms: float,
                    error: Optional[str] = None):
    """Forward a call record to the active debug logger, if any."""
    if _global_logger is not None:
        _global_logger.log_api_call(kind, url, status_code, elapsed_ms, error)
