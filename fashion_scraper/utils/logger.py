"""
Structured logging utility for the fashion product scraper.
Provides structured logs with a per-call trace ID so every line of one
scrape can be correlated across concurrently racing strategies.
"""
import uuid
import logging
import structlog
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

from fashion_scraper.config import config

# Context variable for trace ID
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")


def get_trace_id() -> str:
    """Get current trace ID or generate new one."""
    trace_id = trace_id_var.get()
    if not trace_id:
        trace_id = str(uuid.uuid4())[:8]
        trace_id_var.set(trace_id)
    return trace_id


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Set a new trace ID for the current context."""
    new_trace_id = trace_id or str(uuid.uuid4())[:8]
    trace_id_var.set(new_trace_id)
    return new_trace_id


def add_trace_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Processor to add trace ID to all log entries."""
    event_dict["trace_id"] = get_trace_id()
    return event_dict


def configure_logging():
    """Configure structlog with appropriate processors."""
    processors = [
        structlog.contextvars.merge_contextvars,
        add_trace_id,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.LOG_LEVEL.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


class LayerLogger:
    """
    Specialized logger for the scraper components.
    Ensures consistent event names and fields across adapters and layers.
    """

    def __init__(self, layer_name: str):
        self.layer_name = layer_name
        self.logger = get_logger(layer_name)

    def log_decision(
        self,
        decision: str,
        reason: str,
        url: Optional[str] = None,
        **extra
    ):
        """Log a decision made by this component."""
        self.logger.info(
            "decision_made",
            layer=self.layer_name,
            decision=decision,
            reason=reason,
            url=url,
            **extra
        )

    def log_action(
        self,
        action: str,
        status: str = "started",
        **extra
    ):
        """Log an action being performed."""
        self.logger.info(
            f"action_{status}",
            layer=self.layer_name,
            action=action,
            **extra
        )

    def log_debug(self, action: str, **extra):
        """Log a high-volume detail (per-rule extraction hits)."""
        self.logger.debug(
            "detail",
            layer=self.layer_name,
            action=action,
            **extra
        )

    def log_error(
        self,
        error: str,
        error_type: str = "unknown",
        **extra
    ):
        """Log an error with full context."""
        self.logger.error(
            "error_occurred",
            layer=self.layer_name,
            error=error,
            error_type=error_type,
            **extra
        )

    def log_redirect(
        self,
        from_url: str,
        to_url: str,
        hop: int,
        status_code: int,
        **extra
    ):
        """Log one followed redirect hop."""
        self.logger.info(
            "redirect_followed",
            layer=self.layer_name,
            from_url=from_url,
            to_url=to_url,
            hop=hop,
            status_code=status_code,
            **extra
        )

    def log_attempt(
        self,
        strategy: str,
        status: str,
        elapsed_ms: int,
        error_kind: Optional[str] = None,
        **extra
    ):
        """Log the outcome of one acquisition strategy attempt."""
        log = self.logger.info if status == "succeeded" else self.logger.warning
        log(
            "strategy_attempt",
            layer=self.layer_name,
            strategy=strategy,
            status=status,
            error_kind=error_kind,
            elapsed_ms=elapsed_ms,
            **extra
        )

    def log_merge(
        self,
        strategy: str,
        fields_accepted: List[str],
        elapsed_ms: int,
        **extra
    ):
        """Log which fields a strategy's evidence won in the ledger."""
        self.logger.info(
            "evidence_merged",
            layer=self.layer_name,
            strategy=strategy,
            fields_accepted=fields_accepted,
            elapsed_ms=elapsed_ms,
            **extra
        )


# Initialize logging on module import
configure_logging()
