import structlog, logging, sys

from config.settings import settings


def setup_logging(stream=None, level: str | None = None):
    """stdio servers must pass stream=sys.stderr: stdout carries the protocol."""
    lvl = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    stream = stream or sys.stdout
    logging.basicConfig(
        level=lvl,
        format="%(message)s",
        stream=stream,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger()
