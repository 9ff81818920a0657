import logging
import sys


class _SessionFilter(logging.Filter):
    """Stamps every log line with the worker's session id."""

    def __init__(self, session_id: str) -> None:
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = self.session_id
        return True


class Log:
    """Centralized logging with structured format.

    Messages about a single record pass ``record_id`` and get a
    ``[record N]`` prefix so interleaved queue output stays readable.
    """

    _logger: logging.Logger = logging.getLogger("record_worker")
    _session_filter: _SessionFilter = _SessionFilter("-")

    @classmethod
    def configure(cls, log_level: str, session_id: str = "-") -> None:
        """Configure the logger with the specified level and stdout handler."""
        cls._logger.setLevel(log_level.upper())
        cls._session_filter.session_id = session_id
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] [%(session)s] %(message)s")
            )
            handler.addFilter(cls._session_filter)
            cls._logger.addHandler(handler)

    @classmethod
    def info(cls, message: str, record_id: int | None = None, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(cls._format(message, record_id), extra=kwargs)

    @classmethod
    def error(cls, message: str, record_id: int | None = None, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(cls._format(message, record_id), extra=kwargs)

    @classmethod
    def warning(cls, message: str, record_id: int | None = None, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(cls._format(message, record_id), extra=kwargs)

    @classmethod
    def debug(cls, message: str, record_id: int | None = None, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(cls._format(message, record_id), extra=kwargs)

    @staticmethod
    def _format(message: str, record_id: int | None) -> str:
        if record_id is None:
            return message
        return f"[record {record_id}] {message}"
