# retrace/utils/enhanced_logging.py
from typing import Dict, Any

from loguru import logger as _root_logger


class EnhancedLogger:
    """Logger with context tracking on top of loguru's bound loggers."""
    
    def __init__(self, name: str):
        self._name = name
        self._context: Dict[str, Any] = {}
    
    def add_context(self, key: str, value: Any) -> None:
        """Add context information for subsequent log messages."""
        self._context[key] = value
    
    def remove_context(self, key: str) -> None:
        """Remove context information."""
        if key in self._context:
            del self._context[key]
    
    def clear_context(self) -> None:
        """Clear all context information."""
        self._context.clear()
    
    def with_context(self, **context) -> 'EnhancedLogger':
        """Create a new logger with added context."""
        new_logger = EnhancedLogger(self._name)
        new_logger._context = {**self._context, **context}
        return new_logger
    
    @property
    def context(self) -> Dict[str, Any]:
        """A copy of the current context."""
        return dict(self._context)
    
    def _bound(self, extra: Dict[str, Any] = None):
        # depth=1 attributes the record to the caller of debug()/info()
        context = {**self._context, **(extra or {})}
        return _root_logger.bind(name=self._name, **context).opt(depth=1)
    
    def debug(self, msg: str, **kwargs) -> None:
        """Log a debug message with context."""
        self._bound(kwargs.pop("extra", None)).debug(msg)
    
    def info(self, msg: str, **kwargs) -> None:
        """Log an info message with context."""
        self._bound(kwargs.pop("extra", None)).info(msg)
    
    def warning(self, msg: str, **kwargs) -> None:
        """Log a warning message with context."""
        self._bound(kwargs.pop("extra", None)).warning(msg)
    
    def error(self, msg: str, **kwargs) -> None:
        """Log an error message with context."""
        self._bound(kwargs.pop("extra", None)).error(msg)
    
    def critical(self, msg: str, **kwargs) -> None:
        """Log a critical message with context."""
        self._bound(kwargs.pop("extra", None)).critical(msg)
    
    def exception(self, msg: str, **kwargs) -> None:
        """Log an error message together with the active exception's traceback."""
        self._bound(kwargs.pop("extra", None)).exception(msg)
    
    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._name
