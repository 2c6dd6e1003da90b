"""
Base Service Module.

This module provides the abstract base class for all service classes
in the Photo Ingest API. Services are responsible for business logic
and orchestrating interactions between routers and external resources.

Design Principles:
    1. Single Responsibility - Each service handles one stage of ingestion
    2. Dependency Injection - Services receive dependencies via __init__
    3. Error Handling - Services raise domain-specific exceptions
    4. Logging - Services log operations for debugging and monitoring
    5. Async First - Blocking client calls run in the threadpool

Usage:
    from photo_ingest.services.base import BaseService

    class MyService(BaseService):
        def __init__(self, client: SomeClient):
            super().__init__()
            self.client = client

        async def do_something(self, key: str) -> dict:
            self.log_info("Processing object", extra={"key": key})
            return await self.run_blocking("head_object", self.client.head_object, Key=key)
"""

import logging
from abc import ABC
from typing import Any, Callable, Dict, Optional

from starlette.concurrency import run_in_threadpool


class BaseService(ABC):
    """Abstract base class for all service classes.

    This class provides common functionality for all services including
    logging and a helper for running blocking calls off the event loop.

    Attributes:
        _logger: Logger instance for the service.
        service_name: Name of the service for logging and error messages.
    """

    def __init__(self) -> None:
        """Initialize the base service.

        Sets up the logger with the service class name for easy
        identification in log output.
        """
        self._logger = logging.getLogger(self.__class__.__name__)
        self.service_name = self.__class__.__name__

    # -------------------------------------------------------------------------
    # Logging Methods
    # -------------------------------------------------------------------------

    def log_debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a debug message.

        Args:
            message: The log message.
            extra: Additional context to include in the log.
        """
        self._logger.debug(message, extra=extra or {})

    def log_info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log an info message.

        Args:
            message: The log message.
            extra: Additional context to include in the log.

        Example:
            >>> self.log_info("File uploaded successfully", extra={"key": key})
        """
        self._logger.info(message, extra=extra or {})

    def log_warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Log a warning message.

        Args:
            message: The log message.
            extra: Additional context to include in the log.

        Example:
            >>> self.log_warning("Rate limit exceeded", extra={"client_id": ip})
        """
        self._logger.warning(message, extra=extra or {})

    def log_error(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> None:
        """Log an error message.

        Args:
            message: The log message.
            extra: Additional context to include in the log.
            exc_info: Exception to include in the log for traceback.

        Example:
            >>> try:
            ...     await some_operation()
            ... except Exception as e:
            ...     self.log_error("Operation failed", exc_info=e)
        """
        self._logger.error(message, extra=extra or {}, exc_info=exc_info)

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    async def run_blocking(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run a blocking client call in the threadpool.

        Args:
            operation: Description of the operation, used in debug logs.
            func: The blocking callable.
            *args: Positional arguments for ``func``.
            **kwargs: Keyword arguments for ``func``.

        Returns:
            Whatever ``func`` returns.
        """
        self.log_debug("Running blocking call", extra={"operation": operation})
        return await run_in_threadpool(func, *args, **kwargs)

    def __repr__(self) -> str:
        """Return string representation of the service."""
        return f"<{self.service_name}>"
