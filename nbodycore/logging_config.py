"""Logging configuration for nbodycore."""

from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
	level: Union[str, int] = "INFO",
	log_file: Optional[Union[str, Path]] = None,
	name: str = "nbodycore",
) -> logging.Logger:
	"""
	Attach a console handler (and optionally a rotating file handler) to the
	package logger. Calling it again replaces the handlers it installed before.

	Args:
		level: Log level name or number
		log_file: Path to a log file; no file handler when omitted
		name: Logger name, the package logger by default

	Returns:
		Configured logger instance
	"""
	if isinstance(level, str):
		level = getattr(logging, level.upper(), logging.INFO)

	logger = logging.getLogger(name)
	logger.setLevel(level)
	for handler in list(logger.handlers):
		if getattr(handler, "_nbodycore_handler", False):
			logger.removeHandler(handler)
			handler.close()

	formatter = logging.Formatter(LOG_FORMAT)

	console_handler = logging.StreamHandler()
	console_handler.setLevel(level)
	console_handler.setFormatter(formatter)
	console_handler._nbodycore_handler = True
	logger.addHandler(console_handler)

	if log_file is not None:
		log_file = Path(log_file)
		log_file.parent.mkdir(parents=True, exist_ok=True)
		file_handler = logging.handlers.RotatingFileHandler(
			log_file,
			maxBytes=10485760,
			backupCount=5,
		)
		file_handler.setLevel(level)
		file_handler.setFormatter(formatter)
		file_handler._nbodycore_handler = True
		logger.addHandler(file_handler)

	return logger


__all__ = ["setup_logging", "LOG_FORMAT"]
