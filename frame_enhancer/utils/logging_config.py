import logging
import logging.handlers
import os
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    format_string: Optional[str] = None
):
    """
    Set up logging configuration for the frame enhancer

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
        format_string: Custom format string for log messages
    """

    if format_string is None:
        format_string = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )

    formatter = logging.Formatter(
        format_string,
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            root_logger.addHandler(file_handler)

        except OSError as e:
            root_logger.warning(f"Failed to set up file logging: {e}")

    # Quieten chatty third-party loggers
    for name in ("uvicorn.access", "multipart", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("frame_enhancer").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger"""
    return logging.getLogger(name)


class PipelineLogger:
    """Logger wrapper for pipeline components"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.component_name = name

    def log_processing_start(self, operation: str, details: Optional[dict] = None):
        """Log the start of a processing operation"""
        message = f"Starting {operation}"
        if details:
            detail_str = ", ".join([f"{k}={v}" for k, v in details.items()])
            message += f" - {detail_str}"
        self.logger.info(message)

    def log_processing_end(self, operation: str, success: bool,
                           duration: float, details: Optional[dict] = None):
        """Log the end of a processing operation"""
        status = "completed" if success else "failed"
        message = f"{operation} {status} in {duration:.3f}s"

        if details:
            detail_str = ", ".join([f"{k}={v}" for k, v in details.items()])
            message += f" - {detail_str}"

        if success:
            self.logger.info(message)
        else:
            self.logger.error(message)

    def log_performance_metric(self, metric_name: str, value: float, unit: str = ""):
        """Log performance metrics"""
        message = f"Performance metric: {metric_name} = {value:.2f}"
        if unit:
            message += f" {unit}"
        self.logger.info(message)

    def log_stage(self, step_number: int, stage: str, width: int, height: int):
        """Log a pipeline stage being applied"""
        self.logger.debug(f"Step {step_number}: {stage} ({width}x{height})")

    def log_error_with_context(self, error: Exception, context: dict):
        """Log error with additional context"""
        context_str = ", ".join([f"{k}={v}" for k, v in context.items()])
        self.logger.error(f"Error in {self.component_name}: {str(error)} - Context: {context_str}")
        self.logger.debug("Full traceback:", exc_info=True)


def get_pipeline_logger(name: str) -> PipelineLogger:
    """Get a pipeline logger instance"""
    return PipelineLogger(name)
