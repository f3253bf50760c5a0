"""Utility modules for the 2048 learning agent."""

from .logger import get_logger, setup_logging, LogLevel

__all__ = ['get_logger', 'setup_logging', 'LogLevel']
