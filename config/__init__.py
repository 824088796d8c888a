"""Configuration management for the state engine."""

from .config import MaciConfig, load_config, save_config

__all__ = ['MaciConfig', 'load_config', 'save_config']
