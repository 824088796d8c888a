"""Utilities for the state engine."""

from .utils import (
    setup_logging,
    save_circuit_inputs,
    load_circuit_inputs,
)

__all__ = [
    'setup_logging',
    'save_circuit_inputs',
    'load_circuit_inputs',
]
