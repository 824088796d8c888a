"""Coordinator-side state-transition orchestrator."""

from .maci_state import (
    MaciState,
    StateContext,
    User,
    ProcessResult,
    MessageStatus,
    StatePhase,
    check_command,
    process_message,
    BLANK_STATE_INDEX,

    # Exceptions
    MaciStateError,
    StateTransitionError,
)

__all__ = [
    'MaciState',
    'StateContext',
    'User',
    'ProcessResult',
    'MessageStatus',
    'StatePhase',
    'check_command',
    'process_message',
    'BLANK_STATE_INDEX',

    'MaciStateError',
    'StateTransitionError',
]
