"""
State-Transition Orchestrator
=============================
Sequences sign-ups, message publication and message processing over the state
and message trees, and exports the circuit inputs that prove each processing
step.

Processing is permissive: a message that fails decryption-time checks leaves
the state untouched and processing continues with the next message. The
update-state-tree circuit applies the same rule, so an invalid message is a
self-loop transition here rather than an error.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config.config import MaciConfig
from domainobjs.domain_objects import (
    Command,
    InvalidPubKeyError,
    Keypair,
    Message,
    PrivKey,
    PubKey,
    StateLeaf,
)
from merkle.quin_tree import IncrementalQuinTree, InvalidIndexError
from primitives.snark_crypto import Signature, in_curve

logger = logging.getLogger(__name__)

# State index 0 holds a blank leaf and never belongs to a voter
BLANK_STATE_INDEX = 0


# ============================================================================
# EXCEPTIONS AND ENUMS
# ============================================================================


class MaciStateError(Exception):
    """Base exception for orchestrator operations"""
    pass


class StateTransitionError(MaciStateError):
    """Operation not permitted in the current phase"""
    pass


class StatePhase(Enum):
    """Orchestrator lifecycle"""
    CREATED = "created"
    ACCEPTING = "accepting"
    PROCESSING = "processing"


class MessageStatus(Enum):
    """Outcome of processing one message"""
    APPLIED = "applied"
    INVALID_STATE_INDEX = "invalid_state_index"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_NONCE = "invalid_nonce"
    INVALID_VOTE_OPTION = "invalid_vote_option"
    INSUFFICIENT_VOICE_CREDITS = "insufficient_voice_credits"

    @property
    def is_valid(self) -> bool:
        return self is MessageStatus.APPLIED


# ============================================================================
# STATE
# ============================================================================


@dataclass
class User:
    """Voter record behind one state leaf"""
    pub_key: PubKey
    votes: List[int]
    voice_credit_balance: int
    nonce: int = 0

    def gen_state_leaf(self) -> StateLeaf:
        return StateLeaf(self.pub_key, self.voice_credit_balance)

    def copy(self) -> 'User':
        return User(
            pub_key=self.pub_key.copy(),
            votes=list(self.votes),
            voice_credit_balance=self.voice_credit_balance,
            nonce=self.nonce,
        )


@dataclass
class StateContext:
    """Everything a processing step reads and writes"""
    state_tree: IncrementalQuinTree
    message_tree: IncrementalQuinTree
    users: List[User] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    enc_pub_keys: List[PubKey] = field(default_factory=list)

    def user_at(self, state_index: int) -> Optional[User]:
        if 1 <= state_index <= len(self.users):
            return self.users[state_index - 1]
        return None

    def state_leaf_at(self, state_index: int) -> StateLeaf:
        user = self.user_at(state_index)
        return user.gen_state_leaf() if user else StateLeaf.gen_blank_leaf()

    def copy(self) -> 'StateContext':
        return StateContext(
            state_tree=self.state_tree.copy(),
            message_tree=self.message_tree.copy(),
            users=[user.copy() for user in self.users],
            messages=[message.copy() for message in self.messages],
            enc_pub_keys=[key.copy() for key in self.enc_pub_keys],
        )


@dataclass
class ProcessResult:
    message_index: int
    status: MessageStatus
    state_index: int
    state_root: int


# ============================================================================
# TRANSITIONS
# ============================================================================


def check_command(
    context: StateContext,
    command: Command,
    signature: Signature,
    vote_options_max_leaf_index: int,
) -> MessageStatus:
    """Validity checks applied before a command may touch the state tree"""
    user = context.user_at(command.state_index)
    if user is None:
        return MessageStatus.INVALID_STATE_INDEX

    # Checked against the leaf's current key, never the command's new key
    if not command.verify_signature(signature, user.pub_key):
        return MessageStatus.INVALID_SIGNATURE

    if command.nonce != user.nonce + 1:
        return MessageStatus.INVALID_NONCE

    if command.vote_option_index > vote_options_max_leaf_index:
        return MessageStatus.INVALID_VOTE_OPTION

    prev_vote_weight = user.votes[command.vote_option_index]
    remaining = (user.voice_credit_balance + prev_vote_weight ** 2
                 - command.new_vote_weight ** 2)
    if remaining < 0:
        return MessageStatus.INSUFFICIENT_VOICE_CREDITS

    return MessageStatus.APPLIED


def process_message(
    context: StateContext,
    coordinator_priv_key: PrivKey,
    message_index: int,
    vote_options_max_leaf_index: int,
) -> ProcessResult:
    """Decrypt, verify and apply one published message to the context"""
    if not 0 <= message_index < len(context.messages):
        raise InvalidIndexError(f"Message {message_index} has not been published")

    message = context.messages[message_index]
    shared_key = Keypair.gen_ecdh_shared_key(coordinator_priv_key, context.enc_pub_keys[message_index])
    command, signature = Command.decrypt(message, shared_key)

    status = check_command(context, command, signature, vote_options_max_leaf_index)
    if not status.is_valid:
        logger.info(f"Skipping message {message_index}: {status.value}")
        return ProcessResult(message_index, status, command.state_index, context.state_tree.root)

    user = context.user_at(command.state_index)
    prev_vote_weight = user.votes[command.vote_option_index]

    votes = list(user.votes)
    votes[command.vote_option_index] = command.new_vote_weight

    updated = User(
        pub_key=command.new_pub_key.copy(),
        votes=votes,
        voice_credit_balance=(user.voice_credit_balance + prev_vote_weight ** 2
                              - command.new_vote_weight ** 2),
        nonce=user.nonce + 1,
    )
    context.users[command.state_index - 1] = updated
    context.state_tree.update(command.state_index, updated.gen_state_leaf().hash())

    logger.info(f"Applied message {message_index} to state index {command.state_index} "
                f"(nonce {updated.nonce}, balance {updated.voice_credit_balance})")

    return ProcessResult(message_index, status, command.state_index, context.state_tree.root)


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class MaciState:
    """Coordinator-side state machine over the state and message trees"""

    def __init__(self, coordinator_keypair: Keypair, config: Optional[MaciConfig] = None):
        self.coordinator_keypair = coordinator_keypair
        self.config = config or MaciConfig()

        state_tree = IncrementalQuinTree(
            self.config.state_tree_depth,
            self.config.state_tree_zero_value,
            self.config.tree_arity,
        )
        message_tree = IncrementalQuinTree(
            self.config.message_tree_depth,
            self.config.message_tree_zero_value,
            self.config.tree_arity,
        )
        state_tree.insert(StateLeaf.gen_blank_leaf().hash())

        self.context = StateContext(state_tree=state_tree, message_tree=message_tree)
        self.phase = StatePhase.CREATED
        self.next_message_to_process = 0

        logger.info(f"Initialized state: state tree depth {self.config.state_tree_depth}, "
                    f"message tree depth {self.config.message_tree_depth}, "
                    f"arity {self.config.tree_arity}")

    @property
    def users(self) -> List[User]:
        return self.context.users

    @property
    def messages(self) -> List[Message]:
        return self.context.messages

    @property
    def state_tree(self) -> IncrementalQuinTree:
        return self.context.state_tree

    @property
    def message_tree(self) -> IncrementalQuinTree:
        return self.context.message_tree

    def _require_accepting(self, operation: str):
        if self.phase is StatePhase.PROCESSING:
            raise StateTransitionError(f"Cannot {operation} once message processing has started")

    def sign_up(self, pub_key: PubKey, initial_voice_credit_balance: Optional[int] = None) -> int:
        """Insert a new voter's state leaf and return its state index"""
        self._require_accepting("sign up")
        if initial_voice_credit_balance is None:
            initial_voice_credit_balance = self.config.initial_voice_credit_balance

        user = User(
            pub_key=pub_key.copy(),
            votes=[0] * (self.config.vote_options_max_leaf_index + 1),
            voice_credit_balance=initial_voice_credit_balance,
        )
        state_index = self.state_tree.insert(user.gen_state_leaf().hash())
        self.users.append(user)
        self.phase = StatePhase.ACCEPTING

        logger.info(f"Signed up voter at state index {state_index}")
        return state_index

    def publish_message(self, message: Message, enc_pub_key: PubKey) -> int:
        """Append a message along with the sender's ECDH public key"""
        self._require_accepting("publish messages")
        if not in_curve(enc_pub_key.raw_pub_key):
            raise InvalidPubKeyError("Encryption public key is not a curve point")

        message_index = self.message_tree.insert(message.hash())
        self.messages.append(message.copy())
        self.context.enc_pub_keys.append(enc_pub_key.copy())
        self.phase = StatePhase.ACCEPTING

        logger.info(f"Published message {message_index}")
        return message_index

    def process_message(self, message_index: Optional[int] = None) -> ProcessResult:
        """Process the next message in order, or an explicitly chosen one"""
        if message_index is None:
            message_index = self.next_message_to_process

        result = process_message(
            self.context,
            self.coordinator_keypair.priv_key,
            message_index,
            self.config.vote_options_max_leaf_index,
        )
        self.phase = StatePhase.PROCESSING
        self.next_message_to_process = max(self.next_message_to_process, message_index + 1)
        return result

    def process_messages(self) -> List[ProcessResult]:
        """Process every remaining published message in index order"""
        results = []
        while self.next_message_to_process < len(self.messages):
            results.append(self.process_message())

        applied = sum(1 for r in results if r.status.is_valid)
        logger.info(f"Processed {len(results)} messages, {applied} applied")
        return results

    def gen_state_root(self) -> int:
        return self.state_tree.root

    def gen_message_root(self) -> int:
        return self.message_tree.root

    def gen_update_state_tree_circuit_inputs(self, message_index: int) -> Dict[str, Any]:
        """Inputs proving one process_message step, without mutating this state"""
        if not 0 <= message_index < len(self.messages):
            raise InvalidIndexError(f"Message {message_index} has not been published")

        coordinator = self.coordinator_keypair
        message = self.messages[message_index]
        enc_pub_key = self.context.enc_pub_keys[message_index]

        shared_key = Keypair.gen_ecdh_shared_key(coordinator.priv_key, enc_pub_key)
        command, signature = Command.decrypt(message, shared_key)

        # Out-of-range indices prove against the blank leaf
        state_index = command.state_index
        if state_index >= self.state_tree.next_index:
            state_index = BLANK_STATE_INDEX

        user = self.context.user_at(state_index)
        prev_vote_weight = 0
        if user is not None and command.vote_option_index < len(user.votes):
            prev_vote_weight = user.votes[command.vote_option_index]

        msg_path = self.message_tree.gen_merkle_path(message_index)
        state_path = self.state_tree.gen_merkle_path(state_index)

        speculative = self.copy()
        speculative.process_message(message_index)

        return {
            'coordinator_public_key': coordinator.pub_key.as_array(),
            'ecdh_private_key': int(coordinator.priv_key.as_circuit_inputs()),
            'ecdh_public_key': enc_pub_key.as_array(),
            'message': message.as_circuit_inputs(),
            'msg_tree_root': self.message_tree.root,
            'msg_tree_path_elements': msg_path.path_elements,
            'msg_tree_path_index': msg_path.indices,
            'decrypted_command': command.as_array(),
            'signature_r8': list(signature.R8),
            'signature_s': signature.S,
            'state_tree_data_raw': self.context.state_leaf_at(state_index).as_circuit_inputs(),
            'state_tree_max_leaf_index': self.state_tree.next_index - 1,
            'state_tree_root': self.state_tree.root,
            'state_tree_path_elements': state_path.path_elements,
            'state_tree_path_index': state_path.indices,
            'vote_options_max_leaf_index': self.config.vote_options_max_leaf_index,
            'user_prev_vote_weight': prev_vote_weight,
            'new_state_tree_root': speculative.gen_state_root(),
        }

    def copy(self) -> 'MaciState':
        """Independent copy for speculative processing"""
        state = MaciState.__new__(MaciState)
        state.coordinator_keypair = self.coordinator_keypair.copy()
        state.config = self.config
        state.context = self.context.copy()
        state.phase = self.phase
        state.next_message_to_process = self.next_message_to_process
        return state
