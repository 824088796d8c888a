import pathlib
import sys
from typing import Any, Dict, Tuple

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import core`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from config.config import MaciConfig  # noqa: E402
from domainobjs.domain_objects import (  # noqa: E402
    COMMAND_FIELD_MASK,
    Command,
    Keypair,
    Message,
    PubKey,
)
from primitives.snark_crypto import (  # noqa: E402
    Ciphertext,
    decrypt,
    hash3,
    mul_point_escalar,
    poseidon,
)


@pytest.fixture(scope="session")
def coordinator() -> Keypair:
    return Keypair()


@pytest.fixture
def small_config() -> MaciConfig:
    return MaciConfig(
        state_tree_depth=2,
        message_tree_depth=2,
        tree_arity=5,
        vote_options_max_leaf_index=4,
        initial_voice_credit_balance=100,
    )


def encrypt_command(command: Command, signer: Keypair, coordinator_pub_key: PubKey) -> Tuple[Message, PubKey]:
    """Sign command, encrypt it under a fresh ephemeral key and return the message and that key"""
    ephemeral = Keypair()
    shared_key = Keypair.gen_ecdh_shared_key(ephemeral.priv_key, coordinator_pub_key)
    signature = command.sign(signer.priv_key)
    return command.encrypt(signature, shared_key), ephemeral.pub_key


def _fold_path(leaf: int, path_elements, path_index) -> int:
    current = leaf
    for siblings, position in zip(path_elements, path_index):
        children = list(siblings)
        children.insert(position, current)
        current = poseidon(children)
    return current


def evaluate_update_state_tree(inputs: Dict[str, Any]) -> int:
    """Recompute the post-update state root from circuit inputs of a valid message

    Checks the pre-state and message inclusion along the way and mirrors the
    arithmetic the update-state-tree circuit performs.
    """
    message = inputs['message']
    msg_leaf = poseidon([
        poseidon(message[:5]),
        message[5],
        message[6],
        message[7],
    ])
    assert _fold_path(msg_leaf, inputs['msg_tree_path_elements'],
                      inputs['msg_tree_path_index']) == inputs['msg_tree_root']

    current_leaf = hash3(inputs['state_tree_data_raw'])
    assert _fold_path(current_leaf, inputs['state_tree_path_elements'],
                      inputs['state_tree_path_index']) == inputs['state_tree_root']

    ecdh_pub = tuple(inputs['ecdh_public_key'])
    shared_key = mul_point_escalar(ecdh_pub, inputs['ecdh_private_key'])[0]
    plaintext = decrypt(Ciphertext(message[0], tuple(message[1:])), shared_key)
    assert plaintext[:4] == inputs['decrypted_command']

    packed = plaintext[0]
    new_vote_weight = (packed >> 100) & COMMAND_FIELD_MASK
    new_pub_key = plaintext[1:3]

    balance = inputs['state_tree_data_raw'][2]
    prev = inputs['user_prev_vote_weight']
    new_balance = balance + prev * prev - new_vote_weight * new_vote_weight

    new_leaf = hash3([new_pub_key[0], new_pub_key[1], new_balance])
    return _fold_path(new_leaf, inputs['state_tree_path_elements'], inputs['state_tree_path_index'])
