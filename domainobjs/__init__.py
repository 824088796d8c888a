"""Key material, command/message envelope and state leaf domain objects."""

from .domain_objects import (
    # Keys
    PrivKey,
    PubKey,
    Keypair,

    # Envelope
    Command,
    DecryptedCommand,
    Message,
    StateLeaf,

    # Contract parameters
    G1Point,
    G2Point,
    Proof,
    VerifyingKey,

    # Constants
    SERIALIZED_PRIV_KEY_PREFIX,
    SERIALIZED_PUB_KEY_PREFIX,
    COMMAND_FIELD_BITS,

    # Exceptions
    DomainObjectError,
    InvalidPrivKeyError,
    InvalidPubKeyError,
    InvalidStateLeafError,
    InvalidCommandError,
)

__all__ = [
    'PrivKey',
    'PubKey',
    'Keypair',

    'Command',
    'DecryptedCommand',
    'Message',
    'StateLeaf',

    'G1Point',
    'G2Point',
    'Proof',
    'VerifyingKey',

    'SERIALIZED_PRIV_KEY_PREFIX',
    'SERIALIZED_PUB_KEY_PREFIX',
    'COMMAND_FIELD_BITS',

    'DomainObjectError',
    'InvalidPrivKeyError',
    'InvalidPubKeyError',
    'InvalidStateLeafError',
    'InvalidCommandError',
]
