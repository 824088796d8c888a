"""
Voting Domain Objects
=====================
Key material, the signed/encrypted command envelope, state leaves and the
contract-facing proof parameter types.

The bit-packing in Command.as_array() and the element order of Message and
StateLeaf are shared with the update-state-tree circuit and must not change.
"""

import base64
import json
import string
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from primitives.snark_crypto import (
    Signature,
    decrypt,
    encrypt,
    format_priv_key_for_babyjub,
    gen_ecdh_shared_key,
    gen_keypair,
    gen_pub_key,
    gen_random_salt,
    hash3,
    hash4,
    hash5,
    is_field_element,
    pack_point,
    sign,
    unpack_point,
    verify_signature,
    Ciphertext,
)

SERIALIZED_PRIV_KEY_PREFIX = 'macisk.'
SERIALIZED_PUB_KEY_PREFIX = 'macipk.'

# Blank leaves carry the pubkey [0, 0], which point packing cannot represent
SERIALIZED_BLANK_PUB_KEY = SERIALIZED_PUB_KEY_PREFIX + 'z'

COMMAND_FIELD_BITS = 50
COMMAND_FIELD_LIMIT = 1 << COMMAND_FIELD_BITS
COMMAND_FIELD_MASK = COMMAND_FIELD_LIMIT - 1


# ============================================================================
# EXCEPTIONS
# ============================================================================


class DomainObjectError(Exception):
    """Base exception for domain object construction and parsing"""
    pass


class InvalidPrivKeyError(DomainObjectError, ValueError):
    """Malformed or out-of-field private key"""
    pass


class InvalidPubKeyError(DomainObjectError, ValueError):
    """Malformed or out-of-field public key"""
    pass


class InvalidStateLeafError(DomainObjectError, ValueError):
    """State leaf with a bad balance or an unparseable serialization"""
    pass


class InvalidCommandError(DomainObjectError, ValueError):
    """Command field outside its packed bit width"""
    pass


def _parse_hex(value: str) -> int:
    if not value or any(c not in string.hexdigits for c in value):
        raise ValueError(f"Not a hex string: {value!r}")
    return int(value, 16)


# ============================================================================
# CONTRACT PARAMETER TYPES
# ============================================================================


@dataclass
class G1Point:
    x: int
    y: int

    def as_contract_param(self) -> Dict[str, str]:
        return {'x': str(self.x), 'y': str(self.y)}


@dataclass
class G2Point:
    x: Tuple[int, int]
    y: Tuple[int, int]

    def __post_init__(self):
        self.x = tuple(self.x)
        self.y = tuple(self.y)

    def as_contract_param(self) -> Dict[str, List[str]]:
        return {
            'x': [str(v) for v in self.x],
            'y': [str(v) for v in self.y],
        }


@dataclass
class Proof:
    """Groth16 proof points"""
    a: G1Point
    b: G2Point
    c: G1Point

    def as_contract_param(self) -> Dict[str, Any]:
        return {
            'a': self.a.as_contract_param(),
            'b': self.b.as_contract_param(),
            'c': self.c.as_contract_param(),
        }


@dataclass
class VerifyingKey:
    """Groth16 verifying key as stored by the ledger contract"""
    alpha1: G1Point
    beta2: G2Point
    gamma2: G2Point
    delta2: G2Point
    ic: List[G1Point]

    def as_contract_param(self) -> Dict[str, Any]:
        return {
            'alpha1': self.alpha1.as_contract_param(),
            'beta2': self.beta2.as_contract_param(),
            'gamma2': self.gamma2.as_contract_param(),
            'delta2': self.delta2.as_contract_param(),
            'ic': [point.as_contract_param() for point in self.ic],
        }

    @classmethod
    def from_contract(cls, data: Dict[str, Any]) -> 'VerifyingKey':
        def convert_g1(point: Dict[str, Any]) -> G1Point:
            return G1Point(int(point['x']), int(point['y']))

        def convert_g2(point: Dict[str, Any]) -> G2Point:
            return G2Point(
                (int(point['x'][0]), int(point['x'][1])),
                (int(point['y'][0]), int(point['y'][1])),
            )

        return cls(
            alpha1=convert_g1(data['alpha1']),
            beta2=convert_g2(data['beta2']),
            gamma2=convert_g2(data['gamma2']),
            delta2=convert_g2(data['delta2']),
            ic=[convert_g1(c) for c in data['ic']],
        )


# ============================================================================
# KEYS
# ============================================================================


class PrivKey:
    def __init__(self, raw_priv_key: int):
        if not is_field_element(raw_priv_key):
            raise InvalidPrivKeyError("Private key must be a field element")
        self.raw_priv_key = raw_priv_key

    def copy(self) -> 'PrivKey':
        return PrivKey(self.raw_priv_key)

    def as_circuit_inputs(self) -> str:
        return str(format_priv_key_for_babyjub(self.raw_priv_key))

    def serialize(self) -> str:
        return SERIALIZED_PRIV_KEY_PREFIX + format(self.raw_priv_key, 'x')

    @classmethod
    def unserialize(cls, serialized: str) -> 'PrivKey':
        if not isinstance(serialized, str) or not serialized.startswith(SERIALIZED_PRIV_KEY_PREFIX):
            raise InvalidPrivKeyError(f"Serialized private key must start with {SERIALIZED_PRIV_KEY_PREFIX}")

        try:
            value = _parse_hex(serialized[len(SERIALIZED_PRIV_KEY_PREFIX):])
        except ValueError as e:
            raise InvalidPrivKeyError(str(e)) from e

        return cls(value)

    @classmethod
    def is_valid_serialized_priv_key(cls, serialized: str) -> bool:
        try:
            cls.unserialize(serialized)
        except InvalidPrivKeyError:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PrivKey) and self.raw_priv_key == other.raw_priv_key

    def __repr__(self) -> str:
        return "PrivKey(<redacted>)"


class PubKey:
    def __init__(self, raw_pub_key: Sequence[int]):
        if len(raw_pub_key) != 2:
            raise InvalidPubKeyError("Public key must have exactly two coordinates")
        if not all(is_field_element(v) for v in raw_pub_key):
            raise InvalidPubKeyError("Public key coordinates must be field elements")
        self.raw_pub_key: Tuple[int, int] = (raw_pub_key[0], raw_pub_key[1])

    @classmethod
    def blank(cls) -> 'PubKey':
        return cls((0, 0))

    def is_blank(self) -> bool:
        return self.raw_pub_key == (0, 0)

    def copy(self) -> 'PubKey':
        return PubKey(self.raw_pub_key)

    def as_contract_param(self) -> Dict[str, str]:
        return {
            'x': str(self.raw_pub_key[0]),
            'y': str(self.raw_pub_key[1]),
        }

    def as_circuit_inputs(self) -> List[str]:
        return [str(v) for v in self.raw_pub_key]

    def as_array(self) -> List[int]:
        return list(self.raw_pub_key)

    def serialize(self) -> str:
        if self.is_blank():
            return SERIALIZED_BLANK_PUB_KEY
        return SERIALIZED_PUB_KEY_PREFIX + pack_point(self.raw_pub_key).hex()

    @classmethod
    def unserialize(cls, serialized: str) -> 'PubKey':
        if serialized == SERIALIZED_BLANK_PUB_KEY:
            return cls.blank()
        if not isinstance(serialized, str) or not serialized.startswith(SERIALIZED_PUB_KEY_PREFIX):
            raise InvalidPubKeyError(f"Serialized public key must start with {SERIALIZED_PUB_KEY_PREFIX}")

        encoded = serialized[len(SERIALIZED_PUB_KEY_PREFIX):]
        try:
            _parse_hex(encoded)
            packed = bytes.fromhex(encoded)
        except ValueError as e:
            raise InvalidPubKeyError(f"Packed public key is not hex: {e}") from e

        point = unpack_point(packed)
        if point is None:
            raise InvalidPubKeyError("Packed public key is not a curve point")
        return cls(point)

    @classmethod
    def is_valid_serialized_pub_key(cls, serialized: str) -> bool:
        try:
            cls.unserialize(serialized)
        except InvalidPubKeyError:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        return isinstance(other, PubKey) and self.raw_pub_key == other.raw_pub_key

    def __hash__(self) -> int:
        return hash(self.raw_pub_key)

    def __repr__(self) -> str:
        return f"PubKey({self.serialize()})"


class Keypair:
    def __init__(self, priv_key: Optional[PrivKey] = None):
        if priv_key is not None:
            self.priv_key = priv_key
            self.pub_key = PubKey(gen_pub_key(priv_key.raw_priv_key))
        else:
            raw_priv_key, raw_pub_key = gen_keypair()
            self.priv_key = PrivKey(raw_priv_key)
            self.pub_key = PubKey(raw_pub_key)

    def copy(self) -> 'Keypair':
        return Keypair(self.priv_key.copy())

    @staticmethod
    def gen_ecdh_shared_key(priv_key: PrivKey, pub_key: PubKey) -> int:
        return gen_ecdh_shared_key(priv_key.raw_priv_key, pub_key.raw_pub_key)

    def equals(self, keypair: 'Keypair') -> bool:
        equal_priv_key = self.priv_key == keypair.priv_key
        equal_pub_key = self.pub_key == keypair.pub_key

        # Matching private keys always derive matching public keys
        if equal_priv_key != equal_pub_key:
            raise DomainObjectError("Keypair private and public keys disagree")

        return equal_priv_key

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Keypair) and self.equals(other)


# ============================================================================
# MESSAGES AND STATE LEAVES
# ============================================================================


class Message:
    """An encrypted command and signature"""

    DATA_LENGTH = 7

    def __init__(self, iv: int, data: Sequence[int]):
        if len(data) != self.DATA_LENGTH:
            raise DomainObjectError(f"Message data must hold {self.DATA_LENGTH} elements, got {len(data)}")
        if not is_field_element(iv) or not all(is_field_element(v) for v in data):
            raise DomainObjectError("Message iv and data must be field elements")
        self.iv = iv
        self.data: Tuple[int, ...] = tuple(data)

    def as_array(self) -> List[int]:
        return [self.iv, *self.data]

    def as_contract_param(self) -> Dict[str, Any]:
        return {
            'iv': str(self.iv),
            'data': [str(v) for v in self.data],
        }

    def as_circuit_inputs(self) -> List[int]:
        return self.as_array()

    def hash(self) -> int:
        # Two stages to stay within the circuit's hash arity
        d = self.data
        return hash4([
            hash5([self.iv, d[0], d[1], d[2], d[3]]),
            d[4],
            d[5],
            d[6],
        ])

    def copy(self) -> 'Message':
        return Message(self.iv, self.data)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Message) and self.as_array() == other.as_array()

    def __repr__(self) -> str:
        return f"Message(iv={self.iv}, data={list(self.data)})"


class StateLeaf:
    """A leaf in the state tree, mapping a public key to a voice credit balance"""

    def __init__(self, pub_key: PubKey, voice_credit_balance: int):
        if not is_field_element(voice_credit_balance):
            raise InvalidStateLeafError("Voice credit balance must be a non-negative field element")
        self.pub_key = pub_key
        self.voice_credit_balance = voice_credit_balance

    def copy(self) -> 'StateLeaf':
        return StateLeaf(self.pub_key.copy(), self.voice_credit_balance)

    @classmethod
    def gen_blank_leaf(cls) -> 'StateLeaf':
        return cls(PubKey.blank(), 0)

    @classmethod
    def gen_random_leaf(cls) -> 'StateLeaf':
        return cls(Keypair().pub_key, gen_random_salt())

    def as_array(self) -> List[int]:
        return [*self.pub_key.as_array(), self.voice_credit_balance]

    def as_circuit_inputs(self) -> List[int]:
        return self.as_array()

    def hash(self) -> int:
        return hash3(self.as_array())

    def as_contract_param(self) -> Dict[str, Any]:
        return {
            'pubKey': self.pub_key.as_contract_param(),
            'voiceCreditBalance': str(self.voice_credit_balance),
        }

    def serialize(self) -> str:
        j = {
            'pubKey': self.pub_key.serialize(),
            'voiceCreditBalance': format(self.voice_credit_balance, 'x'),
        }
        encoded = json.dumps(j, separators=(',', ':')).encode('utf-8')
        return base64.urlsafe_b64encode(encoded).rstrip(b'=').decode('ascii')

    @classmethod
    def unserialize(cls, serialized: str) -> 'StateLeaf':
        try:
            padding = '=' * (-len(serialized) % 4)
            j = json.loads(base64.urlsafe_b64decode(serialized + padding).decode('utf-8'))
            return cls(
                PubKey.unserialize(j['pubKey']),
                _parse_hex(j['voiceCreditBalance']),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidStateLeafError(f"Cannot parse serialized state leaf: {e}") from e

    @classmethod
    def is_valid_serialized_state_leaf(cls, serialized: str) -> bool:
        try:
            cls.unserialize(serialized)
        except InvalidStateLeafError:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, StateLeaf) and
            self.pub_key == other.pub_key and
            self.voice_credit_balance == other.voice_credit_balance
        )

    def __repr__(self) -> str:
        return f"StateLeaf({self.pub_key!r}, balance={self.voice_credit_balance})"


# ============================================================================
# COMMANDS
# ============================================================================


class DecryptedCommand(NamedTuple):
    command: 'Command'
    signature: Signature


def _extract(value: int, position: int) -> int:
    """The 50 bits of value starting at position"""
    return (value >> position) & COMMAND_FIELD_MASK


class Command:
    """Unencrypted vote-update intent"""

    def __init__(
        self,
        state_index: int,
        new_pub_key: PubKey,
        vote_option_index: int,
        new_vote_weight: int,
        nonce: int,
        poll_id: int = 0,
        salt: Optional[int] = None,
    ):
        bounded = {
            'state_index': state_index,
            'vote_option_index': vote_option_index,
            'new_vote_weight': new_vote_weight,
            'nonce': nonce,
            'poll_id': poll_id,
        }
        for name, value in bounded.items():
            if not isinstance(value, int) or not 0 <= value < COMMAND_FIELD_LIMIT:
                raise InvalidCommandError(f"{name} must be below 2^{COMMAND_FIELD_BITS}, got {value!r}")

        if salt is None:
            salt = gen_random_salt()
        if not is_field_element(salt):
            raise InvalidCommandError("Salt must be a field element")

        self.state_index = state_index
        self.new_pub_key = new_pub_key
        self.vote_option_index = vote_option_index
        self.new_vote_weight = new_vote_weight
        self.nonce = nonce
        self.poll_id = poll_id
        self.salt = salt

    def copy(self) -> 'Command':
        return Command(
            self.state_index,
            self.new_pub_key.copy(),
            self.vote_option_index,
            self.new_vote_weight,
            self.nonce,
            self.poll_id,
            self.salt,
        )

    def as_array(self) -> List[int]:
        """[packed, new_pub_key.x, new_pub_key.y, salt]

        packed holds five 50-bit fields:
        bits 0-49 state index, 50-99 vote option index, 100-149 new vote
        weight, 150-199 nonce, 200-249 poll id
        """
        packed = (
            self.state_index |
            (self.vote_option_index << 50) |
            (self.new_vote_weight << 100) |
            (self.nonce << 150) |
            (self.poll_id << 200)
        )
        return [packed, *self.new_pub_key.as_array(), self.salt]

    def hash(self) -> int:
        return hash4(self.as_array())

    def sign(self, priv_key: PrivKey) -> Signature:
        return sign(priv_key.raw_priv_key, self.hash())

    def verify_signature(self, signature: Signature, pub_key: PubKey) -> bool:
        """True if signature signs this command under pub_key"""
        return verify_signature(self.hash(), signature, pub_key.raw_pub_key)

    def encrypt(self, signature: Signature, shared_key: int) -> Message:
        plaintext = [
            *self.as_array(),
            signature.R8[0],
            signature.R8[1],
            signature.S,
        ]
        ciphertext = encrypt(plaintext, shared_key)
        return Message(ciphertext.iv, ciphertext.data)

    @staticmethod
    def decrypt(message: Message, shared_key: int) -> DecryptedCommand:
        """Inverse of encrypt; performs no integrity check"""
        decrypted = decrypt(Ciphertext(message.iv, message.data), shared_key)

        packed = decrypted[0]
        command = Command(
            state_index=_extract(packed, 0),
            new_pub_key=PubKey((decrypted[1], decrypted[2])),
            vote_option_index=_extract(packed, 50),
            new_vote_weight=_extract(packed, 100),
            nonce=_extract(packed, 150),
            poll_id=_extract(packed, 200),
            salt=decrypted[3],
        )
        signature = Signature(R8=(decrypted[4], decrypted[5]), S=decrypted[6])

        return DecryptedCommand(command, signature)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Command) and (
            self.state_index == other.state_index and
            self.new_pub_key == other.new_pub_key and
            self.vote_option_index == other.vote_option_index and
            self.new_vote_weight == other.new_vote_weight and
            self.nonce == other.nonce and
            self.poll_id == other.poll_id and
            self.salt == other.salt
        )

    def __repr__(self) -> str:
        return (f"Command(state_index={self.state_index}, vote_option_index={self.vote_option_index}, "
                f"new_vote_weight={self.new_vote_weight}, nonce={self.nonce}, poll_id={self.poll_id})")
