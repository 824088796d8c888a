"""
SNARK-Friendly Cryptographic Primitives
=======================================
Field arithmetic over the BN254 scalar field, the circom-compatible Poseidon
hash family, Baby Jubjub curve arithmetic, EdDSA-Poseidon signatures, ECDH
key agreement and the field-element stream cipher used to encrypt commands.

Every value here is a plain Python int so it can be handed to the circuit
witness generator without conversion.
"""

import logging
import secrets
from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, List, Optional, Sequence, Tuple

import galois
import numpy as np

logger = logging.getLogger(__name__)

# ============================================================================
# FIELD
# ============================================================================

# BN254 scalar field prime
SNARK_FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Multiplicative generator of the BN254 scalar field
FIELD_GENERATOR = 5

FIELD_BITS = 254

Point = Tuple[int, int]


@lru_cache(maxsize=1)
def snark_field():
    """galois GF(p) class for the SNARK scalar field"""
    # Factoring p - 1 to find a generator is too slow; supply the known one
    return galois.GF(SNARK_FIELD_SIZE, primitive_element=FIELD_GENERATOR, verify=False)


def is_field_element(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < SNARK_FIELD_SIZE


def validate_field_element(value: Any) -> int:
    """Raise ValueError unless value is an integer in [0, p)"""
    if not is_field_element(value):
        raise ValueError(f"Value {value!r} outside field bounds")
    return value


def field_sqrt(n: int) -> Optional[int]:
    """Tonelli-Shanks square root modulo the field prime, None for non-residues"""
    p = SNARK_FIELD_SIZE
    n %= p
    if n == 0:
        return 0
    if pow(n, (p - 1) // 2, p) != 1:
        return None

    q, s = p - 1, 0
    while q % 2 == 0:
        q //= 2
        s += 1

    m = s
    c = pow(FIELD_GENERATOR, q, p)
    t = pow(n, q, p)
    r = pow(n, (q + 1) // 2, p)

    while t != 1:
        i = 1
        t2 = t * t % p
        while t2 != 1:
            t2 = t2 * t2 % p
            i += 1
        b = pow(c, 1 << (m - i - 1), p)
        m = i
        c = b * b % p
        t = t * c % p
        r = r * b % p

    return r


def gen_random_salt() -> int:
    """Uniformly random field element"""
    return secrets.randbelow(SNARK_FIELD_SIZE)


# ============================================================================
# POSEIDON
# ============================================================================

POSEIDON_FULL_ROUNDS = 8

# Partial rounds indexed by width - 2 (circomlib values for t = 2..17)
POSEIDON_PARTIAL_ROUNDS = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]

POSEIDON_MAX_INPUTS = len(POSEIDON_PARTIAL_ROUNDS)


class GrainLFSR:
    """Grain LFSR in self-shrinking mode, as used by the Poseidon parameter generator"""

    STATE_BITS = 80
    WARMUP_ROUNDS = 160

    def __init__(self, field: int, sbox: int, field_bits: int, width: int,
                 full_rounds: int, partial_rounds: int):
        seed = (
            format(field, '02b') +
            format(sbox, '04b') +
            format(field_bits, '012b') +
            format(width, '012b') +
            format(full_rounds, '010b') +
            format(partial_rounds, '010b') +
            '1' * 30
        )
        self.bits = deque(int(b) for b in seed)
        for _ in range(self.WARMUP_ROUNDS):
            self._update()

    def _update(self) -> int:
        b = self.bits
        new_bit = b[62] ^ b[51] ^ b[38] ^ b[23] ^ b[13] ^ b[0]
        b.popleft()
        b.append(new_bit)
        return new_bit

    def random_bits(self, num_bits: int) -> int:
        """Draw num_bits output bits, most significant first"""
        value = 0
        for _ in range(num_bits):
            while True:
                keep = self._update()
                bit = self._update()
                if keep:
                    break
            value = (value << 1) | bit
        return value

    def field_element(self, num_bits: int, prime: int) -> int:
        """Rejection-sample a field element"""
        while True:
            value = self.random_bits(num_bits)
            if value < prime:
                return value


@dataclass(frozen=True)
class PoseidonParameters:
    width: int
    full_rounds: int
    partial_rounds: int
    round_constants: Tuple[int, ...]
    mds: Tuple[Tuple[int, ...], ...]


def _cauchy_mds(lfsr: GrainLFSR, width: int) -> Tuple[Tuple[int, ...], ...]:
    """M[i][j] = 1 / (x_i + y_j) over 2 * width distinct LFSR draws"""
    while True:
        values = [lfsr.random_bits(FIELD_BITS) % SNARK_FIELD_SIZE for _ in range(2 * width)]
        if len(set(values)) == len(values):
            break

    GF = snark_field()
    xs = GF(values[:width])
    ys = GF(values[width:])
    matrix = GF(1) / (xs[:, np.newaxis] + ys[np.newaxis, :])

    return tuple(tuple(int(v) for v in row) for row in matrix)


@lru_cache(maxsize=None)
def poseidon_parameters(width: int) -> PoseidonParameters:
    """Round constants and MDS matrix for a permutation of the given width"""
    if not 2 <= width <= POSEIDON_MAX_INPUTS + 1:
        raise ValueError(f"Unsupported Poseidon width {width}")

    full_rounds = POSEIDON_FULL_ROUNDS
    partial_rounds = POSEIDON_PARTIAL_ROUNDS[width - 2]

    lfsr = GrainLFSR(1, 0, FIELD_BITS, width, full_rounds, partial_rounds)
    round_constants = tuple(
        lfsr.field_element(FIELD_BITS, SNARK_FIELD_SIZE)
        for _ in range((full_rounds + partial_rounds) * width)
    )
    mds = _cauchy_mds(lfsr, width)

    logger.debug(f"Generated Poseidon parameters for t={width} "
                 f"({len(round_constants)} round constants)")

    return PoseidonParameters(width, full_rounds, partial_rounds, round_constants, mds)


def poseidon(inputs: Sequence[int]) -> int:
    """Poseidon hash of 1..16 field elements"""
    inputs = list(inputs)
    if not 1 <= len(inputs) <= POSEIDON_MAX_INPUTS:
        raise ValueError(f"Poseidon accepts 1 to {POSEIDON_MAX_INPUTS} inputs, got {len(inputs)}")
    for value in inputs:
        validate_field_element(value)

    p = SNARK_FIELD_SIZE
    params = poseidon_parameters(len(inputs) + 1)
    t = params.width
    rc = params.round_constants
    mds = params.mds
    half_full = params.full_rounds // 2

    state = [0] + inputs
    for r in range(params.full_rounds + params.partial_rounds):
        offset = r * t
        state = [(s + rc[offset + i]) % p for i, s in enumerate(state)]

        if r < half_full or r >= half_full + params.partial_rounds:
            state = [pow(s, 5, p) for s in state]
        else:
            state[0] = pow(state[0], 5, p)

        state = [sum(row[j] * state[j] for j in range(t)) % p for row in mds]

    return state[0]


def _fixed_arity(arity: int):
    def hash_fn(inputs: Sequence[int]) -> int:
        if len(inputs) != arity:
            raise ValueError(f"Expected {arity} inputs, got {len(inputs)}")
        return poseidon(inputs)
    hash_fn.__name__ = f"hash{arity}"
    return hash_fn


hash3 = _fixed_arity(3)
hash4 = _fixed_arity(4)
hash5 = _fixed_arity(5)


def hash_left_right(left: int, right: int) -> int:
    return poseidon([left, right])


# ============================================================================
# BABY JUBJUB
# ============================================================================

BABYJUB_A = 168700
BABYJUB_D = 168696

# Generator of the prime-order subgroup
BASE8: Point = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

BABYJUB_ORDER = 21888242871839275222246405745257275088614511777268538073601725287587578984328
SUB_ORDER = BABYJUB_ORDER >> 3

IDENTITY: Point = (0, 1)


def add_point(a: Point, b: Point) -> Point:
    """Twisted Edwards point addition"""
    p = SNARK_FIELD_SIZE
    x1, y1 = a
    x2, y2 = b

    beta = x1 * y2 % p
    gamma = y1 * x2 % p
    delta = (y1 - BABYJUB_A * x1) * (x2 + y2) % p
    tau = beta * gamma % p

    x3 = (beta + gamma) * pow((1 + BABYJUB_D * tau) % p, -1, p) % p
    y3 = (delta + BABYJUB_A * beta - gamma) * pow((1 - BABYJUB_D * tau) % p, -1, p) % p
    return (x3, y3)


def mul_point_escalar(base: Point, scalar: int) -> Point:
    """Double-and-add scalar multiplication"""
    result = IDENTITY
    addend = base
    while scalar:
        if scalar & 1:
            result = add_point(result, addend)
        addend = add_point(addend, addend)
        scalar >>= 1
    return result


def in_curve(point: Point) -> bool:
    p = SNARK_FIELD_SIZE
    x, y = point
    if not (is_field_element(x) and is_field_element(y)):
        return False
    x2 = x * x % p
    y2 = y * y % p
    return (BABYJUB_A * x2 + y2) % p == (1 + BABYJUB_D * x2 * y2) % p


def pack_point(point: Point) -> bytes:
    """32-byte little-endian y with the sign of x in the top bit"""
    x, y = point
    buff = bytearray(y.to_bytes(32, 'little'))
    if x > SNARK_FIELD_SIZE >> 1:
        buff[31] |= 0x80
    return bytes(buff)


def unpack_point(packed: bytes) -> Optional[Point]:
    """Inverse of pack_point; None if the bytes do not encode a curve point"""
    if len(packed) != 32:
        return None

    p = SNARK_FIELD_SIZE
    buff = bytearray(packed)
    sign = bool(buff[31] & 0x80)
    buff[31] &= 0x7F

    y = int.from_bytes(buff, 'little')
    if y >= p:
        return None

    y2 = y * y % p
    denominator = (BABYJUB_A - BABYJUB_D * y2) % p
    if denominator == 0:
        return None

    x = field_sqrt((1 - y2) * pow(denominator, -1, p) % p)
    if x is None:
        return None

    if x > p >> 1:
        x = p - x
    if sign:
        x = (p - x) % p

    return (x, y)


# ============================================================================
# BLAKE-512
# ============================================================================

# The SHA-3 finalist BLAKE, not BLAKE2; circomlib digests private keys with it
BLAKE512_IV = (
    0x6A09E667F3BCC908, 0xBB67AE8584CAA73B, 0x3C6EF372FE94F82B, 0xA54FF53A5F1D36F1,
    0x510E527FADE682D1, 0x9B05688C2B3E6C1F, 0x1F83D9ABFB41BD6B, 0x5BE0CD19137E2179,
)

# Leading 1024 bits of the fractional part of pi
BLAKE512_CONSTANTS = (
    0x243F6A8885A308D3, 0x13198A2E03707344, 0xA4093822299F31D0, 0x082EFA98EC4E6C89,
    0x452821E638D01377, 0xBE5466CF34E90C6C, 0xC0AC29B7C97C50DD, 0x3F84D5B5B5470917,
    0x9216D5D98979FB1B, 0xD1310BA698DFB5AC, 0x2FFD72DBD01ADFB7, 0xB8E1AFED6A267E96,
    0xBA7C9045F12C7F99, 0x24A19947B3916CF7, 0x0801F2E2858EFC16, 0x636920D871574E69,
)

BLAKE_SIGMA = (
    (0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15),
    (14, 10, 4, 8, 9, 15, 13, 6, 1, 12, 0, 2, 11, 7, 5, 3),
    (11, 8, 12, 0, 5, 2, 15, 13, 10, 14, 3, 6, 7, 1, 9, 4),
    (7, 9, 3, 1, 13, 12, 11, 14, 2, 6, 5, 10, 4, 0, 15, 8),
    (9, 0, 5, 7, 2, 4, 10, 15, 14, 1, 11, 12, 6, 8, 3, 13),
    (2, 12, 6, 10, 0, 11, 8, 3, 4, 13, 7, 5, 15, 14, 1, 9),
    (12, 5, 1, 15, 14, 13, 4, 10, 0, 7, 6, 3, 9, 2, 8, 11),
    (13, 11, 7, 14, 12, 1, 3, 9, 5, 0, 15, 4, 8, 6, 2, 10),
    (6, 15, 14, 9, 11, 3, 0, 8, 12, 2, 13, 7, 1, 4, 10, 5),
    (10, 2, 8, 4, 7, 6, 1, 5, 15, 11, 9, 14, 3, 12, 13, 0),
)

BLAKE512_ROUNDS = 16
BLAKE512_BLOCK_BYTES = 128

_WORD_MASK = (1 << 64) - 1

# (a, b, c, d) state positions for the four column steps then the four diagonal steps
_BLAKE_STEPS = (
    (0, 4, 8, 12), (1, 5, 9, 13), (2, 6, 10, 14), (3, 7, 11, 15),
    (0, 5, 10, 15), (1, 6, 11, 12), (2, 7, 8, 13), (3, 4, 9, 14),
)


def _rotr64(x: int, n: int) -> int:
    return ((x >> n) | (x << (64 - n))) & _WORD_MASK


def _blake512_compress(h: List[int], block: bytes, counter: int) -> List[int]:
    m = [int.from_bytes(block[i:i + 8], 'big') for i in range(0, BLAKE512_BLOCK_BYTES, 8)]
    c = BLAKE512_CONSTANTS
    t0 = counter & _WORD_MASK
    t1 = counter >> 64

    v = list(h) + [
        c[0], c[1], c[2], c[3],
        t0 ^ c[4], t0 ^ c[5], t1 ^ c[6], t1 ^ c[7],
    ]

    for r in range(BLAKE512_ROUNDS):
        sigma = BLAKE_SIGMA[r % 10]
        for step, (a, b, cc, d) in enumerate(_BLAKE_STEPS):
            x = sigma[2 * step]
            y = sigma[2 * step + 1]

            v[a] = (v[a] + v[b] + (m[x] ^ c[y])) & _WORD_MASK
            v[d] = _rotr64(v[d] ^ v[a], 32)
            v[cc] = (v[cc] + v[d]) & _WORD_MASK
            v[b] = _rotr64(v[b] ^ v[cc], 25)
            v[a] = (v[a] + v[b] + (m[y] ^ c[x])) & _WORD_MASK
            v[d] = _rotr64(v[d] ^ v[a], 16)
            v[cc] = (v[cc] + v[d]) & _WORD_MASK
            v[b] = _rotr64(v[b] ^ v[cc], 11)

    # Salt is always zero
    return [h[i] ^ v[i] ^ v[i + 8] for i in range(8)]


def blake512(data: bytes) -> bytes:
    """BLAKE-512 digest (64 bytes)"""
    data = bytes(data)
    length = len(data)

    padded = bytearray(data)
    padded.append(0x80)
    while len(padded) % BLAKE512_BLOCK_BYTES != BLAKE512_BLOCK_BYTES - 16:
        padded.append(0)
    padded[-1] |= 0x01
    padded += (length * 8).to_bytes(16, 'big')

    h = list(BLAKE512_IV)
    for offset in range(0, len(padded), BLAKE512_BLOCK_BYTES):
        # The counter covers message bits only; padding-only blocks use zero
        if offset < length:
            counter = min(length, offset + BLAKE512_BLOCK_BYTES) * 8
        else:
            counter = 0
        h = _blake512_compress(h, bytes(padded[offset:offset + BLAKE512_BLOCK_BYTES]), counter)

    return b''.join(word.to_bytes(8, 'big') for word in h)


# ============================================================================
# KEYS, SIGNATURES AND ECDH
# ============================================================================


@dataclass(frozen=True)
class Signature:
    """EdDSA-Poseidon signature: commitment point R8 and scalar S"""
    R8: Point
    S: int


@dataclass(frozen=True)
class Ciphertext:
    iv: int
    data: Tuple[int, ...]


def _prune_buffer(buff: bytes) -> bytes:
    pruned = bytearray(buff[:32])
    pruned[0] &= 0xF8
    pruned[31] &= 0x7F
    pruned[31] |= 0x40
    return bytes(pruned)


def _priv_key_digest(priv_key: int) -> bytes:
    return blake512(priv_key.to_bytes(32, 'big'))


def _pruned_scalar(priv_key: int) -> int:
    return int.from_bytes(_prune_buffer(_priv_key_digest(priv_key)[:32]), 'little')


def gen_priv_key() -> int:
    return gen_random_salt()


def format_priv_key_for_babyjub(priv_key: int) -> int:
    """Scalar the circuit uses as witness for a raw private key"""
    validate_field_element(priv_key)
    return _pruned_scalar(priv_key) >> 3


def gen_pub_key(priv_key: int) -> Point:
    return mul_point_escalar(BASE8, format_priv_key_for_babyjub(priv_key))


def gen_keypair() -> Tuple[int, Point]:
    priv_key = gen_priv_key()
    return priv_key, gen_pub_key(priv_key)


def gen_ecdh_shared_key(priv_key: int, pub_key: Point) -> int:
    """x-coordinate of formatted(priv_key) * pub_key"""
    if not in_curve(pub_key):
        raise ValueError("ECDH public key is not a Baby Jubjub point")
    return mul_point_escalar(pub_key, format_priv_key_for_babyjub(priv_key))[0]


def sign(priv_key: int, message: int) -> Signature:
    """EdDSA-Poseidon signature over a single field element"""
    validate_field_element(message)

    digest = _priv_key_digest(priv_key)
    s = int.from_bytes(_prune_buffer(digest[:32]), 'little')
    A = mul_point_escalar(BASE8, s >> 3)

    r_digest = blake512(digest[32:64] + message.to_bytes(32, 'little'))
    r = int.from_bytes(r_digest, 'little') % SUB_ORDER
    R8 = mul_point_escalar(BASE8, r)

    hm = poseidon([R8[0], R8[1], A[0], A[1], message])
    S = (r + hm * s) % SUB_ORDER

    return Signature(R8=R8, S=S)


def verify_signature(message: int, signature: Signature, pub_key: Point) -> bool:
    """Check S * B8 == R8 + 8 * hm * A"""
    R8 = tuple(signature.R8)
    if not (in_curve(R8) and in_curve(pub_key)):
        return False
    if not is_field_element(message) or not 0 <= signature.S < SUB_ORDER:
        return False

    hm = poseidon([R8[0], R8[1], pub_key[0], pub_key[1], message])

    left = mul_point_escalar(BASE8, signature.S)
    right = add_point(R8, mul_point_escalar(pub_key, 8 * hm))
    return left == right


# ============================================================================
# SYMMETRIC ENCRYPTION
# ============================================================================


def _keystream(shared_key: int, iv: int, index: int) -> int:
    return poseidon([shared_key, (iv + index) % SNARK_FIELD_SIZE])


def encrypt(plaintext: Sequence[int], shared_key: int, iv: Optional[int] = None) -> Ciphertext:
    """Counter-mode encryption of field elements keyed by an ECDH shared key"""
    for value in plaintext:
        validate_field_element(value)
    if iv is None:
        iv = gen_random_salt()

    data = tuple(
        (value + _keystream(shared_key, iv, i)) % SNARK_FIELD_SIZE
        for i, value in enumerate(plaintext)
    )
    return Ciphertext(iv=iv, data=data)


def decrypt(ciphertext: Ciphertext, shared_key: int) -> List[int]:
    return [
        (value - _keystream(shared_key, ciphertext.iv, i)) % SNARK_FIELD_SIZE
        for i, value in enumerate(ciphertext.data)
    ]


# ============================================================================
# SERIALIZATION HELPERS
# ============================================================================


def stringify_big_ints(obj: Any) -> Any:
    """Recursively render ints as decimal strings for JSON consumers"""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, dict):
        return {k: stringify_big_ints(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [stringify_big_ints(v) for v in obj]
    return obj


def unstringify_big_ints(obj: Any) -> Any:
    """Inverse of stringify_big_ints for decimal and 0x-prefixed strings"""
    if isinstance(obj, str):
        if obj.isdigit():
            return int(obj)
        if obj.startswith('0x'):
            return int(obj, 16)
        return obj
    if isinstance(obj, dict):
        return {k: unstringify_big_ints(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [unstringify_big_ints(v) for v in obj]
    return obj
