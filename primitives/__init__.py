"""SNARK-friendly field, hash, curve and cipher primitives."""

from .snark_crypto import (
    # Field
    SNARK_FIELD_SIZE,
    snark_field,
    is_field_element,
    validate_field_element,
    field_sqrt,
    gen_random_salt,

    # Hashing
    poseidon,
    poseidon_parameters,
    blake512,
    hash_left_right,
    hash3,
    hash4,
    hash5,

    # Curve
    BASE8,
    SUB_ORDER,
    add_point,
    mul_point_escalar,
    in_curve,
    pack_point,
    unpack_point,

    # Keys and signatures
    Signature,
    gen_priv_key,
    gen_pub_key,
    gen_keypair,
    format_priv_key_for_babyjub,
    gen_ecdh_shared_key,
    sign,
    verify_signature,

    # Encryption
    Ciphertext,
    encrypt,
    decrypt,

    # Serialization
    stringify_big_ints,
    unstringify_big_ints,
)

__version__ = "1.0.0"

__all__ = [
    'SNARK_FIELD_SIZE',
    'snark_field',
    'is_field_element',
    'validate_field_element',
    'field_sqrt',
    'gen_random_salt',

    'poseidon',
    'poseidon_parameters',
    'blake512',
    'hash_left_right',
    'hash3',
    'hash4',
    'hash5',

    'BASE8',
    'SUB_ORDER',
    'add_point',
    'mul_point_escalar',
    'in_curve',
    'pack_point',
    'unpack_point',

    'Signature',
    'gen_priv_key',
    'gen_pub_key',
    'gen_keypair',
    'format_priv_key_for_babyjub',
    'gen_ecdh_shared_key',
    'sign',
    'verify_signature',

    'Ciphertext',
    'encrypt',
    'decrypt',

    'stringify_big_ints',
    'unstringify_big_ints',
]
