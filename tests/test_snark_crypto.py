import numpy as np
import pytest

from primitives.snark_crypto import (
    BASE8,
    IDENTITY,
    SNARK_FIELD_SIZE,
    SUB_ORDER,
    Ciphertext,
    Signature,
    add_point,
    blake512,
    decrypt,
    encrypt,
    field_sqrt,
    format_priv_key_for_babyjub,
    gen_ecdh_shared_key,
    gen_keypair,
    gen_pub_key,
    gen_random_salt,
    hash3,
    hash4,
    hash5,
    hash_left_right,
    in_curve,
    mul_point_escalar,
    pack_point,
    poseidon,
    poseidon_parameters,
    sign,
    snark_field,
    stringify_big_ints,
    unpack_point,
    unstringify_big_ints,
    verify_signature,
)


def test_random_salt_is_field_element():
    salt = gen_random_salt()
    assert 0 <= salt < SNARK_FIELD_SIZE


def test_field_sqrt_matches_galois_field():
    GF = snark_field()
    root = field_sqrt(49)
    assert root is not None
    assert GF(root) ** 2 == GF(49)


def test_poseidon_is_deterministic_and_input_sensitive():
    assert poseidon([1, 2]) == poseidon([1, 2])
    assert poseidon([1, 2]) != poseidon([2, 1])
    assert poseidon([1, 2]) == hash_left_right(1, 2)
    assert 0 <= poseidon([0]) < SNARK_FIELD_SIZE


def test_poseidon_rejects_bad_inputs():
    with pytest.raises(ValueError):
        poseidon([])
    with pytest.raises(ValueError):
        poseidon(list(range(17)))
    with pytest.raises(ValueError):
        poseidon([SNARK_FIELD_SIZE])
    with pytest.raises(ValueError):
        hash3([1, 2])


def test_poseidon_mds_is_invertible():
    params = poseidon_parameters(3)
    GF = snark_field()
    mds = GF([list(row) for row in params.mds])

    assert np.linalg.det(mds) != 0
    assert len(params.round_constants) == 3 * (params.full_rounds + params.partial_rounds)


def test_base_point_generates_prime_order_subgroup():
    assert in_curve(BASE8)
    assert mul_point_escalar(BASE8, SUB_ORDER) == IDENTITY
    assert add_point(BASE8, IDENTITY) == BASE8


def test_pack_unpack_point():
    _, pub_key = gen_keypair()
    packed = pack_point(pub_key)
    assert len(packed) == 32
    assert unpack_point(packed) == pub_key


def test_unpack_rejects_garbage():
    assert unpack_point(b'\x00' * 31) is None
    assert unpack_point(b'\xff' * 32) is None


def test_formatted_priv_key_is_deterministic():
    priv_key, pub_key = gen_keypair()
    assert mul_point_escalar(BASE8, format_priv_key_for_babyjub(priv_key)) == pub_key


def test_sign_and_verify():
    priv_key, pub_key = gen_keypair()
    message = gen_random_salt()
    signature = sign(priv_key, message)

    assert verify_signature(message, signature, pub_key)
    assert not verify_signature((message + 1) % SNARK_FIELD_SIZE, signature, pub_key)

    _, other_pub_key = gen_keypair()
    assert not verify_signature(message, signature, other_pub_key)


def test_verify_rejects_malformed_signatures():
    priv_key, pub_key = gen_keypair()
    signature = sign(priv_key, 42)

    too_big = Signature(R8=signature.R8, S=signature.S + SUB_ORDER)
    assert not verify_signature(42, too_big, pub_key)

    off_curve = Signature(R8=(1, 1), S=signature.S)
    assert not verify_signature(42, off_curve, pub_key)


def test_ecdh_shared_key_is_symmetric():
    priv_a, pub_a = gen_keypair()
    priv_b, pub_b = gen_keypair()
    assert gen_ecdh_shared_key(priv_a, pub_b) == gen_ecdh_shared_key(priv_b, pub_a)


def test_ecdh_rejects_off_curve_key():
    priv_key, _ = gen_keypair()
    with pytest.raises(ValueError):
        gen_ecdh_shared_key(priv_key, (0, 0))


def test_encrypt_decrypt():
    plaintext = [gen_random_salt() for _ in range(7)]
    key = gen_random_salt()

    ciphertext = encrypt(plaintext, key)
    assert len(ciphertext.data) == len(plaintext)
    assert decrypt(ciphertext, key) == plaintext
    assert decrypt(ciphertext, (key + 1) % SNARK_FIELD_SIZE) != plaintext


def test_encrypt_with_explicit_iv_is_deterministic():
    key = gen_random_salt()
    assert encrypt([1, 2, 3], key, iv=7) == encrypt([1, 2, 3], key, iv=7)
    assert decrypt(Ciphertext(7, encrypt([1, 2, 3], key, iv=7).data), key) == [1, 2, 3]


def test_stringify_big_ints():
    data = {'root': 2 ** 200, 'path': [[1, 2], [3]], 'flag': True}
    stringified = stringify_big_ints(data)
    assert stringified == {'root': str(2 ** 200), 'path': [['1', '2'], ['3']], 'flag': True}
    assert unstringify_big_ints(stringified) == data


def test_blake512_known_answers():
    assert blake512(b'').hex() == (
        'a8cfbbd73726062df0c6864dda65defe58ef0cc52a5625090fa17601e1eecd1b'
        '628e94f396ae402a00acc9eab77b4d4c2e852aaaa25a636d80af3fc7913ef5b8'
    )
    assert blake512(b'\x00').hex() == (
        '97961587f6d970faba6d2478045de6d1fabd09b61ae50932054d52bc29d31be4'
        'ff9102b9f69e2bbdb83be13d4b9c06091e5fa0b48bd081b634058be0ec49beb3'
    )
    # Two blocks, the second holding message bits and padding
    assert blake512(b'\x00' * 144).hex() == (
        '313717d608e9cf758dcb1eb0f0c3cf9fc150b2d500fb33f51c52afc99d358a2f'
        '1374b8a38bba7974e7f6ef79cab16f22ce1e649d6e01ad9589c213045d545dde'
    )


def test_pub_key_matches_circomlib_prv2pub():
    priv_key = 0x0001020304050607080900010203040506070809000102030405060708090001
    assert gen_pub_key(priv_key) == (
        13277427435165878497778222415993513565335242147425444199013288855685581939618,
        13622229784656158136036771217484571176836296686641868549125388198837476602820,
    )


def test_poseidon_matches_circomlib():
    assert poseidon([1, 2]) == 7853200120776062878684798364095072458815029376092732009249414926327459813530
    assert hash4([1, 2, 3, 4]) == 18821383157269793795438455681495246036402687001665670618754263018637548127333
    assert hash5([1, 2, 3, 4, 5]) == 6183221330272524995739186171720101788151706631170188140075976616310159254464
