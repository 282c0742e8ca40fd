"""Signature verification and ECIES for the mobile voting channel.

Mobile clients sign a canonical payload with their registered key and encrypt
the vote for the server with ECIES:
1. Ephemeral P-256 key pair per message
2. ECDH with the server's static public key
3. HKDF-SHA256 to derive a 256-bit AES key
4. AES-256-GCM; the GCM tag is the integrity check for this channel
"""
import base64
import json
import os
from typing import Union

from cryptography.exceptions import InvalidSignature, InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from secure_ballot.models.mobile_payload import MobileEciesPackage
from secure_ballot.utils.errors import IntegrityViolation, InvalidParameters

CURVE = ec.SECP256R1()
HKDF_INFO = b'secure-ballot/mobile-vote/v1'
AES_KEY_SIZE = 32  # bytes
GCM_IV_SIZE = 12  # bytes
GCM_TAG_SIZE = 16  # bytes


def canonical_payload(election_id: str, candidate_id: str, encrypted_vote: bytes) -> bytes:
    """Build the canonical bytes a mobile client signs.

    Field order is fixed (election_id, candidate_id, encrypted_vote) and keys
    are not sorted: a client that reorders or re-encodes fields produces
    different bytes and its signature will not verify.
    """
    return json.dumps(
        {
            'election_id': election_id,
            'candidate_id': candidate_id,
            'encrypted_vote': base64.b64encode(encrypted_vote).decode('utf-8')
        },
        separators=(',', ':')
    ).encode('utf-8')


def _load_public_key(public_key):
    if isinstance(public_key, str):
        public_key = public_key.encode('utf-8')
    if isinstance(public_key, bytes):
        return serialization.load_pem_public_key(public_key)
    return public_key


def sign_payload(payload: bytes, private_key) -> bytes:
    """Sign canonical payload bytes (client-side contract).

    EC keys sign with ECDSA/SHA-256 (DER signature), RSA keys with
    PKCS#1 v1.5/SHA-256.
    """
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(payload, ec.ECDSA(hashes.SHA256()))
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
    raise InvalidParameters("Unsupported signing key type")


def verify_signature(payload: bytes, signature: bytes, voter_public_key) -> bool:
    """Verify a voter's signature over canonical payload bytes.

    Returns False on any mismatch, malformed signature or unusable key.
    Never raises.
    """
    try:
        public_key = _load_public_key(voter_public_key)
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            public_key.verify(signature, payload, ec.ECDSA(hashes.SHA256()))
        elif isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
        else:
            return False
    except (InvalidSignature, UnsupportedAlgorithm, ValueError, TypeError):
        return False
    return True


def generate_server_key_pair() -> ec.EllipticCurvePrivateKey:
    """Generate the server's static P-256 key pair."""
    return ec.generate_private_key(CURVE)


def load_server_private_key(pem: Union[str, bytes], password: bytes = None) -> ec.EllipticCurvePrivateKey:
    """Load the server's static EC private key from PEM."""
    if isinstance(pem, str):
        pem = pem.encode('utf-8')
    key = serialization.load_pem_private_key(pem, password=password)
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise InvalidParameters("Mobile server key must be an elliptic-curve key")
    return key


def serialize_private_key(private_key) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ).decode('utf-8')


def serialize_public_key(public_key) -> str:
    """PEM-encode a public key (private keys are reduced to their public half)."""
    if hasattr(public_key, 'public_key'):
        public_key = public_key.public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')


def _derive_key(shared_secret: bytes, ephemeral_point: bytes) -> bytes:
    """HKDF-SHA256 over the ECDH shared secret, salted with the ephemeral point."""
    return HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_SIZE,
        salt=ephemeral_point,
        info=HKDF_INFO
    ).derive(shared_secret)


def encrypt_for_server(vote_payload: Union[bytes, dict], server_public_key) -> MobileEciesPackage:
    """Encrypt a vote payload for the server (client-side contract).

    Args:
        vote_payload: Raw bytes or a dict (serialized as compact JSON)
        server_public_key: Server static EC public key (PEM or key object)

    Returns:
        MobileEciesPackage with ephemeral key, IV, ciphertext and tag
    """
    if isinstance(vote_payload, dict):
        vote_payload = json.dumps(vote_payload, sort_keys=True, separators=(',', ':')).encode('utf-8')

    server_public_key = _load_public_key(server_public_key)
    if not isinstance(server_public_key, ec.EllipticCurvePublicKey):
        raise InvalidParameters("Mobile server key must be an elliptic-curve key")

    ephemeral_key = ec.generate_private_key(server_public_key.curve)
    ephemeral_point = ephemeral_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    shared_secret = ephemeral_key.exchange(ec.ECDH(), server_public_key)
    aes_key = _derive_key(shared_secret, ephemeral_point)

    iv = os.urandom(GCM_IV_SIZE)
    sealed = AESGCM(aes_key).encrypt(iv, vote_payload, ephemeral_point)

    return MobileEciesPackage(
        ephemeral_public_key=ephemeral_point,
        iv=iv,
        ciphertext=sealed[:-GCM_TAG_SIZE],
        tag=sealed[-GCM_TAG_SIZE:]
    )


def decrypt_from_client(package: MobileEciesPackage, server_private_key) -> bytes:
    """Decrypt a client's ECIES package with the server's static private key.

    Decryption and tag verification are a single step: if the tag does not
    verify, IntegrityViolation is raised and no plaintext is produced.
    """
    if len(package.iv) != GCM_IV_SIZE or len(package.tag) != GCM_TAG_SIZE:
        raise IntegrityViolation("ECIES package has malformed IV or tag")

    try:
        ephemeral_public_key = ec.EllipticCurvePublicKey.from_encoded_point(
            server_private_key.curve, package.ephemeral_public_key
        )
    except ValueError:
        raise IntegrityViolation("ECIES ephemeral public key is not a valid curve point")

    shared_secret = server_private_key.exchange(ec.ECDH(), ephemeral_public_key)
    aes_key = _derive_key(shared_secret, package.ephemeral_public_key)

    try:
        return AESGCM(aes_key).decrypt(
            package.iv, package.ciphertext + package.tag, package.ephemeral_public_key
        )
    except InvalidTag:
        raise IntegrityViolation("ECIES authentication tag mismatch")
