import hashlib
import json
import secrets
from Crypto.PublicKey import RSA

FINGERPRINT_LENGTH = 16  # characters
RECEIPT_PREFIX = 'RCP-'
RECEIPT_HASH_CHARS = 12
RECEIPT_CODE_LENGTH = len(RECEIPT_PREFIX) + RECEIPT_HASH_CHARS


def compute_key_fingerprint(public_key) -> str:
    """Compute the fixed-length fingerprint of an RSA public key.

    SHA-256 over the DER-encoded SubjectPublicKeyInfo, first 16 hex digits
    upper-cased. PEM formatting differences (line endings, whitespace) do not
    change the fingerprint.

    Args:
        public_key: PEM string/bytes or an RSA key object (private keys are
            reduced to their public half)
    """
    if isinstance(public_key, (str, bytes)):
        public_key = RSA.import_key(public_key)
    der = public_key.publickey().export_key(format='DER')
    return hashlib.sha256(der).hexdigest()[:FINGERPRINT_LENGTH].upper()


def canonical_json(data) -> bytes:
    """Deterministic JSON serialization (sorted keys, compact, UTF-8)."""
    return json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def hash_plaintext(plaintext: bytes) -> str:
    """SHA-256 hex digest (64 characters) used as a vote integrity hash."""
    return hashlib.sha256(plaintext).hexdigest()


def derive_receipt_code(integrity_hash: str) -> str:
    """Derive the voter-facing receipt code from an integrity hash.

    Format: RCP-XXXXXXXXXXXX (16 characters, deterministic in the hash)
    """
    return f"{RECEIPT_PREFIX}{integrity_hash[:RECEIPT_HASH_CHARS].upper()}"


def generate_vote_id() -> str:
    """Generate a unique vote ID.

    Format: VOTE-XXXXXXXXXXXXXXXX (16 random hex characters)
    """
    return f"VOTE-{secrets.token_hex(8).upper()}"


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two digests without leaking the mismatch position."""
    if a is None or b is None:
        return False
    return secrets.compare_digest(a.encode('utf-8'), b.encode('utf-8'))
