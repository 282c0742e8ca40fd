"""Hybrid RSA + AES encryption for votes cast through the web channel.

Each vote gets its own random AES-256 key and IV. The vote body is encrypted
with AES-256-CBC; only the 32-byte AES key goes through RSA-OAEP, so the vote
size is not bounded by the RSA block size. Integrity is checked with a
standalone SHA-256 hash of the canonical plaintext, recomputed on decryption.
"""
import base64
import binascii
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Iterable, List, Optional

from Crypto.Cipher import PKCS1_OAEP, AES
from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA
from Crypto.Random import get_random_bytes
from Crypto.Util.Padding import pad, unpad

from secure_ballot.models.encrypted_vote import EncryptedVote
from secure_ballot.utils.errors import (
    BallotCryptoError, IntegrityViolation, InvalidParameters, KeyMismatch
)
from secure_ballot.utils.security import (
    canonical_json, compute_key_fingerprint, constant_time_equals,
    derive_receipt_code, generate_vote_id, hash_plaintext
)

logger = logging.getLogger(__name__)


class DecryptedVote:
    """A successfully decrypted and verified vote."""

    def __init__(self, vote_id: str, election_id: str, vote_data: dict,
                 receipt_code: str = None, channel: str = None):
        self.vote_id = vote_id
        self.election_id = election_id
        self.vote_data = vote_data
        self.receipt_code = receipt_code
        self.channel = channel

    @property
    def candidate_id(self):
        return self.vote_data.get('candidate_id')

    def to_dict(self) -> dict:
        return {
            'vote_id': self.vote_id,
            'election_id': self.election_id,
            'vote_data': self.vote_data,
            'receipt_code': self.receipt_code,
            'channel': self.channel
        }


class DecryptionFailure:
    """An isolated per-vote failure from a batch decryption."""

    def __init__(self, vote_id: str, kind: str, reason: str):
        self.vote_id = vote_id
        self.kind = kind  # Exact error kind, e.g. 'integrity_violation'
        self.reason = reason  # Internal detail for audit logging

    def to_dict(self) -> dict:
        return {'vote_id': self.vote_id, 'kind': self.kind, 'reason': self.reason}


class BatchDecryptionResult:
    """Outcome of a batch decryption: every input vote lands in exactly one list."""

    def __init__(self, successes: List[DecryptedVote] = None,
                 failures: List[DecryptionFailure] = None):
        self.successes = successes or []
        self.failures = failures or []

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    def __iter__(self):
        # Allows `successes, failures = cipher.batch_decrypt(...)`
        return iter((self.successes, self.failures))


class HybridVoteCipher:
    """Hybrid RSA-OAEP + AES-256-CBC vote cipher.

    Holds no key material between calls, so one instance can be shared by any
    number of concurrent encryptions.
    """

    AES_KEY_SIZE = 32  # bytes (256 bits)
    IV_SIZE = AES.block_size  # 16 bytes

    @staticmethod
    def _load_public_key(public_key):
        if isinstance(public_key, (str, bytes)):
            return RSA.import_key(public_key)
        return public_key.publickey()

    @staticmethod
    def _is_json_native(vote_data: dict) -> bool:
        try:
            return json.loads(canonical_json(vote_data)) == vote_data
        except (TypeError, ValueError):
            return False

    @staticmethod
    def _b64encode(data: bytes) -> str:
        return base64.b64encode(data).decode('utf-8')

    def encrypt_vote(self, vote_data: dict, public_key, channel: str = EncryptedVote.CHANNEL_WEB,
                     vote_id: str = None, timestamp: datetime = None) -> EncryptedVote:
        """Encrypt vote data with a fresh AES key wrapped under the election public key.

        Args:
            vote_data: Vote fields (election_id, candidate_id, polling_unit_id, ...).
                Must be plain JSON: string keys and str, int, float, bool, None,
                list or dict values, so that decryption returns it unchanged
            public_key: PEM-encoded RSA public key (or RSA key object)
            channel: 'web', 'mobile' or 'ussd'
            vote_id: Optional vote identifier (generated if omitted)
            timestamp: Optional cast time (defaults to now, UTC)

        Returns:
            EncryptedVote record ready for storage
        """
        if channel not in EncryptedVote.CHANNELS:
            raise InvalidParameters(f"Unknown vote channel '{channel}'")
        if not isinstance(vote_data, dict) or not vote_data:
            raise InvalidParameters("Vote data must be a non-empty dictionary")
        if not self._is_json_native(vote_data):
            raise InvalidParameters("Vote data must contain only JSON values with string keys")

        rsa_public_key = self._load_public_key(public_key)
        vote_id = vote_id or generate_vote_id()
        timestamp = timestamp or datetime.utcnow()

        # Envelope makes the hash (and therefore the receipt) unique per vote
        plaintext = canonical_json({
            'vote': vote_data,
            'vote_id': vote_id,
            'cast_at': timestamp.strftime('%Y-%m-%dT%H:%M:%S.%f')
        })

        # Fresh key and IV on every call
        aes_key = get_random_bytes(self.AES_KEY_SIZE)
        iv = get_random_bytes(self.IV_SIZE)

        cipher_aes = AES.new(aes_key, AES.MODE_CBC, iv=iv)
        ciphertext = cipher_aes.encrypt(pad(plaintext, AES.block_size))

        cipher_rsa = PKCS1_OAEP.new(rsa_public_key, hashAlgo=SHA256)
        encrypted_key = cipher_rsa.encrypt(aes_key)

        integrity_hash = hash_plaintext(plaintext)

        return EncryptedVote(
            vote_id=vote_id,
            election_id=vote_data.get('election_id'),
            polling_unit_id=vote_data.get('polling_unit_id'),
            encrypted_vote_data=self._b64encode(ciphertext),
            encrypted_symmetric_key=self._b64encode(encrypted_key),
            initialization_vector=self._b64encode(iv),
            integrity_hash=integrity_hash,
            public_key_fingerprint=compute_key_fingerprint(rsa_public_key),
            receipt_code=derive_receipt_code(integrity_hash),
            timestamp=timestamp,
            channel=channel
        )

    def decrypt_vote(self, encrypted_vote: EncryptedVote, private_key: RSA.RsaKey) -> dict:
        """Decrypt a vote and verify its integrity hash.

        Args:
            encrypted_vote: The stored EncryptedVote record
            private_key: Reconstructed RSA private key

        Returns:
            The original vote data dictionary

        Raises:
            KeyMismatch: the vote was encrypted under a different key pair
            IntegrityViolation: any ciphertext, padding or hash check failed
        """
        vote_id = encrypted_vote.vote_id
        expected_fingerprint = compute_key_fingerprint(private_key)
        if encrypted_vote.public_key_fingerprint != expected_fingerprint:
            raise KeyMismatch(
                f"Vote fingerprint {encrypted_vote.public_key_fingerprint} does not match "
                f"key {expected_fingerprint}",
                vote_id=vote_id
            )

        try:
            encrypted_key = base64.b64decode(encrypted_vote.encrypted_symmetric_key, validate=True)
            iv = base64.b64decode(encrypted_vote.initialization_vector, validate=True)
            ciphertext = base64.b64decode(encrypted_vote.encrypted_vote_data, validate=True)
        except (binascii.Error, TypeError, ValueError):
            raise IntegrityViolation("Vote record fields are not valid base64", vote_id=vote_id)

        if len(iv) != self.IV_SIZE:
            raise IntegrityViolation("Initialization vector has the wrong length", vote_id=vote_id)

        try:
            cipher_rsa = PKCS1_OAEP.new(private_key, hashAlgo=SHA256)
            aes_key = cipher_rsa.decrypt(encrypted_key)
        except (ValueError, TypeError):
            raise IntegrityViolation("Symmetric key could not be unwrapped", vote_id=vote_id)

        try:
            cipher_aes = AES.new(aes_key, AES.MODE_CBC, iv=iv)
            plaintext = unpad(cipher_aes.decrypt(ciphertext), AES.block_size)
        except (ValueError, TypeError):
            raise IntegrityViolation("Vote ciphertext could not be decrypted", vote_id=vote_id)

        # Hash check comes before parsing; nothing leaves this method unverified
        if not constant_time_equals(hash_plaintext(plaintext), encrypted_vote.integrity_hash):
            raise IntegrityViolation("Integrity hash mismatch", vote_id=vote_id)

        try:
            envelope = json.loads(plaintext.decode('utf-8'))
            vote_data = envelope['vote']
        except (ValueError, KeyError, TypeError):
            raise IntegrityViolation("Vote plaintext is malformed", vote_id=vote_id)

        if envelope.get('vote_id') != vote_id:
            raise IntegrityViolation("Vote ciphertext belongs to a different record", vote_id=vote_id)

        return vote_data

    def _decrypt_one(self, encrypted_vote: EncryptedVote, private_key: RSA.RsaKey):
        try:
            vote_data = self.decrypt_vote(encrypted_vote, private_key)
        except BallotCryptoError as e:
            return DecryptionFailure(encrypted_vote.vote_id, e.kind, e.detail)
        return DecryptedVote(
            vote_id=encrypted_vote.vote_id,
            election_id=encrypted_vote.election_id,
            vote_data=vote_data,
            receipt_code=encrypted_vote.receipt_code,
            channel=encrypted_vote.channel
        )

    def batch_decrypt(self, encrypted_votes: Iterable[EncryptedVote], private_key: RSA.RsaKey,
                      max_workers: Optional[int] = None) -> BatchDecryptionResult:
        """Decrypt many votes independently.

        A failure on one vote never aborts the batch; it is reported with the
        vote's identifier and reason. Result order is not guaranteed.

        Args:
            encrypted_votes: Stored vote records
            private_key: Reconstructed RSA private key
            max_workers: Thread pool size (None lets the executor decide)
        """
        encrypted_votes = list(encrypted_votes)
        result = BatchDecryptionResult()
        if not encrypted_votes:
            return result

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = executor.map(lambda v: self._decrypt_one(v, private_key), encrypted_votes)
            for outcome in outcomes:
                if isinstance(outcome, DecryptionFailure):
                    result.failures.append(outcome)
                else:
                    result.successes.append(outcome)

        if result.failures:
            logger.warning(f"Batch decryption: {len(result.failures)} of {result.total} votes rejected")
        return result
