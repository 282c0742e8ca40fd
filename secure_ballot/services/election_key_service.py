"""Election key lifecycle: generation, sharing, lookup and reconstruction."""
import base64
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta

from Crypto.Cipher import AES
from Crypto.PublicKey import RSA
from Crypto.Random import get_random_bytes

from secure_ballot.models.election_key import ElectionKeyMaterial
from secure_ballot.models.key_share import KeyShare
from secure_ballot.utils.errors import (
    BallotCryptoError, InvalidParameters, InvalidShare, KeyNotFound
)
from secure_ballot.utils.security import compute_key_fingerprint
from secure_ballot.utils.shamir_crypto import ShamirSecretSharing

logger = logging.getLogger(__name__)


class ElectionKeyService:
    """Owns the creation and destruction of election private key material.

    The RSA private key is sealed with AES-256-GCM under a random wrapping
    key, and only the wrapping key is split into custodian shares. The key
    store receives the public key, its fingerprint and the sealed bundle;
    neither the private key nor the wrapping key is ever stored.
    """

    RSA_KEY_SIZE = 2048  # bits
    WRAPPING_KEY_SIZE = 32  # bytes (256 bits)
    BUNDLE_ALGORITHM = 'rsa2048-pem+aes256-gcm'

    def __init__(self, key_store, threshold: int = 3, total_shares: int = 5,
                 rsa_key_size: int = RSA_KEY_SIZE, session_ttl_seconds: int = 900,
                 audit=None):
        """
        Args:
            key_store: Keyed store mapping election_id to ElectionKeyMaterial
            threshold: Minimum shares needed to reconstruct (default: 3)
            total_shares: Total shares generated per election (default: 5)
            rsa_key_size: RSA modulus size in bits
            session_ttl_seconds: Lifetime of a custodian reconstruction session
            audit: Optional AuditService
        """
        # Validates (T, N) up front
        ShamirSecretSharing(threshold, total_shares)
        self.key_store = key_store
        self.threshold = threshold
        self.total_shares = total_shares
        self.rsa_key_size = rsa_key_size
        self.session_ttl_seconds = session_ttl_seconds
        self.audit = audit

    @classmethod
    def from_config(cls, config, key_store, audit=None):
        """Build the service from a config mapping (e.g. app.config)."""
        return cls(
            key_store,
            threshold=config.get('SHAMIR_THRESHOLD', 3),
            total_shares=config.get('SHAMIR_TOTAL_SHARES', 5),
            rsa_key_size=config.get('RSA_KEY_SIZE', cls.RSA_KEY_SIZE),
            session_ttl_seconds=config.get('RECONSTRUCTION_SESSION_SECONDS', 900),
            audit=audit
        )

    def _sharing_for(self, material: ElectionKeyMaterial) -> ShamirSecretSharing:
        return ShamirSecretSharing(material.threshold, material.total_shares)

    def generate_election_keys(self, election_id: str, custodian_ids: list = None) -> tuple:
        """Generate an election key pair and split its wrapping key into shares.

        Args:
            election_id: The election to generate keys for
            custodian_ids: Optional custodian identifier per share

        Returns:
            Tuple of:
            - material: ElectionKeyMaterial (public key, fingerprint, sealed bundle)
            - shares: List of KeyShare objects to distribute ONCE (not stored)
        """
        if not election_id:
            raise InvalidParameters("Election ID is required")
        if self.key_store.exists(election_id):
            raise InvalidParameters(f"Key material already exists for election {election_id}")

        rsa_key = RSA.generate(self.rsa_key_size)
        public_key_pem = rsa_key.publickey().export_key().decode('utf-8')
        fingerprint = compute_key_fingerprint(rsa_key)

        # Seal the private key under a one-time wrapping key bound to this election
        wrapping_key = get_random_bytes(self.WRAPPING_KEY_SIZE)
        cipher_aes = AES.new(wrapping_key, AES.MODE_GCM)
        cipher_aes.update(election_id.encode('utf-8'))
        sealed_key, tag = cipher_aes.encrypt_and_digest(rsa_key.export_key())

        key_bundle = {
            'nonce': base64.b64encode(cipher_aes.nonce).decode('utf-8'),
            'tag': base64.b64encode(tag).decode('utf-8'),
            'ciphertext': base64.b64encode(sealed_key).decode('utf-8'),
            'algorithm': self.BUNDLE_ALGORITHM
        }

        sharing = ShamirSecretSharing(self.threshold, self.total_shares)
        shares = sharing.split_secret(wrapping_key, election_id=election_id,
                                      custodian_ids=custodian_ids)
        del rsa_key, wrapping_key

        material = ElectionKeyMaterial(
            election_id=election_id,
            public_key=public_key_pem,
            public_key_fingerprint=fingerprint,
            encrypted_key_bundle=json.dumps(key_bundle),
            threshold=self.threshold,
            total_shares=self.total_shares
        )
        self.key_store.save(material)

        logger.info(f"Generated election keys for {election_id} "
                    f"(fingerprint {fingerprint}, {self.threshold}-of-{self.total_shares})")
        if self.audit:
            self.audit.log_keys_generated(election_id, fingerprint, self.threshold, self.total_shares)

        return material, shares

    def get_key_material(self, election_id: str) -> ElectionKeyMaterial:
        """Look up an election's key material.

        Raises:
            KeyNotFound: no key material exists for the election
        """
        material = self.key_store.find_by_election_id(election_id)
        if material is None:
            raise KeyNotFound(f"No key material for election {election_id}")
        return material

    def get_public_key(self, election_id: str) -> str:
        """Return the election's PEM-encoded public key."""
        return self.get_key_material(election_id).public_key

    def _unseal(self, material: ElectionKeyMaterial, wrapping_key: bytes) -> RSA.RsaKey:
        try:
            key_bundle = json.loads(material.encrypted_key_bundle)
            cipher_aes = AES.new(wrapping_key, AES.MODE_GCM,
                                 nonce=base64.b64decode(key_bundle['nonce']))
            cipher_aes.update(material.election_id.encode('utf-8'))
            private_key_pem = cipher_aes.decrypt_and_verify(
                base64.b64decode(key_bundle['ciphertext']),
                base64.b64decode(key_bundle['tag'])
            )
            return RSA.import_key(private_key_pem)
        except (ValueError, KeyError, TypeError):
            raise InvalidShare("Reconstructed key does not open the election key bundle")

    def reconstruct_private_key(self, election_id: str, submitted_shares) -> RSA.RsaKey:
        """Reconstruct the election private key from custodian shares.

        Args:
            election_id: The election whose key is being reconstructed
            submitted_shares: Iterable of KeyShare objects

        Returns:
            RSA private key object

        Raises:
            KeyNotFound: no key material for the election
            InsufficientShares: fewer than threshold distinct shares
            InvalidShare: wrong-election or corrupted shares
        """
        material = self.get_key_material(election_id)
        shares = list(submitted_shares)
        share_indices = sorted({s.share_index for s in shares})

        try:
            for share in shares:
                if share.election_id is not None and share.election_id != election_id:
                    raise InvalidShare(f"Share {share.share_index} belongs to election {share.election_id}")

            sharing = self._sharing_for(material)
            wrapping_key = sharing.reconstruct_secret(shares, self.WRAPPING_KEY_SIZE)
            private_key = self._unseal(material, wrapping_key)
            del wrapping_key

            if compute_key_fingerprint(private_key) != material.public_key_fingerprint:
                raise InvalidShare("Reconstructed key fingerprint does not match the election public key")
        except BallotCryptoError as e:
            logger.warning(f"Key reconstruction failed for {election_id}: {e.kind}")
            if self.audit:
                self.audit.log_reconstruction_failed(election_id, e, share_indices)
            raise

        logger.info(f"Reconstructed private key for {election_id} from shares {share_indices}")
        if self.audit:
            self.audit.log_key_reconstructed(election_id, share_indices)
        return private_key

    @contextmanager
    def reconstructed_key(self, election_id: str, submitted_shares):
        """Yield the reconstructed private key for one operation, then drop it.

        Usage:
            with key_service.reconstructed_key(election_id, shares) as private_key:
                cipher.batch_decrypt(votes, private_key)
        """
        private_key = self.reconstruct_private_key(election_id, submitted_shares)
        try:
            yield private_key
        finally:
            del private_key

    def open_session(self, election_id: str, ttl_seconds: int = None):
        """Open a bounded custodian session for reconstructing an election key."""
        material = self.get_key_material(election_id)
        return ReconstructionSession(
            self, election_id, material.threshold,
            ttl_seconds if ttl_seconds is not None else self.session_ttl_seconds
        )


class ReconstructionSession:
    """Collects custodian shares for one reconstruction within a time window.

    Shares do not accumulate indefinitely: once the session expires or has
    been used to unlock the key, it is closed and its shares are discarded.
    """

    def __init__(self, key_service: ElectionKeyService, election_id: str,
                 threshold: int, ttl_seconds: int, opened_at: datetime = None):
        self.key_service = key_service
        self.election_id = election_id
        self.threshold = threshold
        self.opened_at = opened_at or datetime.utcnow()
        self.expires_at = self.opened_at + timedelta(seconds=ttl_seconds)
        self.closed = False
        self._shares = {}

    @property
    def expired(self) -> bool:
        return datetime.utcnow() >= self.expires_at

    @property
    def submitted_indices(self) -> list:
        return sorted(self._shares)

    @property
    def quorum_met(self) -> bool:
        return len(self._shares) >= self.threshold

    def _check_open(self):
        if self.closed:
            raise InvalidParameters("Reconstruction session is closed")
        if self.expired:
            self.close()
            raise InvalidParameters("Reconstruction session has expired")

    def submit_share(self, share: KeyShare) -> int:
        """Add a custodian share; resubmitting an index replaces it.

        Returns:
            Number of distinct shares collected so far
        """
        self._check_open()
        if share.election_id is not None and share.election_id != self.election_id:
            raise InvalidShare(f"Share {share.share_index} belongs to election {share.election_id}")
        if share.election_id is None:
            share = KeyShare(share.share_index, share.share_value,
                             election_id=self.election_id, custodian_id=share.custodian_id)
        self._shares[share.share_index] = share
        return len(self._shares)

    def close(self):
        self._shares.clear()
        self.closed = True

    @contextmanager
    def unlock(self):
        """Reconstruct the key from the collected shares for a single operation.

        The session is closed on exit whether or not the block succeeded.
        """
        self._check_open()
        try:
            with self.key_service.reconstructed_key(self.election_id, list(self._shares.values())) as key:
                yield key
        finally:
            self.close()
