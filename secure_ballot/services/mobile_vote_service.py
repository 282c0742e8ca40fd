"""Mobile channel intake: signature checks and ECIES decryption."""
import json
import logging

from secure_ballot.models.encrypted_vote import EncryptedVote
from secure_ballot.models.mobile_payload import MobileEciesPackage, MobileSignedPayload
from secure_ballot.utils.errors import (
    BallotCryptoError, IntegrityViolation, InvalidParameters, KeyNotFound, SignatureInvalid
)
from secure_ballot.utils import mobile_crypto

logger = logging.getLogger(__name__)


class MobileVoteService:
    """Authenticates and decrypts votes sent by mobile clients.

    The server holds a static P-256 key pair; clients encrypt to its public
    key with ECIES and sign the result with their registered voter key.
    """

    def __init__(self, server_private_key, voter_keys, vote_service=None, audit=None):
        """
        Args:
            server_private_key: Static EC private key (key object or PEM)
            voter_keys: Voter-identity collaborator; a mapping or callable
                returning a voter's registered public key (PEM) or None
            vote_service: VoteService used to store accepted votes
            audit: Optional AuditService
        """
        if isinstance(server_private_key, (str, bytes)):
            server_private_key = mobile_crypto.load_server_private_key(server_private_key)
        self.server_private_key = server_private_key
        self.voter_keys = voter_keys
        self.vote_service = vote_service
        self.audit = audit

    @classmethod
    def from_key_file(cls, path: str, voter_keys, vote_service=None, audit=None):
        """Load the server key from a PEM file (MOBILE_SERVER_KEY_PATH)."""
        with open(path, 'rb') as f:
            return cls(mobile_crypto.load_server_private_key(f.read()),
                       voter_keys, vote_service=vote_service, audit=audit)

    @property
    def server_public_key_pem(self) -> str:
        """Public key distributed to mobile clients."""
        return mobile_crypto.serialize_public_key(self.server_private_key)

    def _voter_public_key(self, voter_id: str):
        if callable(self.voter_keys):
            public_key = self.voter_keys(voter_id)
        else:
            public_key = self.voter_keys.get(voter_id)
        if not public_key:
            raise KeyNotFound(f"No registered mobile key for voter {voter_id}")
        return public_key

    def verify_signed_payload(self, signed_payload: MobileSignedPayload) -> None:
        """Verify a signed payload against the voter's registered key.

        The canonical bytes are rebuilt server-side from the payload fields.

        Raises:
            KeyNotFound: the voter has no registered key
            SignatureInvalid: the signature does not verify
        """
        public_key = self._voter_public_key(signed_payload.voter_id)
        if not mobile_crypto.verify_signature(signed_payload.canonical_bytes,
                                              signed_payload.signature, public_key):
            error = SignatureInvalid(f"Signature from voter {signed_payload.voter_id} did not verify")
            logger.warning(f"Rejected mobile vote signature for {signed_payload.election_id}")
            if self.audit:
                self.audit.log_signature_rejected(signed_payload.election_id, signed_payload.voter_id, error)
            raise error

    def open_package(self, package: MobileEciesPackage) -> dict:
        """Decrypt an ECIES package and parse its JSON vote payload.

        Raises:
            IntegrityViolation: tag mismatch or unparseable payload
        """
        plaintext = mobile_crypto.decrypt_from_client(package, self.server_private_key)
        try:
            payload = json.loads(plaintext.decode('utf-8'))
        except (ValueError, UnicodeDecodeError):
            raise IntegrityViolation("Mobile vote payload is not valid JSON")
        if not isinstance(payload, dict):
            raise IntegrityViolation("Mobile vote payload must be an object")
        return payload

    def receive_vote(self, signed_payload: MobileSignedPayload,
                     package: MobileEciesPackage) -> EncryptedVote:
        """Accept a mobile vote: verify, decrypt, cross-check and store.

        The decrypted vote is re-encrypted under the election public key so
        that it is tallied alongside web-channel votes.

        Returns:
            The stored EncryptedVote (channel 'mobile')
        """
        if self.vote_service is None:
            raise InvalidParameters("Mobile vote intake requires a vote service")

        if signed_payload.encrypted_vote != package.to_bytes():
            error = SignatureInvalid("Signed payload does not cover the submitted package")
            if self.audit:
                self.audit.log_signature_rejected(signed_payload.election_id, signed_payload.voter_id, error)
            raise error

        self.verify_signed_payload(signed_payload)

        try:
            vote_data = self.open_package(package)
            if vote_data.get('election_id') != signed_payload.election_id or \
                    vote_data.get('candidate_id') != signed_payload.candidate_id:
                raise SignatureInvalid("Decrypted vote does not match the signed fields")
        except BallotCryptoError as e:
            logger.warning(f"Rejected mobile vote package for {signed_payload.election_id}: {e.kind}")
            if self.audit:
                self.audit.log_package_rejected(signed_payload.election_id, signed_payload.voter_id, e)
            raise

        return self.vote_service.cast_vote(signed_payload.election_id, vote_data,
                                           channel=EncryptedVote.CHANNEL_MOBILE)


def build_signed_submission(election_id: str, candidate_id: str, vote_data: dict,
                            server_public_key, voter_private_key, voter_id: str) -> tuple:
    """Client-side helper: encrypt a vote for the server and sign it.

    Returns:
        (MobileSignedPayload, MobileEciesPackage)
    """
    vote_data = dict(vote_data, election_id=election_id, candidate_id=candidate_id)
    package = mobile_crypto.encrypt_for_server(vote_data, server_public_key)
    encrypted_vote = package.to_bytes()
    signature = mobile_crypto.sign_payload(
        mobile_crypto.canonical_payload(election_id, candidate_id, encrypted_vote),
        voter_private_key
    )
    signed = MobileSignedPayload(
        election_id=election_id,
        candidate_id=candidate_id,
        encrypted_vote=encrypted_vote,
        signature=signature,
        voter_id=voter_id
    )
    return signed, package
