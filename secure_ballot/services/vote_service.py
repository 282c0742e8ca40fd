import logging
from datetime import datetime

from secure_ballot.models.encrypted_vote import DuplicateVoteError, EncryptedVote
from secure_ballot.utils.errors import InvalidParameters
from secure_ballot.utils.security import RECEIPT_CODE_LENGTH, RECEIPT_PREFIX, derive_receipt_code
from secure_ballot.utils.vote_cipher import HybridVoteCipher

logger = logging.getLogger(__name__)


class VoteService:
    """Service for casting and verifying encrypted votes.

    Votes are encrypted under the election's public key and can only be
    decrypted with a private key reconstructed from custodian shares.
    """

    RECEIPT_ATTEMPTS = 3  # Re-encryptions allowed on a receipt code collision

    def __init__(self, key_service, vote_store, cipher: HybridVoteCipher = None, audit=None):
        self.key_service = key_service
        self.vote_store = vote_store
        self.cipher = cipher or HybridVoteCipher()
        self.audit = audit

    def encrypt_vote(self, vote_data: dict, public_key, channel: str = EncryptedVote.CHANNEL_WEB) -> EncryptedVote:
        """Encrypt vote data without storing it."""
        return self.cipher.encrypt_vote(vote_data, public_key, channel=channel)

    def decrypt_vote(self, encrypted_vote: EncryptedVote, private_key) -> dict:
        return self.cipher.decrypt_vote(encrypted_vote, private_key)

    def batch_decrypt(self, encrypted_votes, private_key, max_workers: int = None):
        return self.cipher.batch_decrypt(encrypted_votes, private_key, max_workers=max_workers)

    def cast_vote(self, election_id: str, vote_data: dict,
                  channel: str = EncryptedVote.CHANNEL_WEB) -> EncryptedVote:
        """Encrypt a vote under the election public key and store it.

        Args:
            election_id: The election being voted in
            vote_data: Vote fields (candidate_id, polling_unit_id, ...)
            channel: 'web', 'mobile' or 'ussd'

        Returns:
            The stored EncryptedVote (its receipt_code goes back to the voter)

        Raises:
            KeyNotFound: the election has no key material
            InvalidParameters: malformed vote data or channel
            DuplicateVoteError: no unique receipt code after RECEIPT_ATTEMPTS tries
        """
        if vote_data.get('election_id', election_id) != election_id:
            raise InvalidParameters("Vote data belongs to a different election")
        if not vote_data.get('candidate_id'):
            raise InvalidParameters("Vote data must include a candidate")

        public_key = self.key_service.get_public_key(election_id)
        for attempt in range(1, self.RECEIPT_ATTEMPTS + 1):
            # A fresh vote id gives a fresh hash and therefore a fresh receipt
            vote = self.cipher.encrypt_vote(dict(vote_data, election_id=election_id),
                                            public_key, channel=channel)
            try:
                self.vote_store.save(vote)
                break
            except DuplicateVoteError:
                logger.warning(f"Receipt collision for {election_id} (attempt {attempt})")
                if attempt == self.RECEIPT_ATTEMPTS:
                    raise

        logger.info(f"Stored encrypted vote {vote.vote_id} for {election_id} via {channel}")
        if self.audit:
            self.audit.log_vote_cast(election_id, vote.vote_id, channel)
        return vote

    def verify_receipt(self, receipt_code: str) -> dict:
        """Verify a vote receipt without revealing the vote's content.

        Args:
            receipt_code: The receipt code (RCP-XXXXXXXXXXXX format)

        Returns:
            dict with verification result
        """
        receipt_code = (receipt_code or '').strip().upper()
        if len(receipt_code) != RECEIPT_CODE_LENGTH or not receipt_code.startswith(RECEIPT_PREFIX):
            return {
                'valid': False,
                'message': 'Invalid receipt format.'
            }

        vote = self.vote_store.find_by_receipt_code(receipt_code)
        if not vote:
            return {
                'valid': False,
                'message': 'Receipt not found. Please check your receipt code.'
            }

        # The receipt must still derive from the stored integrity hash
        if derive_receipt_code(vote.integrity_hash or '') != vote.receipt_code:
            return {
                'valid': False,
                'message': 'Receipt integrity check failed.'
            }

        timestamp = vote.timestamp if isinstance(vote.timestamp, datetime) else None
        return {
            'valid': True,
            'message': 'Your vote was successfully recorded.',
            'receipt_code': vote.receipt_code,
            'election_id': vote.election_id,
            'channel': vote.channel,
            'timestamp': timestamp.strftime('%B %d, %Y at %I:%M %p') if timestamp else vote.timestamp_str
        }
