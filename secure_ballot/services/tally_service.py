import logging
from collections import Counter

from secure_ballot.utils.vote_cipher import HybridVoteCipher

logger = logging.getLogger(__name__)


def count_by_candidate(records) -> dict:
    """Default counting collaborator: number of decrypted votes per candidate."""
    return dict(Counter(r.vote_data.get('candidate_id') for r in records))


class TallyReport:
    """Result of decrypting an election's stored votes."""

    def __init__(self, election_id: str, decrypted: list, failures: list, counts=None):
        self.election_id = election_id
        self.decrypted = decrypted
        self.failures = failures
        self.counts = counts

    @property
    def total_votes(self) -> int:
        return len(self.decrypted) + len(self.failures)

    def to_dict(self) -> dict:
        return {
            'election_id': self.election_id,
            'total_votes': self.total_votes,
            'decrypted': len(self.decrypted),
            'rejected': [f.to_dict() for f in self.failures],
            'counts': self.counts
        }


class TallyService:
    """Drives end-of-election decryption.

    The private key is reconstructed for a single call and never kept on the
    service.
    """

    def __init__(self, key_service, vote_store, cipher: HybridVoteCipher = None,
                 audit=None, max_workers: int = None):
        self.key_service = key_service
        self.vote_store = vote_store
        self.cipher = cipher or HybridVoteCipher()
        self.audit = audit
        self.max_workers = max_workers

    def decrypt_election(self, election_id: str, shares, counter=count_by_candidate) -> TallyReport:
        """Decrypt all stored votes for an election and hand them to a counter.

        Args:
            election_id: The election ID
            shares: KeyShare objects submitted by custodians
            counter: Counting collaborator taking the list of DecryptedVote
                records (None skips counting)

        Returns:
            TallyReport with decrypted records, isolated failures and counts

        Raises:
            KeyNotFound, InsufficientShares, InvalidShare: key reconstruction failed
        """
        encrypted_votes = self.vote_store.get_all_by_election(election_id)

        with self.key_service.reconstructed_key(election_id, shares) as private_key:
            result = self.cipher.batch_decrypt(encrypted_votes, private_key,
                                               max_workers=self.max_workers)

        if self.audit:
            for failure in result.failures:
                self.audit.log_decryption_failed(election_id, failure.vote_id,
                                                 failure.kind, failure.reason)
            self.audit.log_batch_decrypted(election_id, len(result.successes), len(result.failures))

        logger.info(f"Decrypted {len(result.successes)} of {result.total} votes for {election_id}")

        counts = counter(result.successes) if counter else None
        return TallyReport(election_id, result.successes, result.failures, counts)
