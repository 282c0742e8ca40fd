"""Audit logging service for key-management and decryption events.

Entries keep the exact internal error kind and detail. They never contain
key material, share values or vote plaintext.
"""
import threading

from secure_ballot.models.audit_log import AuditLog
from secure_ballot.utils.errors import BallotCryptoError


class AuditService:
    """Writes hash-chained audit entries to MongoDB or to an in-memory list."""

    def __init__(self, db=None, enabled: bool = True):
        """
        Args:
            db: Database handle; entries are kept in memory when None
            enabled: Audit logging switch (see AUDIT_LOG_ENABLED)
        """
        self.enabled = enabled
        self.collection = db[AuditLog.collection_name] if db is not None else None
        self._entries = []
        self._lock = threading.Lock()
        if self.collection is not None:
            self.collection.create_index('sequence', unique=True)
            self.collection.create_index('event_type')
            self.collection.create_index('election_id')

    def _latest(self):
        if self.collection is not None:
            return self.collection.find_one(sort=[('sequence', -1)])
        return self._entries[-1] if self._entries else None

    def _log(self, category: str, event_type: str, message: str,
             election_id: str = None, details: dict = None):
        if not self.enabled:
            return None

        with self._lock:
            latest = self._latest()
            entry = AuditLog(
                category=category,
                event_type=event_type,
                message=message,
                election_id=election_id,
                details=details,
                sequence=(latest['sequence'] + 1) if latest else 1,
                previous_hash=latest['entry_hash'] if latest else AuditLog.GENESIS_HASH
            )
            entry.entry_hash = entry.compute_hash()

            if self.collection is not None:
                result = self.collection.insert_one(entry.to_dict())
                entry._id = result.inserted_id
            else:
                self._entries.append(entry.to_dict())
        return entry

    def entries(self, event_type: str = None, election_id: str = None) -> list:
        """Return entries in chain order, optionally filtered."""
        query = {}
        if event_type:
            query['event_type'] = event_type
        if election_id:
            query['election_id'] = election_id

        if self.collection is not None:
            return list(self.collection.find(query).sort('sequence', 1))
        return [e for e in self._entries
                if all(e.get(k) == v for k, v in query.items())]

    def verify_chain(self) -> dict:
        """Verify the integrity of the whole audit chain."""
        return AuditLog.verify_chain(self.entries())

    # Key management events

    def log_keys_generated(self, election_id: str, fingerprint: str,
                           threshold: int, total_shares: int):
        return self._log(
            category=AuditLog.CATEGORY_KEYS,
            event_type=AuditLog.EVENT_KEYS_GENERATED,
            message='Election key pair generated and split into shares',
            election_id=election_id,
            details={
                'fingerprint': fingerprint,
                'threshold': threshold,
                'total_shares': total_shares
            }
        )

    def log_key_reconstructed(self, election_id: str, share_indices: list):
        return self._log(
            category=AuditLog.CATEGORY_KEYS,
            event_type=AuditLog.EVENT_KEY_RECONSTRUCTED,
            message='Election private key reconstructed from shares',
            election_id=election_id,
            details={'share_indices': share_indices}
        )

    def log_reconstruction_failed(self, election_id: str, error: BallotCryptoError,
                                  share_indices: list = None):
        return self._log(
            category=AuditLog.CATEGORY_KEYS,
            event_type=AuditLog.EVENT_RECONSTRUCTION_FAILED,
            message='Election private key reconstruction failed',
            election_id=election_id,
            details={
                'error': error.kind,
                'detail': error.detail,
                'share_indices': share_indices or []
            }
        )

    # Voting and decryption events

    def log_vote_cast(self, election_id: str, vote_id: str, channel: str):
        return self._log(
            category=AuditLog.CATEGORY_VOTE,
            event_type=AuditLog.EVENT_VOTE_CAST,
            message=f'Encrypted vote stored ({channel})',
            election_id=election_id,
            details={'vote_id': vote_id, 'channel': channel}
        )

    def log_decryption_failed(self, election_id: str, vote_id: str, kind: str, reason: str):
        return self._log(
            category=AuditLog.CATEGORY_DECRYPTION,
            event_type=AuditLog.EVENT_DECRYPTION_FAILED,
            message='Vote rejected during decryption',
            election_id=election_id,
            details={'vote_id': vote_id, 'error': kind, 'detail': reason}
        )

    def log_batch_decrypted(self, election_id: str, succeeded: int, failed: int):
        return self._log(
            category=AuditLog.CATEGORY_DECRYPTION,
            event_type=AuditLog.EVENT_BATCH_DECRYPTED,
            message='Batch decryption completed',
            election_id=election_id,
            details={'succeeded': succeeded, 'failed': failed}
        )

    # Mobile channel events

    def log_signature_rejected(self, election_id: str, voter_id: str, error: BallotCryptoError):
        return self._log(
            category=AuditLog.CATEGORY_MOBILE,
            event_type=AuditLog.EVENT_SIGNATURE_REJECTED,
            message='Mobile vote signature rejected',
            election_id=election_id,
            details={'voter_id': voter_id, 'error': error.kind, 'detail': error.detail}
        )

    def log_package_rejected(self, election_id: str, voter_id: str, error: BallotCryptoError):
        return self._log(
            category=AuditLog.CATEGORY_MOBILE,
            event_type=AuditLog.EVENT_PACKAGE_REJECTED,
            message='Mobile vote package rejected',
            election_id=election_id,
            details={'voter_id': voter_id, 'error': error.kind, 'detail': error.detail}
        )
