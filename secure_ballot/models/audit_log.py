"""Audit log model for tracking key-management and decryption events."""
import hashlib
import json
from datetime import datetime


class AuditLog:
    """Hash-chained audit trail entry.

    Each entry stores the hash of the previous entry, so deleting or editing
    an entry breaks the chain and is detected by verify_chain.
    """

    collection_name = 'audit_logs'

    # Event categories
    CATEGORY_KEYS = 'key_management'
    CATEGORY_VOTE = 'voting'
    CATEGORY_DECRYPTION = 'decryption'
    CATEGORY_MOBILE = 'mobile'

    # Event types
    EVENT_KEYS_GENERATED = 'keys_generated'
    EVENT_KEY_RECONSTRUCTED = 'key_reconstructed'
    EVENT_RECONSTRUCTION_FAILED = 'reconstruction_failed'
    EVENT_VOTE_CAST = 'vote_cast'
    EVENT_DECRYPTION_FAILED = 'decryption_failed'
    EVENT_BATCH_DECRYPTED = 'batch_decrypted'
    EVENT_SIGNATURE_REJECTED = 'signature_rejected'
    EVENT_PACKAGE_REJECTED = 'package_rejected'

    # Genesis hash for the first entry in the chain
    GENESIS_HASH = "GENESIS"

    def __init__(self, category: str, event_type: str, message: str,
                 election_id: str = None, details: dict = None,
                 timestamp: datetime = None, entry_hash: str = None,
                 previous_hash: str = None, sequence: int = None, _id=None):
        self._id = _id
        self.category = category
        self.event_type = event_type
        self.message = message
        self.election_id = election_id
        self.details = details or {}  # Event-specific data, including exact error kinds
        self.timestamp = timestamp or datetime.utcnow()
        self.sequence = sequence  # Position in the chain
        self.entry_hash = entry_hash  # SHA-256 hash of this entry
        self.previous_hash = previous_hash  # Hash of the previous entry (chain link)

    def to_dict(self) -> dict:
        """Convert audit log entry to dictionary."""
        data = {
            'category': self.category,
            'event_type': self.event_type,
            'message': self.message,
            'election_id': self.election_id,
            'details': self.details,
            'timestamp': self.timestamp,
            'sequence': self.sequence,
            'entry_hash': self.entry_hash,
            'previous_hash': self.previous_hash
        }
        if self._id:
            data['_id'] = self._id
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Create AuditLog from dictionary."""
        if not data:
            return None
        return cls(
            category=data.get('category'),
            event_type=data.get('event_type'),
            message=data.get('message'),
            election_id=data.get('election_id'),
            details=data.get('details'),
            timestamp=data.get('timestamp'),
            sequence=data.get('sequence'),
            entry_hash=data.get('entry_hash'),
            previous_hash=data.get('previous_hash'),
            _id=data.get('_id')
        )

    def compute_hash(self) -> str:
        """Compute SHA-256 hash of this entry's data including previous hash."""
        # Normalize timestamp to milliseconds (Mongo keeps millisecond precision)
        if self.timestamp:
            normalized_ts = self.timestamp.strftime('%Y-%m-%dT%H:%M:%S.') + \
                f"{self.timestamp.microsecond // 1000:03d}"
        else:
            normalized_ts = None

        data = {
            'category': self.category,
            'event_type': self.event_type,
            'message': self.message,
            'election_id': self.election_id,
            'details': self.details,
            'timestamp': normalized_ts,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash
        }
        data_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(data_str.encode()).hexdigest()

    @classmethod
    def verify_chain(cls, entries: list) -> dict:
        """Verify the integrity of a hash chain.

        Args:
            entries: Entry dictionaries in chain order (oldest first)

        Returns:
            dict with:
                - valid: bool - whether the chain is intact
                - entries_checked: int - number of entries verified
                - first_invalid_sequence: int or None - first tampered entry
                - error: str or None - error message if invalid
        """
        entries_checked = 0
        expected_previous_hash = cls.GENESIS_HASH

        for entry in entries:
            entries_checked += 1

            # Check if previous_hash matches expected
            if entry.get('previous_hash') != expected_previous_hash:
                return {
                    'valid': False,
                    'entries_checked': entries_checked,
                    'first_invalid_sequence': entry.get('sequence'),
                    'error': f"Chain break: previous_hash mismatch at entry {entry.get('sequence')}"
                }

            # Recompute hash and verify
            computed_hash = cls.from_dict(entry).compute_hash()
            if computed_hash != entry.get('entry_hash'):
                return {
                    'valid': False,
                    'entries_checked': entries_checked,
                    'first_invalid_sequence': entry.get('sequence'),
                    'error': f"Hash mismatch: entry {entry.get('sequence')} was tampered with"
                }

            expected_previous_hash = entry.get('entry_hash')

        return {
            'valid': True,
            'entries_checked': entries_checked,
            'first_invalid_sequence': None,
            'error': None
        }
