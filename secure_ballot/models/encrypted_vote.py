from datetime import datetime

from pymongo.errors import DuplicateKeyError


class DuplicateVoteError(Exception):
    """Raised when a vote id or receipt code is already stored."""


class EncryptedVote:
    """Encrypted vote record (immutable once created).

    The vote choice lives only inside encrypted_vote_data. The record carries
    enough plaintext metadata (election, polling unit, channel) for routing and
    storage queries, plus the integrity hash and receipt code for verification.
    """

    CHANNEL_WEB = 'web'
    CHANNEL_MOBILE = 'mobile'
    CHANNEL_USSD = 'ussd'
    CHANNELS = [CHANNEL_WEB, CHANNEL_MOBILE, CHANNEL_USSD]

    def __init__(self, vote_id: str, election_id: str,
                 encrypted_vote_data: str, encrypted_symmetric_key: str,
                 initialization_vector: str, integrity_hash: str,
                 public_key_fingerprint: str, receipt_code: str,
                 timestamp: datetime = None, channel: str = CHANNEL_WEB,
                 candidate_id: str = None, polling_unit_id: str = None,
                 timestamp_str: str = None, _id=None):
        self._id = _id
        self.vote_id = vote_id
        self.election_id = election_id
        self.candidate_id = candidate_id  # Always None on stored records; the choice is only inside the ciphertext
        self.polling_unit_id = polling_unit_id
        self.encrypted_vote_data = encrypted_vote_data  # AES-256-CBC ciphertext (base64)
        self.encrypted_symmetric_key = encrypted_symmetric_key  # RSA-OAEP wrapped AES key (base64)
        self.initialization_vector = initialization_vector  # 16-byte IV (base64, 24 chars)
        self.integrity_hash = integrity_hash  # SHA-256 of canonical plaintext (64 hex chars)
        self.public_key_fingerprint = public_key_fingerprint
        self.receipt_code = receipt_code  # RCP-XXXXXXXXXXXX
        self.timestamp = timestamp or datetime.utcnow()
        self.timestamp_str = timestamp_str or self.timestamp.strftime('%Y-%m-%dT%H:%M:%S')
        self.channel = channel

    def to_dict(self) -> dict:
        """Convert vote to dictionary."""
        data = {
            'vote_id': self.vote_id,
            'election_id': self.election_id,
            'candidate_id': self.candidate_id,
            'polling_unit_id': self.polling_unit_id,
            'encrypted_vote_data': self.encrypted_vote_data,
            'encrypted_symmetric_key': self.encrypted_symmetric_key,
            'initialization_vector': self.initialization_vector,
            'integrity_hash': self.integrity_hash,
            'public_key_fingerprint': self.public_key_fingerprint,
            'receipt_code': self.receipt_code,
            'timestamp': self.timestamp,
            'timestamp_str': self.timestamp_str,
            'channel': self.channel
        }
        if self._id:
            data['_id'] = self._id
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Create EncryptedVote from dictionary."""
        if not data:
            return None
        return cls(
            vote_id=data.get('vote_id'),
            election_id=data.get('election_id'),
            candidate_id=data.get('candidate_id'),
            polling_unit_id=data.get('polling_unit_id'),
            encrypted_vote_data=data.get('encrypted_vote_data'),
            encrypted_symmetric_key=data.get('encrypted_symmetric_key'),
            initialization_vector=data.get('initialization_vector'),
            integrity_hash=data.get('integrity_hash'),
            public_key_fingerprint=data.get('public_key_fingerprint'),
            receipt_code=data.get('receipt_code'),
            timestamp=data.get('timestamp'),
            timestamp_str=data.get('timestamp_str'),
            channel=data.get('channel', cls.CHANNEL_WEB),
            _id=data.get('_id')
        )


class VoteStore:
    """In-memory vote storage collaborator. Records are stored verbatim."""

    def __init__(self):
        self._votes = {}

    def save(self, vote: EncryptedVote) -> EncryptedVote:
        if vote.vote_id in self._votes:
            raise DuplicateVoteError(f"Vote {vote.vote_id} already stored")
        if self.find_by_receipt_code(vote.receipt_code):
            raise DuplicateVoteError(f"Receipt code {vote.receipt_code} already issued")
        self._votes[vote.vote_id] = vote.to_dict()
        return vote

    def find_by_vote_id(self, vote_id: str):
        return EncryptedVote.from_dict(self._votes.get(vote_id))

    def find_by_receipt_code(self, receipt_code: str):
        for data in self._votes.values():
            if data['receipt_code'] == receipt_code:
                return EncryptedVote.from_dict(data)
        return None

    def get_all_by_election(self, election_id: str) -> list:
        return [EncryptedVote.from_dict(v) for v in self._votes.values()
                if v['election_id'] == election_id]

    def count_by_election(self, election_id: str) -> int:
        return sum(1 for v in self._votes.values() if v['election_id'] == election_id)


class MongoVoteStore(VoteStore):
    """MongoDB-backed vote store. The database handle is passed in explicitly."""

    collection_name = 'encrypted_votes'

    def __init__(self, db):
        self.collection = db[self.collection_name]
        self.collection.create_index('vote_id', unique=True)
        self.collection.create_index('receipt_code', unique=True)
        self.collection.create_index([('election_id', 1), ('timestamp', -1)])

    def save(self, vote: EncryptedVote) -> EncryptedVote:
        if vote._id or self.find_by_vote_id(vote.vote_id):
            raise DuplicateVoteError(f"Vote {vote.vote_id} already stored")
        if self.find_by_receipt_code(vote.receipt_code):
            raise DuplicateVoteError(f"Receipt code {vote.receipt_code} already issued")
        try:
            result = self.collection.insert_one(vote.to_dict())
        except DuplicateKeyError:
            raise DuplicateVoteError(f"Vote {vote.vote_id} or its receipt code is already stored")
        vote._id = result.inserted_id
        return vote

    def find_by_vote_id(self, vote_id: str):
        return EncryptedVote.from_dict(self.collection.find_one({'vote_id': vote_id}))

    def find_by_receipt_code(self, receipt_code: str):
        return EncryptedVote.from_dict(self.collection.find_one({'receipt_code': receipt_code}))

    def get_all_by_election(self, election_id: str) -> list:
        votes = self.collection.find({'election_id': election_id}).sort('timestamp', 1)
        return [EncryptedVote.from_dict(v) for v in votes]

    def count_by_election(self, election_id: str) -> int:
        return self.collection.count_documents({'election_id': election_id})
