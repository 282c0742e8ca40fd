from datetime import datetime


class ElectionKeyMaterial:
    """Public key material for one election.

    The private key never appears here in complete form: it is sealed in
    encrypted_key_bundle under a wrapping key that exists only as custodian
    shares.
    """

    def __init__(self, election_id: str, public_key: str,
                 public_key_fingerprint: str, encrypted_key_bundle: str,
                 threshold: int, total_shares: int,
                 created_at: datetime = None, _id=None):
        self._id = _id
        self.election_id = election_id
        self.public_key = public_key  # PEM-encoded RSA-2048 public key
        self.public_key_fingerprint = public_key_fingerprint  # 16-character key identifier
        self.encrypted_key_bundle = encrypted_key_bundle  # Sealed private key (open with shares)
        self.threshold = threshold
        self.total_shares = total_shares
        self.created_at = created_at or datetime.utcnow()

    def to_dict(self) -> dict:
        """Convert key material to dictionary."""
        data = {
            'election_id': self.election_id,
            'public_key': self.public_key,
            'public_key_fingerprint': self.public_key_fingerprint,
            'encrypted_key_bundle': self.encrypted_key_bundle,
            'threshold': self.threshold,
            'total_shares': self.total_shares,
            'created_at': self.created_at
        }
        if self._id:
            data['_id'] = self._id
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Create ElectionKeyMaterial from dictionary."""
        if not data:
            return None
        return cls(
            election_id=data.get('election_id'),
            public_key=data.get('public_key'),
            public_key_fingerprint=data.get('public_key_fingerprint'),
            encrypted_key_bundle=data.get('encrypted_key_bundle'),
            threshold=data.get('threshold'),
            total_shares=data.get('total_shares'),
            created_at=data.get('created_at'),
            _id=data.get('_id')
        )


class ElectionKeyStore:
    """In-memory keyed store mapping election_id to ElectionKeyMaterial."""

    def __init__(self):
        self._materials = {}

    def save(self, material: ElectionKeyMaterial) -> ElectionKeyMaterial:
        self._materials[material.election_id] = material.to_dict()
        return material

    def find_by_election_id(self, election_id: str):
        return ElectionKeyMaterial.from_dict(self._materials.get(election_id))

    def exists(self, election_id: str) -> bool:
        return election_id in self._materials

    def list_election_ids(self) -> list:
        return sorted(self._materials)


class MongoElectionKeyStore(ElectionKeyStore):
    """MongoDB-backed key store. The database handle is passed in explicitly."""

    collection_name = 'election_keys'

    def __init__(self, db):
        self.collection = db[self.collection_name]
        self.collection.create_index('election_id', unique=True)

    def save(self, material: ElectionKeyMaterial) -> ElectionKeyMaterial:
        if material._id:
            self.collection.update_one(
                {'_id': material._id},
                {'$set': material.to_dict()}
            )
        else:
            result = self.collection.insert_one(material.to_dict())
            material._id = result.inserted_id
        return material

    def find_by_election_id(self, election_id: str):
        return ElectionKeyMaterial.from_dict(
            self.collection.find_one({'election_id': election_id})
        )

    def exists(self, election_id: str) -> bool:
        return self.collection.find_one({'election_id': election_id}) is not None

    def list_election_ids(self) -> list:
        return sorted(self.collection.distinct('election_id'))
