"""Wire-level records for the mobile voting channel."""
import base64


class MobileSignedPayload:
    """A vote payload signed by the voter's registered mobile key.

    The signature covers the canonical bytes of (election_id, candidate_id,
    encrypted_vote) in that exact field order.
    """

    def __init__(self, election_id: str, candidate_id: str,
                 encrypted_vote: bytes, signature: bytes, voter_id: str):
        self.election_id = election_id
        self.candidate_id = candidate_id
        self.encrypted_vote = encrypted_vote
        self.signature = signature
        self.voter_id = voter_id  # Reference to the voter's registered public key

    @property
    def canonical_bytes(self) -> bytes:
        from secure_ballot.utils.mobile_crypto import canonical_payload
        return canonical_payload(self.election_id, self.candidate_id, self.encrypted_vote)

    def to_dict(self) -> dict:
        return {
            'election_id': self.election_id,
            'candidate_id': self.candidate_id,
            'encrypted_vote': base64.b64encode(self.encrypted_vote).decode('utf-8'),
            'signature': base64.b64encode(self.signature).decode('utf-8'),
            'voter_id': self.voter_id
        }

    @classmethod
    def from_dict(cls, data: dict):
        if not data:
            return None
        return cls(
            election_id=data.get('election_id'),
            candidate_id=data.get('candidate_id'),
            encrypted_vote=base64.b64decode(data.get('encrypted_vote', '')),
            signature=base64.b64decode(data.get('signature', '')),
            voter_id=data.get('voter_id')
        )


class MobileEciesPackage:
    """ECIES ciphertext package sent by a mobile client to the server."""

    def __init__(self, ephemeral_public_key: bytes, iv: bytes,
                 ciphertext: bytes, tag: bytes):
        self.ephemeral_public_key = ephemeral_public_key  # Uncompressed SEC1 point
        self.iv = iv  # 12-byte GCM nonce
        self.ciphertext = ciphertext
        self.tag = tag  # 16-byte GCM authentication tag

    def to_bytes(self) -> bytes:
        """Concatenated form (point || iv || tag || ciphertext) for signing."""
        return self.ephemeral_public_key + self.iv + self.tag + self.ciphertext

    def to_dict(self) -> dict:
        return {
            'ephemeral_public_key': base64.b64encode(self.ephemeral_public_key).decode('utf-8'),
            'iv': base64.b64encode(self.iv).decode('utf-8'),
            'ciphertext': base64.b64encode(self.ciphertext).decode('utf-8'),
            'tag': base64.b64encode(self.tag).decode('utf-8')
        }

    @classmethod
    def from_dict(cls, data: dict):
        if not data:
            return None
        return cls(
            ephemeral_public_key=base64.b64decode(data.get('ephemeral_public_key', '')),
            iv=base64.b64decode(data.get('iv', '')),
            ciphertext=base64.b64decode(data.get('ciphertext', '')),
            tag=base64.b64decode(data.get('tag', ''))
        )
