# Data models and storage collaborators
from secure_ballot.models.election_key import ElectionKeyMaterial, ElectionKeyStore, MongoElectionKeyStore
from secure_ballot.models.key_share import KeyShare
from secure_ballot.models.encrypted_vote import EncryptedVote, VoteStore, MongoVoteStore
from secure_ballot.models.mobile_payload import MobileSignedPayload, MobileEciesPackage

__all__ = ['ElectionKeyMaterial', 'ElectionKeyStore', 'MongoElectionKeyStore', 'KeyShare',
           'EncryptedVote', 'VoteStore', 'MongoVoteStore', 'MobileSignedPayload', 'MobileEciesPackage']
