"""Hybrid vote encryption tests for the Secure Ballot core."""

import base64
from datetime import datetime
from unittest.mock import patch

import pytest

from secure_ballot.models.election_key import ElectionKeyStore
from secure_ballot.models.encrypted_vote import DuplicateVoteError, EncryptedVote, MongoVoteStore, VoteStore
from secure_ballot.services.audit_service import AuditService
from secure_ballot.services.election_key_service import ElectionKeyService
from secure_ballot.services.vote_service import VoteService
from secure_ballot.utils.errors import IntegrityViolation, InvalidParameters, KeyMismatch, KeyNotFound
from secure_ballot.utils.security import RECEIPT_CODE_LENGTH, derive_receipt_code


def _flip_bit(b64_value: str, position: int) -> str:
    data = bytearray(base64.b64decode(b64_value))
    data[position // 8] ^= 1 << (position % 8)
    return base64.b64encode(bytes(data)).decode('utf-8')


def _tampered(vote: EncryptedVote, **changes) -> EncryptedVote:
    data = vote.to_dict()
    data.update(changes)
    return EncryptedVote.from_dict(data)


class TestVoteEncryption:
    """Tests for encrypting votes."""

    def test_round_trip(self, cipher, key_material, private_key, sample_vote):
        """Test that decrypt(encrypt(v)) returns exactly v."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        decrypted = cipher.decrypt_vote(encrypted, private_key)

        assert decrypted == sample_vote
        assert decrypted['candidate_id'] == 'C1'
        assert decrypted['polling_unit_id'] == 'P1'

    def test_record_fields(self, cipher, key_material, sample_vote, election_id):
        """Test the persisted layout of an encrypted vote."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)

        assert encrypted.vote_id.startswith('VOTE-')
        assert encrypted.election_id == election_id
        assert encrypted.polling_unit_id == 'P1'
        assert encrypted.candidate_id is None  # Choice stays inside the ciphertext
        assert encrypted.public_key_fingerprint == key_material.public_key_fingerprint
        assert encrypted.channel == 'web'
        assert len(encrypted.initialization_vector) == 24
        assert len(encrypted.integrity_hash) == 64

    def test_receipt_code_fixed_length_and_deterministic(self, cipher, key_material, sample_vote):
        """Test that the receipt code has a fixed length and derives from the hash."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)

        assert len(encrypted.receipt_code) == RECEIPT_CODE_LENGTH == 16
        assert encrypted.receipt_code.startswith('RCP-')
        assert derive_receipt_code(encrypted.integrity_hash) == encrypted.receipt_code
        assert derive_receipt_code(encrypted.integrity_hash) == derive_receipt_code(encrypted.integrity_hash)

    def test_fresh_key_and_iv_per_vote(self, cipher, key_material, sample_vote):
        """Test that two encryptions of the same vote share no key material."""
        first = cipher.encrypt_vote(sample_vote, key_material.public_key)
        second = cipher.encrypt_vote(sample_vote, key_material.public_key)

        assert first.initialization_vector != second.initialization_vector
        assert first.encrypted_symmetric_key != second.encrypted_symmetric_key
        assert first.encrypted_vote_data != second.encrypted_vote_data
        assert first.receipt_code != second.receipt_code

    def test_large_vote_body(self, cipher, key_material, private_key, sample_vote):
        """Test that vote size is not bounded by the RSA block size."""
        vote = dict(sample_vote, remarks='x' * 10000)
        encrypted = cipher.encrypt_vote(vote, key_material.public_key)
        assert cipher.decrypt_vote(encrypted, private_key) == vote

    def test_unicode_vote(self, cipher, key_material, private_key, sample_vote):
        """Test that non-ASCII vote fields survive the round trip."""
        vote = dict(sample_vote, ward='Ọ̀yọ́')
        encrypted = cipher.encrypt_vote(vote, key_material.public_key, channel='ussd')
        assert encrypted.channel == 'ussd'
        assert cipher.decrypt_vote(encrypted, private_key) == vote

    def test_unknown_channel_rejected(self, cipher, key_material, sample_vote):
        """Test that only web, mobile and ussd channels are accepted."""
        with pytest.raises(InvalidParameters):
            cipher.encrypt_vote(sample_vote, key_material.public_key, channel='fax')

    def test_empty_vote_rejected(self, cipher, key_material):
        """Test that an empty vote cannot be encrypted."""
        with pytest.raises(InvalidParameters):
            cipher.encrypt_vote({}, key_material.public_key)

    def test_non_json_vote_rejected(self, cipher, key_material, sample_vote):
        """Test that vote data which would not decrypt unchanged is refused up front."""
        for vote in (dict(sample_vote, ranking=('C1', 'C2')),
                     dict(sample_vote, scores={1: 'C1'}),
                     dict(sample_vote, cast_at=datetime(2026, 1, 1))):
            with pytest.raises(InvalidParameters):
                cipher.encrypt_vote(vote, key_material.public_key)

    def test_nested_json_vote(self, cipher, key_material, private_key, sample_vote):
        """Test that lists, nested objects and scalars round-trip exactly."""
        vote = dict(sample_vote, ranking=['C1', 'C2'], meta={'turnout': 0.5, 'late': False, 'note': None})
        encrypted = cipher.encrypt_vote(vote, key_material.public_key)
        assert cipher.decrypt_vote(encrypted, private_key) == vote


class TestVoteDecryptionFailures:
    """Tests for tamper and key-mismatch detection."""

    def test_bit_flips_in_vote_data(self, cipher, key_material, private_key, sample_vote):
        """Test that flipping any bit of the ciphertext is an integrity violation."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        total_bits = len(base64.b64decode(encrypted.encrypted_vote_data)) * 8

        for position in range(0, total_bits, 7):
            tampered = _tampered(encrypted, encrypted_vote_data=_flip_bit(encrypted.encrypted_vote_data, position))
            with pytest.raises(IntegrityViolation):
                cipher.decrypt_vote(tampered, private_key)

    def test_bit_flips_in_integrity_hash(self, cipher, key_material, private_key, sample_vote):
        """Test that flipping any bit of the stored hash is an integrity violation."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)

        for i, char in enumerate(encrypted.integrity_hash):
            flipped = encrypted.integrity_hash[:i] + chr(ord(char) ^ 1) + encrypted.integrity_hash[i + 1:]
            with pytest.raises(IntegrityViolation):
                cipher.decrypt_vote(_tampered(encrypted, integrity_hash=flipped), private_key)

    def test_tampered_iv(self, cipher, key_material, private_key, sample_vote):
        """Test that a modified IV is detected."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        tampered = _tampered(encrypted, initialization_vector=_flip_bit(encrypted.initialization_vector, 3))
        with pytest.raises(IntegrityViolation):
            cipher.decrypt_vote(tampered, private_key)

    def test_tampered_symmetric_key(self, cipher, key_material, private_key, sample_vote):
        """Test that a modified wrapped key is detected."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        tampered = _tampered(encrypted, encrypted_symmetric_key=_flip_bit(encrypted.encrypted_symmetric_key, 100))
        with pytest.raises(IntegrityViolation):
            cipher.decrypt_vote(tampered, private_key)

    def test_swapped_ciphertexts(self, cipher, key_material, private_key, sample_vote):
        """Test that moving one vote's ciphertext onto another record is detected."""
        first = cipher.encrypt_vote(sample_vote, key_material.public_key)
        second = cipher.encrypt_vote(dict(sample_vote, candidate_id='C2'), key_material.public_key)
        hybrid = _tampered(first,
                           encrypted_vote_data=second.encrypted_vote_data,
                           encrypted_symmetric_key=second.encrypted_symmetric_key,
                           initialization_vector=second.initialization_vector,
                           integrity_hash=second.integrity_hash)
        with pytest.raises(IntegrityViolation):
            cipher.decrypt_vote(hybrid, private_key)

    def test_malformed_record(self, cipher, key_material, private_key, sample_vote):
        """Test that a record with a non-base64 field is rejected, not crashed on."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        with pytest.raises(IntegrityViolation):
            cipher.decrypt_vote(_tampered(encrypted, encrypted_vote_data='***'), private_key)
        with pytest.raises(IntegrityViolation):
            cipher.decrypt_vote(_tampered(encrypted, initialization_vector=None), private_key)

    def test_key_mismatch(self, cipher, key_material, other_rsa_key, sample_vote):
        """Test that decrypting with another key pair fails before decryption."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)

        with patch('secure_ballot.utils.vote_cipher.PKCS1_OAEP') as mock_oaep:
            with pytest.raises(KeyMismatch) as exc:
                cipher.decrypt_vote(encrypted, other_rsa_key)
            mock_oaep.new.assert_not_called()

        assert exc.value.vote_id == encrypted.vote_id

    def test_public_error_does_not_leak_detail(self, cipher, key_material, private_key, sample_vote):
        """Test that external messages are generic while internal detail is kept."""
        encrypted = cipher.encrypt_vote(sample_vote, key_material.public_key)
        with pytest.raises(IntegrityViolation) as exc:
            cipher.decrypt_vote(_tampered(encrypted, integrity_hash='0' * 64), private_key)

        public = exc.value.to_dict()
        internal = exc.value.to_dict(internal=True)
        assert public == {'error': 'integrity_violation', 'category': 'corrupted',
                          'message': 'The vote could not be verified.'}
        assert internal['detail'] == 'Integrity hash mismatch'
        assert internal['vote_id'] == encrypted.vote_id


class TestBatchDecryption:
    """Tests for failure-isolated batch decryption."""

    def test_batch_with_one_tampered_vote(self, cipher, key_material, private_key, election_id):
        """Test 10 votes where vote #4 has a tampered hash: 9 successes, 1 failure."""
        votes = [
            cipher.encrypt_vote({'election_id': election_id, 'candidate_id': f'C{i % 3}',
                                 'polling_unit_id': 'P1'}, key_material.public_key)
            for i in range(10)
        ]
        votes[3] = _tampered(votes[3], integrity_hash='f' * 64)

        successes, failures = cipher.batch_decrypt(votes, private_key, max_workers=4)

        assert len(successes) == 9
        assert len(failures) == 1
        assert failures[0].vote_id == votes[3].vote_id
        assert failures[0].kind == 'integrity_violation'
        assert {s.vote_id for s in successes} | {failures[0].vote_id} == {v.vote_id for v in votes}

    def test_batch_reports_key_mismatch(self, cipher, key_material, private_key, other_rsa_key, sample_vote):
        """Test that a vote from another key pair is an isolated key_mismatch failure."""
        good = cipher.encrypt_vote(sample_vote, key_material.public_key)
        foreign = cipher.encrypt_vote(sample_vote, other_rsa_key.publickey().export_key().decode('utf-8'))

        result = cipher.batch_decrypt([good, foreign], private_key)

        assert result.total == 2
        assert [s.vote_id for s in result.successes] == [good.vote_id]
        assert result.failures[0].to_dict()['kind'] == 'key_mismatch'

    def test_empty_batch(self, cipher, private_key):
        """Test that an empty batch returns empty results."""
        result = cipher.batch_decrypt([], private_key)
        assert result.successes == [] and result.failures == []


class TestVoteService:
    """Tests for storing votes and receipt lookup."""

    def test_cast_vote_and_verify_receipt(self, db, key_service, key_material, private_key, election_id):
        """Test that a cast vote is stored verbatim and its receipt verifies."""
        audit = AuditService(db)
        store = MongoVoteStore(db)
        service = VoteService(key_service, store, audit=audit)

        vote = service.cast_vote(election_id, {'candidate_id': 'C1', 'polling_unit_id': 'P1'})
        stored = store.find_by_vote_id(vote.vote_id)

        assert stored.to_dict() == vote.to_dict() | {'timestamp': stored.timestamp}
        assert stored.candidate_id is None
        assert service.decrypt_vote(stored, private_key)['candidate_id'] == 'C1'

        result = service.verify_receipt(vote.receipt_code.lower())
        assert result['valid'] is True
        assert result['election_id'] == election_id
        assert 'candidate_id' not in result

        assert audit.entries(event_type='vote_cast')[0]['details']['vote_id'] == vote.vote_id

    def test_receipt_not_found(self, key_service):
        """Test lookup of an unknown receipt."""
        service = VoteService(key_service, VoteStore())
        assert service.verify_receipt('RCP-000000000000')['valid'] is False
        assert service.verify_receipt('BAD')['message'] == 'Invalid receipt format.'

    def test_records_are_immutable(self, key_service, election_id):
        """Test that the store refuses to overwrite a vote."""
        store = VoteStore()
        service = VoteService(key_service, store)
        vote = service.cast_vote(election_id, {'candidate_id': 'C1'})

        with pytest.raises(DuplicateVoteError):
            store.save(vote)

    def test_cast_vote_unknown_election(self):
        """Test that casting into an election without keys fails with KeyNotFound."""
        service = VoteService(ElectionKeyService(ElectionKeyStore()), VoteStore())
        with pytest.raises(KeyNotFound):
            service.cast_vote('ELC-NOKEYS', {'candidate_id': 'C1'})

    def test_cast_vote_election_mismatch(self, key_service, election_id):
        """Test that vote data for another election is rejected."""
        service = VoteService(key_service, VoteStore())
        with pytest.raises(InvalidParameters):
            service.cast_vote(election_id, {'election_id': 'ELC-OTHER', 'candidate_id': 'C1'})

    def test_duplicate_receipt_refused_by_stores(self, db, key_service, election_id):
        """Test that neither store accepts a second record with an issued receipt code."""
        for store in (VoteStore(), MongoVoteStore(db)):
            vote = VoteService(key_service, store).cast_vote(election_id, {'candidate_id': 'C1'})
            clash = _tampered(vote, vote_id='VOTE-0000000000000000', _id=None)
            with pytest.raises(DuplicateVoteError):
                store.save(clash)
            assert store.find_by_receipt_code(vote.receipt_code).vote_id == vote.vote_id

    def test_receipt_collision_re_encrypts(self, key_service, election_id):
        """Test that a colliding receipt code is replaced by re-encrypting the vote."""
        store = VoteStore()
        service = VoteService(key_service, store)
        codes = ['RCP-AAAAAAAAAAAA', 'RCP-AAAAAAAAAAAA', 'RCP-BBBBBBBBBBBB']
        with patch('secure_ballot.utils.vote_cipher.derive_receipt_code', side_effect=codes):
            first = service.cast_vote(election_id, {'candidate_id': 'C1'})
            second = service.cast_vote(election_id, {'candidate_id': 'C2'})

        assert first.receipt_code == 'RCP-AAAAAAAAAAAA'
        assert second.receipt_code == 'RCP-BBBBBBBBBBBB'
        assert store.count_by_election(election_id) == 2

    def test_receipt_collision_gives_up(self, key_service, election_id):
        """Test that repeated receipt collisions fail instead of storing a duplicate."""
        store = VoteStore()
        service = VoteService(key_service, store)
        with patch('secure_ballot.utils.vote_cipher.derive_receipt_code', return_value='RCP-AAAAAAAAAAAA'):
            service.cast_vote(election_id, {'candidate_id': 'C1'})
            with pytest.raises(DuplicateVoteError):
                service.cast_vote(election_id, {'candidate_id': 'C2'})

        assert store.count_by_election(election_id) == 1
