"""Shared test fixtures for the Secure Ballot core."""

import pytest
from unittest.mock import patch
import mongomock


class TestingConfig:
    """Testing configuration with mocked MongoDB."""
    SECRET_KEY = 'test-secret-key-for-testing-only'
    TESTING = True
    DEBUG = True
    LOG_LEVEL = 'DEBUG'
    MONGODB_URI = 'mongodb://localhost:27017/'
    DATABASE_NAME = 'test_secure_ballot'

    SHAMIR_THRESHOLD = 3
    SHAMIR_TOTAL_SHARES = 5
    RECONSTRUCTION_SESSION_SECONDS = 60
    RSA_KEY_SIZE = 2048
    BATCH_DECRYPT_WORKERS = 4
    MOBILE_SERVER_KEY_PATH = None

    AUDIT_LOG_ENABLED = True


@pytest.fixture
def mock_mongo_client():
    """Create a mock MongoDB client using mongomock."""
    return mongomock.MongoClient()


@pytest.fixture
def db(mock_mongo_client):
    """Get a clean test database."""
    database = mock_mongo_client[TestingConfig.DATABASE_NAME]
    for collection_name in database.list_collection_names():
        database[collection_name].drop()
    yield database


@pytest.fixture
def app(mock_mongo_client):
    """Create and configure a test application instance."""
    with patch('secure_ballot.MongoClient', return_value=mock_mongo_client):
        from secure_ballot import create_app

        test_app = create_app(TestingConfig)
        yield test_app


@pytest.fixture
def client(app):
    """Create a test client for the application."""
    return app.test_client()


@pytest.fixture(scope='session')
def election_id():
    return 'ELC-20260101-TEST'


@pytest.fixture(scope='session')
def key_service_with_keys(election_id):
    """Key service holding one generated election (RSA keygen runs once per session)."""
    from secure_ballot.models.election_key import ElectionKeyStore
    from secure_ballot.services.election_key_service import ElectionKeyService

    service = ElectionKeyService(ElectionKeyStore(), threshold=3, total_shares=5)
    material, shares = service.generate_election_keys(election_id)
    return service, material, shares


@pytest.fixture(scope='session')
def key_service(key_service_with_keys):
    return key_service_with_keys[0]


@pytest.fixture(scope='session')
def key_material(key_service_with_keys):
    return key_service_with_keys[1]


@pytest.fixture(scope='session')
def key_shares(key_service_with_keys):
    return key_service_with_keys[2]


@pytest.fixture(scope='session')
def private_key(key_service, election_id, key_shares):
    """The reconstructed election private key."""
    return key_service.reconstruct_private_key(election_id, key_shares[:3])


@pytest.fixture(scope='session')
def other_rsa_key():
    """An unrelated RSA key pair (for key-mismatch tests)."""
    from Crypto.PublicKey import RSA
    return RSA.generate(2048)


@pytest.fixture
def cipher():
    from secure_ballot.utils.vote_cipher import HybridVoteCipher
    return HybridVoteCipher()


@pytest.fixture
def sample_vote(election_id):
    return {
        'election_id': election_id,
        'candidate_id': 'C1',
        'polling_unit_id': 'P1'
    }
