from flask import Flask
from pymongo import MongoClient

from secure_ballot.config import Config, get_config


class BallotCore:
    """Wiring of stores and services for one application instance."""

    def __init__(self, key_service, vote_service, tally_service, mobile_service, audit):
        self.key_service = key_service
        self.vote_service = vote_service
        self.tally_service = tally_service
        self.mobile_service = mobile_service
        self.audit = audit


def build_core(db, config, voter_keys=None) -> BallotCore:
    """Build the services around explicit database and config handles.

    Args:
        db: Database handle for the Mongo-backed stores
        config: Config mapping (app.config or a dict)
        voter_keys: Voter-identity collaborator for mobile signatures
    """
    from secure_ballot.models.election_key import MongoElectionKeyStore
    from secure_ballot.models.encrypted_vote import MongoVoteStore
    from secure_ballot.services.audit_service import AuditService
    from secure_ballot.services.election_key_service import ElectionKeyService
    from secure_ballot.services.mobile_vote_service import MobileVoteService
    from secure_ballot.services.tally_service import TallyService
    from secure_ballot.services.vote_service import VoteService
    from secure_ballot.utils.mobile_crypto import generate_server_key_pair

    audit = AuditService(db, enabled=config.get('AUDIT_LOG_ENABLED', True))
    key_store = MongoElectionKeyStore(db)
    vote_store = MongoVoteStore(db)

    key_service = ElectionKeyService.from_config(config, key_store, audit=audit)
    vote_service = VoteService(key_service, vote_store, audit=audit)
    tally_service = TallyService(key_service, vote_store, audit=audit,
                                 max_workers=config.get('BATCH_DECRYPT_WORKERS'))

    voter_keys = voter_keys if voter_keys is not None else {}
    key_path = config.get('MOBILE_SERVER_KEY_PATH')
    if key_path:
        mobile_service = MobileVoteService.from_key_file(key_path, voter_keys,
                                                         vote_service=vote_service, audit=audit)
    else:
        mobile_service = MobileVoteService(generate_server_key_pair(), voter_keys,
                                           vote_service=vote_service, audit=audit)

    return BallotCore(key_service, vote_service, tally_service, mobile_service, audit)


def get_core(app) -> BallotCore:
    """Get the BallotCore registered on an application."""
    return app.extensions['secure_ballot']


def create_app(config_class=None, voter_keys=None):
    """Application factory.

    Args:
        config_class: Configuration class to use. If None, auto-detects based on FLASK_ENV.
        voter_keys: Voter-identity collaborator for mobile signature checks
    """
    app = Flask(__name__)

    # Use provided config or auto-detect based on environment
    if config_class is None:
        config_class = get_config()
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize MongoDB
    try:
        mongo_client = MongoClient(app.config['MONGODB_URI'], serverSelectionTimeoutMS=5000)
        # Verify connection works
        mongo_client.admin.command('ping')
        db = mongo_client[app.config['DATABASE_NAME']]
        app.logger.info("Successfully connected to MongoDB")
    except Exception as e:
        app.logger.error(f"Failed to connect to MongoDB: {str(e)}")
        raise RuntimeError(f"Could not connect to MongoDB: {str(e)}")

    app.extensions['secure_ballot'] = build_core(db, app.config, voter_keys=voter_keys)

    # Register blueprints
    from secure_ballot.routes.verify import verify_bp
    app.register_blueprint(verify_bp)

    @app.after_request
    def add_security_headers(response):
        """Receipt lookups must never be cached."""
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate, private'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        return response

    return app
