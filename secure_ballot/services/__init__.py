# Service modules
from secure_ballot.services.election_key_service import ElectionKeyService, ReconstructionSession
from secure_ballot.services.vote_service import VoteService
from secure_ballot.services.mobile_vote_service import MobileVoteService
from secure_ballot.services.tally_service import TallyService
from secure_ballot.services.audit_service import AuditService

__all__ = ['ElectionKeyService', 'ReconstructionSession', 'VoteService',
           'MobileVoteService', 'TallyService', 'AuditService']
