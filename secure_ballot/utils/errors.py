"""Typed failures for the vote-confidentiality and key-management core.

Every error carries:
- kind: the exact failure name, preserved for audit logging
- category: 'not_found', 'corrupted' or 'invalid'
- detail: internal description (audit logs only)
- public_message: what may be shown to an external caller
"""


class BallotCryptoError(Exception):
    """Base class for all cryptographic core failures."""

    kind = 'crypto_error'
    category = 'invalid'
    public_message = 'The operation could not be completed.'

    CATEGORY_NOT_FOUND = 'not_found'
    CATEGORY_CORRUPTED = 'corrupted'
    CATEGORY_INVALID = 'invalid'

    def __init__(self, detail: str = None, vote_id: str = None):
        self.detail = detail or self.public_message
        self.vote_id = vote_id
        super().__init__(self.detail)

    def to_dict(self, internal: bool = False) -> dict:
        """Convert the error to a response/audit dictionary.

        Args:
            internal: Include the internal detail (audit logs only)
        """
        data = {
            'error': self.kind,
            'category': self.category,
            'message': self.public_message
        }
        if internal:
            data['detail'] = self.detail
            if self.vote_id:
                data['vote_id'] = self.vote_id
        return data


class InvalidParameters(BallotCryptoError):
    kind = 'invalid_parameters'
    category = BallotCryptoError.CATEGORY_INVALID
    public_message = 'Invalid parameters.'


class InsufficientShares(BallotCryptoError):
    kind = 'insufficient_shares'
    category = BallotCryptoError.CATEGORY_INVALID
    public_message = 'Not enough key shares were submitted.'


class InvalidShare(BallotCryptoError):
    kind = 'invalid_share'
    category = BallotCryptoError.CATEGORY_CORRUPTED
    public_message = 'The submitted key shares could not be validated.'


class KeyNotFound(BallotCryptoError):
    kind = 'key_not_found'
    category = BallotCryptoError.CATEGORY_NOT_FOUND
    public_message = 'No key material found.'


class KeyMismatch(BallotCryptoError):
    kind = 'key_mismatch'
    category = BallotCryptoError.CATEGORY_INVALID
    public_message = 'The vote could not be verified.'


class IntegrityViolation(BallotCryptoError):
    kind = 'integrity_violation'
    category = BallotCryptoError.CATEGORY_CORRUPTED
    public_message = 'The vote could not be verified.'


class SignatureInvalid(BallotCryptoError):
    kind = 'signature_invalid'
    category = BallotCryptoError.CATEGORY_INVALID
    public_message = 'The vote could not be verified.'
