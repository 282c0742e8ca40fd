class KeyShare:
    """One custodian share of an election's wrapping secret.

    A share is a point (share_index, share_value) on the sharing polynomial.
    Shares are handed out once at key generation and only come back to the
    core at reconstruction time; they are never stored by this package.
    """

    def __init__(self, share_index: int, share_value: int,
                 election_id: str = None, custodian_id: str = None,
                 value_width: int = None):
        self.share_index = share_index
        self.share_value = share_value
        self.election_id = election_id
        self.custodian_id = custodian_id
        self.value_width = value_width  # Hex digits used when rendering the value

    @property
    def value_hex(self) -> str:
        """Share value as zero-padded lower-case hex."""
        value = format(self.share_value, 'x')
        if self.value_width:
            value = value.zfill(self.value_width)
        return value

    @property
    def formatted_value(self) -> str:
        """Share value grouped into dash-separated blocks of 8 hex digits."""
        from secure_ballot.utils.shamir_crypto import format_share_value
        return format_share_value(self.value_hex)

    @property
    def display(self) -> str:
        """Short label for showing a share to its custodian."""
        return f"Share {self.share_index}: {self.formatted_value[:32]}..."

    def to_dict(self) -> dict:
        """Convert share to dictionary."""
        return {
            'index': self.share_index,
            'value': self.formatted_value,
            'election_id': self.election_id,
            'custodian_id': self.custodian_id,
            'display': self.display
        }

    @classmethod
    def from_dict(cls, data: dict):
        """Create KeyShare from dictionary (accepts dashed or plain hex values)."""
        if not data:
            return None
        value = data.get('value')
        if isinstance(value, str):
            value = int(value.replace('-', ''), 16)
        return cls(
            share_index=int(data.get('index')),
            share_value=value,
            election_id=data.get('election_id'),
            custodian_id=data.get('custodian_id')
        )

    def __eq__(self, other):
        if not isinstance(other, KeyShare):
            return NotImplemented
        return (self.share_index, self.share_value, self.election_id) == \
            (other.share_index, other.share_value, other.election_id)

    def __hash__(self):
        return hash((self.share_index, self.share_value, self.election_id))

    def __repr__(self):
        # Never render the share value itself
        return f"KeyShare(index={self.share_index}, election_id={self.election_id!r})"
