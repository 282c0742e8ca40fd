"""Shamir's Secret Sharing over a prime field for election key custody.

This module provides:
1. Splitting a secret integer into N shares, any T of which reconstruct it
2. Lagrange reconstruction at x = 0 with an explicit share-count check
3. Text formatting/parsing of shares for human custodians

Fewer than T shares carry no information about the secret: every candidate
secret is equally consistent with T-1 points of a random degree T-1 polynomial.
"""
import secrets
from typing import Iterable, List, Optional

from secure_ballot.models.key_share import KeyShare
from secure_ballot.utils.errors import InvalidParameters, InsufficientShares, InvalidShare

# Shamir's Secret Sharing constants
PRIME = 2**521 - 1  # 13th Mersenne prime (large prime for security)


class ShamirSecretSharing:
    """Implementation of Shamir's Secret Sharing scheme."""

    def __init__(self, threshold: int = 3, total_shares: int = 5, prime: int = PRIME):
        """Initialize Shamir's Secret Sharing.

        Args:
            threshold: Minimum shares needed to reconstruct secret (default: 3)
            total_shares: Total number of shares to generate (default: 5)
            prime: Field modulus, must exceed every secret and share index
        """
        if threshold < 1:
            raise InvalidParameters("Threshold must be at least 1")
        if threshold > total_shares:
            raise InvalidParameters("Threshold cannot be greater than total shares")
        if total_shares >= prime:
            raise InvalidParameters("Total shares must be smaller than the field prime")

        self.threshold = threshold
        self.total_shares = total_shares
        self.prime = prime
        self.value_width = len(format(prime, 'x'))

    def _mod_inverse(self, a: int, m: int) -> int:
        """Calculate modular multiplicative inverse using extended Euclidean algorithm."""
        old_r, r = a % m, m
        old_s, s = 1, 0
        while r:
            quotient = old_r // r
            old_r, r = r, old_r - quotient * r
            old_s, s = s, old_s - quotient * s
        if old_r != 1:
            raise InvalidShare("Share indices are not invertible in the field")
        return old_s % m

    def _generate_coefficients(self, secret: int) -> List[int]:
        """Generate random polynomial coefficients with secret as constant term."""
        coefficients = [secret]
        for _ in range(self.threshold - 1):
            coef = secrets.randbelow(self.prime)  # Full field, zero included
            coefficients.append(coef)
        return coefficients

    def _evaluate_polynomial(self, coefficients: List[int], x: int) -> int:
        """Evaluate polynomial at point x (Horner's rule)."""
        result = 0
        for coef in reversed(coefficients):
            result = (result * x + coef) % self.prime
        return result

    def split(self, secret: int, election_id: str = None,
              custodian_ids: Optional[List[str]] = None) -> List[KeyShare]:
        """Split a secret integer into shares.

        Args:
            secret: The secret, 0 <= secret < prime
            election_id: Election the shares belong to (tagged on each share)
            custodian_ids: Optional custodian per share, in share order

        Returns:
            List of KeyShare objects with indices 1..total_shares
        """
        if secret < 0 or secret >= self.prime:
            raise InvalidParameters("Secret too large for the prime field")
        if custodian_ids is not None and len(custodian_ids) != self.total_shares:
            raise InvalidParameters("One custodian is required per share")

        coefficients = self._generate_coefficients(secret)

        # Generate shares (x, y) pairs where x is 1 to total_shares
        shares = []
        for i in range(1, self.total_shares + 1):
            shares.append(KeyShare(
                share_index=i,
                share_value=self._evaluate_polynomial(coefficients, i),
                election_id=election_id,
                custodian_id=custodian_ids[i - 1] if custodian_ids else None,
                value_width=self.value_width
            ))
        del coefficients
        return shares

    def split_secret(self, secret_bytes: bytes, election_id: str = None,
                     custodian_ids: Optional[List[str]] = None) -> List[KeyShare]:
        """Split a byte-string secret into shares (big-endian integer encoding)."""
        secret_int = int.from_bytes(secret_bytes, byteorder='big')
        return self.split(secret_int, election_id=election_id, custodian_ids=custodian_ids)

    def _distinct_points(self, shares: Iterable[KeyShare]) -> List[tuple]:
        """Validate shares and collapse exact duplicates into distinct points."""
        points = {}
        for share in shares:
            x, y = share.share_index, share.share_value
            if not isinstance(x, int) or x < 1 or x >= self.prime:
                raise InvalidShare(f"Share index {x!r} is outside the field")
            if not isinstance(y, int) or y < 0 or y >= self.prime:
                raise InvalidShare(f"Share {x} value is outside the field")
            if x in points and points[x] != y:
                raise InvalidShare(f"Conflicting values submitted for share {x}")
            points[x] = y
        return sorted(points.items())

    def reconstruct(self, shares: Iterable[KeyShare]) -> int:
        """Reconstruct the secret integer using Lagrange interpolation at x = 0.

        The share count is checked before any interpolation: interpolating
        fewer than threshold points still yields a plausible-looking integer.

        Args:
            shares: KeyShare objects (at least threshold distinct indices)

        Returns:
            The reconstructed secret
        """
        points = self._distinct_points(shares)
        if len(points) < self.threshold:
            raise InsufficientShares(f"Need at least {self.threshold} shares, got {len(points)}")

        secret_int = 0
        for i, (xi, yi) in enumerate(points):
            numerator = 1
            denominator = 1
            for j, (xj, _) in enumerate(points):
                if i != j:
                    numerator = (numerator * (-xj)) % self.prime
                    denominator = (denominator * (xi - xj)) % self.prime

            lagrange_coef = (numerator * self._mod_inverse(denominator, self.prime)) % self.prime
            secret_int = (secret_int + yi * lagrange_coef) % self.prime

        return secret_int

    def reconstruct_secret(self, shares: Iterable[KeyShare], secret_length: int) -> bytes:
        """Reconstruct a byte-string secret of a known length.

        Raises:
            InvalidShare: if the interpolated value does not fit the length,
                which only happens when a share is corrupted
        """
        secret_int = self.reconstruct(shares)
        try:
            return secret_int.to_bytes(secret_length, byteorder='big')
        except OverflowError:
            raise InvalidShare("Reconstructed secret has an unexpected length")


def format_share_value(value_hex: str) -> str:
    """Group a hex share value into dash-separated blocks of 8 characters."""
    return '-'.join([value_hex[i:i+8] for i in range(0, len(value_hex), 8)])


def format_share_for_display(index: int, value: str) -> str:
    """Format a share for user-friendly display.

    Args:
        index: Share index (1-N)
        value: Share value (hex string with dashes)

    Returns:
        Formatted string for display
    """
    return f"SHARE-{index}: {value}"


def parse_share_input(share_string: str, election_id: str = None) -> KeyShare:
    """Parse a share from custodian input.

    Args:
        share_string: Input like "SHARE-1: xxxx-xxxx-..." or just "1:xxxx-xxxx"
        election_id: Election the share is being submitted for

    Returns:
        KeyShare
    """
    # Clean up input
    share_string = share_string.strip().upper()

    if share_string.startswith('SHARE-'):
        share_string = share_string[6:]

    if ':' not in share_string:
        raise InvalidShare("Invalid share format. Expected 'SHARE-N: value' or 'N: value'")

    index_part, value_part = share_string.split(':', 1)
    try:
        index = int(index_part.strip())
        value = int(value_part.strip().replace('-', ''), 16)
    except ValueError:
        raise InvalidShare("Invalid share format. Share index and value could not be parsed")

    return KeyShare(share_index=index, share_value=value, election_id=election_id)
