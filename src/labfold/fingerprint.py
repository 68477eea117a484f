"""Content fingerprints for duplicate-upload detection.

Two complementary hashes are taken over normalized OCR text:

- SHA-256 catches the identical document uploaded twice.
- A 64-bit SimHash over character bigrams catches near-duplicates, where a
  re-photographed page differs by a misread character or a slightly
  different crop. Similar texts give fingerprints a small Hamming distance
  apart.
"""

from __future__ import annotations

import hashlib
import re

from labfold.models import ContentFingerprint

SIMHASH_BITS = 64
ZERO_SIMHASH = "0" * (SIMHASH_BITS // 4)

# Hamming distance below this suggests OCR variation of the same source
DEFAULT_NEAR_DUPLICATE_THRESHOLD = 5

_MAX_DISTANCE = SIMHASH_BITS
_HEX64 = re.compile(r"[0-9a-fA-F]{16}")
_MASK32 = 0xFFFFFFFF


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace and trim.

    >>> normalize_text('Test\\n\\nResult:  POSITIVE')
    'test result positive'
    """
    if not text:
        return ""
    lowered = text.lower()
    lowered = re.sub(r"[^a-z0-9\s]", "", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def _hash_bigram(s: str) -> int:
    """djb2-style shift-and-add hash, truncated to an unsigned 32-bit int."""
    h = 0
    for ch in s:
        h = ((h << 5) - h + ord(ch)) & _MASK32
    return h


def compute_simhash(normalized: str) -> str:
    """SimHash of already-normalized text as 16 lowercase hex characters.

    Each overlapping bigram votes +1/-1 on all 64 bit positions. Bits 0-31
    read the bigram hash directly; bits 32-63 read a hash of the bigram
    suffixed with the bit index. Bit 0 is the most significant bit of the
    output. Texts shorter than two characters have no bigrams and give the
    all-zero fingerprint.
    """
    if len(normalized) < 2:
        return ZERO_SIMHASH

    vector = [0] * SIMHASH_BITS
    bit_hashes: dict[str, list[int]] = {}

    for i in range(len(normalized) - 1):
        bigram = normalized[i : i + 2]
        hashes = bit_hashes.get(bigram)
        if hashes is None:
            base = _hash_bigram(bigram)
            hashes = [base] * 32 + [_hash_bigram(bigram + str(bit)) for bit in range(32, 64)]
            bit_hashes[bigram] = hashes

        for bit in range(SIMHASH_BITS):
            position = bit if bit < 32 else bit - 32
            if (hashes[bit] >> position) & 1:
                vector[bit] += 1
            else:
                vector[bit] -= 1

    value = 0
    for weight in vector:
        value = (value << 1) | (1 if weight >= 0 else 0)
    return format(value, "016x")


def fingerprint(text: str) -> ContentFingerprint:
    """Exact hash and SimHash of a document's raw OCR text."""
    normalized = normalize_text(text)
    exact = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return ContentFingerprint(exact_hash=exact, simhash=compute_simhash(normalized))


def hamming_distance(hex1: str, hex2: str) -> int:
    """Number of differing bits between two 16-hex-char SimHashes.

    Malformed or wrong-length input returns 64, the maximal distance, so a
    bad fingerprint is never mistaken for a duplicate.
    """
    if not hex1 or not hex2:
        return _MAX_DISTANCE
    if not _HEX64.fullmatch(hex1) or not _HEX64.fullmatch(hex2):
        return _MAX_DISTANCE
    return bin(int(hex1, 16) ^ int(hex2, 16)).count("1")


def is_exact_duplicate(a: ContentFingerprint, b: ContentFingerprint) -> bool:
    return bool(a.exact_hash) and a.exact_hash == b.exact_hash


def is_near_duplicate(
    a: ContentFingerprint,
    b: ContentFingerprint,
    threshold: int = DEFAULT_NEAR_DUPLICATE_THRESHOLD,
) -> bool:
    """True when the SimHashes are fewer than ``threshold`` bits apart.

    Advisory only; two empty texts share the zero fingerprint and are not
    reported as near-duplicates of each other.
    """
    if a.simhash == ZERO_SIMHASH or b.simhash == ZERO_SIMHASH:
        return False
    return hamming_distance(a.simhash, b.simhash) < threshold
