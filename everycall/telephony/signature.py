"""
Webhook signature verification.

Two schemes, one contract: ``verify(raw_body, signature_header,
timestamp_header, url) -> bool``. Verifiers never raise; every failure
(missing input, malformed key, bad base64, crypto mismatch, stale
timestamp) returns False. A verifier without key material rejects
everything.
"""

import base64
import binascii
import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import load_pem_public_key

DEFAULT_TOLERANCE_SEC = 300

Body = Union[bytes, str]
FormParams = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


def _as_bytes(raw_body: Body) -> bytes:
    if isinstance(raw_body, bytes):
        return raw_body
    return raw_body.encode("utf-8")


class SignatureVerifier(ABC):
    """Validates authenticity (and, where the scheme supports it, freshness) of a webhook."""

    @abstractmethod
    def verify(
        self,
        raw_body: Body,
        signature_header: Optional[str],
        timestamp_header: Optional[str],
        url: str = "",
    ) -> bool:
        ...


class HmacSignatureVerifier(SignatureVerifier):
    """
    Twilio-style HMAC-SHA1 over the request URL and sorted form parameters.

    Canonical string: ``url + key1 + value1 + key2 + value2 ...`` with keys
    sorted. A repeated key contributes each distinct value, in sorted order.
    The digest is base64-encoded and compared in constant time.
    """

    def __init__(self, auth_token: Optional[str]):
        self._auth_token = auth_token or ""

    @staticmethod
    def canonical_string(url: str, params: FormParams) -> str:
        pairs = params.items() if isinstance(params, Mapping) else params
        grouped: Dict[str, List[str]] = {}
        for key, value in pairs:
            grouped.setdefault(key, []).append(value)
        return url + "".join(
            f"{key}{value}" for key in sorted(grouped) for value in sorted(set(grouped[key]))
        )

    def expected_signature(self, url: str, params: FormParams) -> str:
        data = self.canonical_string(url, params)
        digest = hmac.new(self._auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(self, raw_body, signature_header, timestamp_header=None, url=""):
        if not self._auth_token or not signature_header or not url:
            return False
        try:
            params = parse_qsl(_as_bytes(raw_body).decode("utf-8"), keep_blank_values=True)
        except (UnicodeDecodeError, ValueError):
            return False
        expected = self.expected_signature(url, params)
        return hmac.compare_digest(expected.encode("ascii"), signature_header.strip().encode("utf-8", "replace"))


def load_ed25519_public_key(key_material: Optional[str]) -> Optional[Ed25519PublicKey]:
    """
    Load an Ed25519 public key from base64 (32 raw bytes) or PEM text.

    Returns None when the material is missing or malformed.
    """
    material = (key_material or "").strip()
    if not material:
        return None
    try:
        if material.startswith("-----BEGIN"):
            key = load_pem_public_key(material.encode("ascii"))
            return key if isinstance(key, Ed25519PublicKey) else None
        raw = base64.b64decode(material, validate=True)
        return Ed25519PublicKey.from_public_bytes(raw)
    except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm):
        return None


class Ed25519SignatureVerifier(SignatureVerifier):
    """
    Telnyx-style detached Ed25519 signature over ``"{timestamp}|{raw_body}"``.

    Timestamps outside ``tolerance_sec`` of now are rejected before any
    cryptographic work.
    """

    def __init__(
        self,
        public_key: Optional[str],
        tolerance_sec: int = DEFAULT_TOLERANCE_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self._public_key = load_ed25519_public_key(public_key)
        self._tolerance_sec = tolerance_sec
        self._clock = clock

    @property
    def has_key(self) -> bool:
        return self._public_key is not None

    def _timestamp_fresh(self, timestamp_header: str) -> bool:
        try:
            ts = int(timestamp_header.strip())
        except ValueError:
            return False
        return abs(self._clock() - ts) <= self._tolerance_sec

    def verify(self, raw_body, signature_header, timestamp_header, url=""):
        if self._public_key is None or not signature_header or not timestamp_header:
            return False
        if not self._timestamp_fresh(timestamp_header):
            return False
        try:
            signature = base64.b64decode(signature_header.strip(), validate=True)
        except (ValueError, binascii.Error):
            return False
        signed_payload = timestamp_header.strip().encode("utf-8") + b"|" + _as_bytes(raw_body)
        try:
            self._public_key.verify(signature, signed_payload)
        except (InvalidSignature, ValueError):
            return False
        return True


class AllowAllVerifier(SignatureVerifier):
    """Used only when signature_required is disabled in configuration."""

    def verify(self, raw_body, signature_header, timestamp_header, url=""):
        return True
