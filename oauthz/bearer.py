"""
Bearer credentials: an eACL table, optional subject and expiration epoch, signed with
the service's P-256 key (ECDSA with RFC 6979 deterministic nonces over SHA-256).

Encoded form is standard base64 of a JSON envelope:
    {"body": {"version", "policy", "subject"?, "expiration"},
     "signature": {"key", "sign", "scheme"}}
The signature covers the canonical JSON of "body", so any change to record order,
filter values, subject or expiration invalidates it.
"""
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from oauthz.eacl import Table
from oauthz.errors import ConfigError, CredentialDecodeError, SigningFailed

logger = logging.getLogger(__name__)

TOKEN_VERSION = 1
SIGNATURE_SCHEME = "ECDSA_RFC6979_SHA256"
_CURVE = ec.SECP256R1


def _canonical_json(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def public_key_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Compressed SEC1 point (33 bytes)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    )


@dataclass(frozen=True)
class BearerToken:
    policy: Table
    expiration: int
    subject: str | None = None
    public_key: bytes = b""
    signature: bytes = b""
    version: int = TOKEN_VERSION

    def body(self) -> dict:
        body = {
            "version": self.version,
            "policy": self.policy.to_dict(),
            "expiration": self.expiration,
        }
        if self.subject is not None:
            body["subject"] = self.subject
        return body

    def signed_data(self) -> bytes:
        return _canonical_json(self.body())

    def to_dict(self) -> dict:
        return {
            "body": self.body(),
            "signature": {
                "key": base64.b64encode(self.public_key).decode("ascii"),
                "sign": base64.b64encode(self.signature).decode("ascii"),
                "scheme": SIGNATURE_SCHEME,
            },
        }

    def encode(self) -> str:
        return base64.b64encode(_canonical_json(self.to_dict())).decode("ascii")

    def verify(self, expected_key: ec.EllipticCurvePublicKey | None = None) -> bool:
        """
        Check the signature against the embedded key. When expected_key is given the
        embedded key must also be that key.
        """
        if expected_key is not None and public_key_bytes(expected_key) != self.public_key:
            return False
        try:
            key = ec.EllipticCurvePublicKey.from_encoded_point(_CURVE(), self.public_key)
            key.verify(self.signature, self.signed_data(), ec.ECDSA(hashes.SHA256()))
        except (InvalidSignature, ValueError):
            return False
        return True


def mint(policy: Table, subject: str | None, expiration: int, signing_key) -> str:
    """
    Sign policy into a bearer credential valid until the expiration epoch.
    subject may be None for credentials usable by anyone holding them.
    Raises SigningFailed if signing_key is not a usable P-256 private key.
    """
    if not isinstance(signing_key, ec.EllipticCurvePrivateKey):
        raise SigningFailed(f"signing key must be an EC private key, got {type(signing_key).__name__}")
    if not isinstance(signing_key.curve, _CURVE):
        raise SigningFailed(f"signing key must be on {_CURVE.name}, got {signing_key.curve.name}")

    unsigned = BearerToken(policy=policy, expiration=expiration, subject=subject)
    try:
        signature = signing_key.sign(
            unsigned.signed_data(),
            ec.ECDSA(hashes.SHA256(), deterministic_signing=True),
        )
    except (UnsupportedAlgorithm, ValueError, TypeError) as e:
        raise SigningFailed(f"signing failed: {e}") from e

    token = BearerToken(
        policy=policy,
        expiration=expiration,
        subject=subject,
        public_key=public_key_bytes(signing_key.public_key()),
        signature=signature,
    )
    return token.encode()


def decode_bearer(encoded: str) -> BearerToken:
    """Parse an encoded credential. Does not verify it; call .verify() for that."""
    try:
        data = json.loads(base64.b64decode(encoded, validate=True))
        body = data["body"]
        sig = data["signature"]
        if sig.get("scheme") != SIGNATURE_SCHEME:
            raise CredentialDecodeError(f"unsupported signature scheme: {sig.get('scheme')!r}")
        return BearerToken(
            policy=Table.from_dict(body["policy"]),
            expiration=int(body["expiration"]),
            subject=body.get("subject"),
            public_key=base64.b64decode(sig["key"], validate=True),
            signature=base64.b64decode(sig["sign"], validate=True),
            version=int(body["version"]),
        )
    except CredentialDecodeError:
        raise
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise CredentialDecodeError(f"malformed bearer credential: {e}") from e


def generate_signing_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(_CURVE())


def _serialize_private(key, passphrase: str | None) -> bytes:
    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def load_signing_key(path: str, passphrase: str | None = None, generate: bool = False):
    """
    Load the service's EC private key from a PEM file.
    If the file is missing and generate is set, create a new P-256 key and save it.
    An existing file that cannot be loaded is a ConfigError; it is never overwritten.
    """
    p = Path(path)
    if not p.exists():
        if not generate:
            raise ConfigError(f"signing key {path} does not exist")
        key = generate_signing_key()
        try:
            p.write_bytes(_serialize_private(key, passphrase))
            p.chmod(0o600)
        except OSError as e:
            raise ConfigError(f"could not save signing key to {path}: {e}") from e
        logger.info("Generated and saved signing key to %s", path)
        return key

    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key = serialization.load_pem_private_key(p.read_bytes(), password=password)
    except (OSError, ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigError(f"failed to load signing key from {path}: {e}") from e
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(key.curve, _CURVE):
        raise ConfigError(f"signing key in {path} is not a {_CURVE.name} EC key")
    return key
