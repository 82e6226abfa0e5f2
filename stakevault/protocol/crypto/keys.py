from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError, BadDigestError, MalformedPointError # type: ignore
from ecdsa.util import sigencode_string, sigdecode_string # type: ignore

def generate_private_key() -> bytes:
    """Returns a fresh 32-byte secp256k1 private key."""
    return SigningKey.generate(curve=SECP256k1).to_string()

def _signing_key(priv_bytes: bytes) -> SigningKey:
    if len(priv_bytes) != 32:
        raise ValueError("Private key must be 32 bytes")
    return SigningKey.from_string(priv_bytes, curve=SECP256k1)

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Compressed 33-byte public key."""
    return _signing_key(priv_bytes).get_verifying_key().to_string("compressed")

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """Signs a 32-byte digest. Returns the 64-byte r||s signature."""
    return _signing_key(priv_bytes).sign_digest_deterministic(message_hash, sigencode=sigencode_string)

def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(signature, message_hash, sigdecode=sigdecode_string)
    except (BadSignatureError, BadDigestError, MalformedPointError, ValueError):
        return False
