# src/locker/crypto/sig.py
from __future__ import annotations

"""Ed25519 request signing.

A request is signed over the compact, key-sorted JSON of
{action, caller, nonce, payload}. The caller field is the signer's raw
32-byte public key in hex. Keys and signatures are accepted as hex or
(url-safe) base64.
"""

import base64
import binascii
import hashlib
import json
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

Json = Dict[str, Any]

_SEED_LEN = 32


def decode_key_material(text: str) -> bytes:
    raw = str(text or "").strip()
    if not raw:
        raise ValueError("empty key material")
    try:
        return bytes.fromhex(raw)
    except ValueError:
        pass
    try:
        return base64.urlsafe_b64decode(raw.replace("+", "-").replace("/", "_") + "=" * (-len(raw) % 4))
    except (binascii.Error, ValueError) as e:
        raise ValueError("key material is neither hex nor base64") from e


def _request_fields(*, action: Any, caller: Any, nonce: Any, payload: Any) -> Json:
    return {
        "action": str(action),
        "caller": str(caller),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }


def canonical_request_message(*, action: str, caller: str, nonce: int, payload: Json) -> bytes:
    fields = _request_fields(action=action, caller=caller, nonce=nonce, payload=payload)
    return json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def request_id(*, action: str, caller: str, nonce: int, payload: Json) -> str:
    """Hex sha256 of the canonical request bytes. Stable across signature encodings."""
    return hashlib.sha256(canonical_request_message(action=action, caller=caller, nonce=nonce, payload=payload)).hexdigest()


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(decode_key_material(pubkey))
        key.verify(decode_key_material(sig), message)
    except (InvalidSignature, ValueError):
        return False
    return True


def load_private_key(privkey: str) -> Ed25519PrivateKey:
    """Private key from a 32-byte seed, or a 64-byte seed||pubkey blob."""
    material = decode_key_material(privkey)
    if len(material) == 2 * _SEED_LEN:
        material = material[:_SEED_LEN]
    if len(material) != _SEED_LEN:
        raise ValueError(f"ed25519 private key must be {_SEED_LEN} or {2 * _SEED_LEN} bytes, got {len(material)}")
    return Ed25519PrivateKey.from_private_bytes(material)


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    sig_b = load_private_key(privkey).sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in ("b64", "base64"):
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError(f"unsupported signature encoding: {encoding!r}")


def sign_request_dict(*, request: Json, privkey: str, encoding: str = "hex") -> Json:
    """Normalize a request envelope and attach its signature under "sig".

    Keys other than action/caller/nonce/payload/sig are passed through.
    """
    fields = _request_fields(
        action=request.get("action") or "",
        caller=request.get("caller") or "",
        nonce=request.get("nonce") or 0,
        payload=request.get("payload"),
    )
    out = {**request, **fields}
    out["sig"] = sign_ed25519(message=canonical_request_message(**fields), privkey=privkey, encoding=encoding)
    return out
