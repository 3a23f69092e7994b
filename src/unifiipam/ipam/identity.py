"""
Deterministic claim identity.

A claim name maps to a stable pseudo-MAC address. The same MAC registers the
provider's fixed-address assignment and recognises "the same claim coming
back for its address" during conflict checks, so it must never collide for
different names in practice: the first five bytes of a SHA-256 digest of the
name are used, behind a first octet of 0x02 (locally administered, unicast).
"""

import hashlib

# Locally administered (bit 1) and unicast (bit 0 clear)
LOCAL_UNICAST_OCTET = 0x02


def mac_for_claim(claim_name: str) -> str:
    """
    Derive the pseudo-MAC for a claim name.

    Args:
        claim_name: Name of the claim (the natural allocation key).

    Returns:
        Lower-case colon separated MAC, e.g. ``"02:3f:a1:09:c4:77"``.
    """
    digest = hashlib.sha256(claim_name.encode("utf-8")).digest()
    octets = [LOCAL_UNICAST_OCTET, *digest[:5]]
    return ":".join(f"{octet:02x}" for octet in octets)


def normalize_mac(mac: str) -> str:
    """Normalise a MAC to lower-case colon form for comparisons."""
    cleaned = mac.strip().lower().replace("-", ":")
    if ":" not in cleaned and len(cleaned) == 12:
        cleaned = ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))
    return cleaned


def same_mac(a: str | None, b: str | None) -> bool:
    """Compare two MACs ignoring case and separator style."""
    if not a or not b:
        return False
    return normalize_mac(a) == normalize_mac(b)
