"""
Keybox Core Package
===================
The non-UI core of the Keybox credential vault.

Provides:
- Base32 codec and HOTP/TOTP generation (RFC 4226 / 6238)
- AES-GCM encrypted record stores with legacy-plaintext upgrade
- Trash ledger (soft delete / undo) and activity feed
- Merge-based cloud sync over a pluggable blob transport
"""

from .vault import Keybox

__all__ = ["Keybox"]
