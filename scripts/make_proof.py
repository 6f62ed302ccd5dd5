"""Compute the identity proof a client sends with credential requests.

Usage:
  KR_PSK="your-psk" python scripts/make_proof.py --identity device-123

Optionally decrypt a credential token returned by the service:
  python scripts/make_proof.py --identity device-123 --open "<iv hex>:<ciphertext hex>"
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.config import load_env_if_present  # noqa: E402
from app.security.auth import IdentityAuthenticator  # noqa: E402
from app.security.cipher import CredentialCipher  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--identity", required=True)
    ap.add_argument("--open", dest="token", default=None, help="Decrypt a returned encrypted_credential")
    args = ap.parse_args()

    load_env_if_present()
    psk = os.environ.get("KR_PSK")
    if not psk:
        raise SystemExit("Missing KR_PSK in environment.")

    print(IdentityAuthenticator(psk).compute_proof(args.identity))
    if args.token:
        print(CredentialCipher(psk).open(args.token))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
