"""
Signing Key Generator

Creates an Ed25519 keypair for the receipt issuer and writes:

    <name>_key.pem        private key, PKCS8 (for PEAC_SIGNING_KEY_PATH)
    <name>.jwk.json       private JWK (for PEAC_SIGNING_JWK)
    <name>.public.json    public JWK (serve at /public-keys/<kid>.json)

Usage:
    peac-keygen --kid peac-key-2026 --out-dir ./keys
"""
import argparse
import json
import os

from cryptography.hazmat.primitives import serialization

from .services.key_manager import KeyManager


def generate_key_files(kid: str, out_dir: str = ".", name: str = "peac") -> dict:
    """
    Generate a keypair and write it to out_dir.

    Returns:
        Mapping of file role -> written path
    """
    os.makedirs(out_dir, exist_ok=True)
    key_manager = KeyManager.generate(kid)

    private_pem = key_manager.private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    paths = {
        "private_pem": os.path.join(out_dir, f"{name}_key.pem"),
        "private_jwk": os.path.join(out_dir, f"{name}.jwk.json"),
        "public_jwk": os.path.join(out_dir, f"{name}.public.json"),
    }

    with open(paths["private_pem"], "wb") as f:
        f.write(private_pem)
    # private key files readable by owner only
    os.chmod(paths["private_pem"], 0o600)

    with open(paths["private_jwk"], "w") as f:
        json.dump(key_manager.private_jwk(), f)
    os.chmod(paths["private_jwk"], 0o600)

    with open(paths["public_jwk"], "w") as f:
        json.dump(key_manager.public_jwk(), f, indent=4)

    return paths


def main(argv=None):
    parser = argparse.ArgumentParser(description="Generate a PEAC receipt signing key (Ed25519)")
    parser.add_argument("--kid", default="peac-demo-key-1", help="Key id published with the public key")
    parser.add_argument("--out-dir", default=".", help="Directory to write key files to")
    parser.add_argument("--name", default="peac", help="File name prefix")
    args = parser.parse_args(argv)

    print(f"Generating Ed25519 key kid={args.kid}...")
    paths = generate_key_files(args.kid, args.out_dir, args.name)
    for role, path in paths.items():
        print(f"  {role}: {path}")
    print(f"Set PEAC_SIGNING_KEY_PATH={paths['private_pem']} and PEAC_KID={args.kid}")


if __name__ == "__main__":
    main()
