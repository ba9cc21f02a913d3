import os
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from blimp.src.errors import CertificateGenerationError

SUBJECT = "/CN=Blimp"


class OpenSSLCertificateGenerator:
    """Creates signing requests and PKCS#12 archives with the openssl binary"""

    def __init__(self, openssl: str = "openssl"):
        self.openssl = openssl

    def _run(self, args: List[str], env: Optional[dict] = None) -> None:
        try:
            result = subprocess.run(
                [self.openssl] + args,
                capture_output=True,
                text=True,
                env=env,
            )
        except FileNotFoundError as e:
            raise CertificateGenerationError(f"{self.openssl} not found") from e

        if result.returncode != 0:
            raise CertificateGenerationError(
                f"openssl {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}"
            )

    def generate_csr(self) -> Tuple[str, bytes]:
        """Return (CSR as PEM text, unencrypted RSA 2048 private key as PEM bytes)"""
        with tempfile.TemporaryDirectory() as tmp:
            csr_path = Path(tmp) / "request.csr"
            key_path = Path(tmp) / "private.key"
            self._run(
                [
                    "req",
                    "-new",
                    "-newkey",
                    "rsa:2048",
                    "-nodes",
                    "-out",
                    str(csr_path),
                    "-keyout",
                    str(key_path),
                    "-subj",
                    SUBJECT,
                ]
            )
            return csr_path.read_text(), key_path.read_bytes()

    def generate_p12(self, cert_content: bytes, private_key: bytes, passphrase: str) -> bytes:
        with tempfile.TemporaryDirectory() as tmp:
            der_path = Path(tmp) / "certificate.cer"
            pem_path = Path(tmp) / "certificate.pem"
            key_path = Path(tmp) / "private.key"
            p12_path = Path(tmp) / "certificate.p12"

            key_path.write_bytes(private_key)
            if cert_content.lstrip().startswith(b"-----BEGIN"):
                pem_path.write_bytes(cert_content)
            else:
                # App Store Connect returns DER
                der_path.write_bytes(cert_content)
                self._run(
                    ["x509", "-inform", "DER", "-in", str(der_path), "-out", str(pem_path)]
                )

            env = dict(os.environ, BLIMP_P12_PASSPHRASE=passphrase)
            self._run(
                [
                    "pkcs12",
                    "-export",
                    "-inkey",
                    str(key_path),
                    "-in",
                    str(pem_path),
                    "-out",
                    str(p12_path),
                    "-passout",
                    "env:BLIMP_P12_PASSPHRASE",
                ],
                env=env,
            )
            return p12_path.read_bytes()
