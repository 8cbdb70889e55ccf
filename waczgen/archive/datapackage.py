"""datapackage.json descriptor and its signed digest."""

from __future__ import annotations

import base64
from datetime import datetime
import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..constants import (
    CDX_FILENAME,
    DATAPACKAGE_FILENAME,
    DEFAULT_SOFTWARE,
    DIGEST_FILENAME,
    JSON_INDENT,
    PAGES_FILENAME,
    WACZ_VERSION,
    WARC_FILENAME,
)
from ..errors import ArchiveBuildError, SigningError
from ..types import JSONDict, format_timestamp, utc_now

LOGGER = logging.getLogger(__name__)

RESOURCE_PATHS: tuple[tuple[str, str], ...] = (
    (PAGES_FILENAME, f"pages/{PAGES_FILENAME}"),
    (WARC_FILENAME, f"archive/{WARC_FILENAME}"),
    (CDX_FILENAME, f"indexes/{CDX_FILENAME}"),
)


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Return `sha256:<hex>` of a file's bytes."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return "sha256:" + digest.hexdigest()


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=JSON_INDENT) + "\n",
        encoding="utf-8",
    )


class DatapackageBuilder:
    """Describe the archive's resources and sign the description."""

    def __init__(self, *, software: str = DEFAULT_SOFTWARE) -> None:
        self.software = software

    def build_descriptor(
        self,
        root: str | Path,
        *,
        title: str,
        created: datetime,
        modified: datetime | None = None,
    ) -> JSONDict:
        """Hash and size the three resources found under `root`."""

        root_path = Path(root)
        resources: list[JSONDict] = []
        try:
            for name, relative in RESOURCE_PATHS:
                resource_path = root_path / relative
                resources.append(
                    {
                        "name": name,
                        "path": relative,
                        "hash": sha256_file(resource_path),
                        "bytes": resource_path.stat().st_size,
                    }
                )
        except OSError as exc:
            raise ArchiveBuildError(f"Cannot describe archive resource: {exc}") from exc

        return {
            "profile": "data-package",
            "resources": resources,
            "wacz_version": WACZ_VERSION,
            "software": self.software,
            "created": format_timestamp(created),
            "title": title,
            "modified": format_timestamp(modified or utc_now()),
        }

    def write_descriptor(
        self,
        root: str | Path,
        *,
        title: str,
        created: datetime,
        modified: datetime | None = None,
    ) -> JSONDict:
        descriptor = self.build_descriptor(root, title=title, created=created, modified=modified)
        path = Path(root) / DATAPACKAGE_FILENAME
        try:
            _write_json(path, descriptor)
        except OSError as exc:
            raise ArchiveBuildError(f"Failed to write {path}: {exc}") from exc
        return descriptor

    def build_digest(self, descriptor_path: str | Path) -> JSONDict:
        """Sign `sha256:<hex>` of the descriptor with a fresh P-384 key."""

        path = Path(descriptor_path)
        try:
            descriptor_hash = sha256_file(path)
        except OSError as exc:
            raise ArchiveBuildError(f"Cannot hash {path}: {exc}") from exc

        try:
            private_key = ec.generate_private_key(ec.SECP384R1())
            signature = private_key.sign(
                descriptor_hash.encode("utf-8"),
                ec.ECDSA(hashes.SHA256()),
            )
            public_key = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        except (UnsupportedAlgorithm, ValueError, TypeError) as exc:
            raise SigningError(f"Failed to sign package digest: {exc}") from exc

        return {
            "path": DATAPACKAGE_FILENAME,
            "hash": descriptor_hash,
            "signedData": {
                "hash": descriptor_hash,
                "signature": base64.b64encode(signature).decode("ascii"),
                "publicKey": base64.b64encode(public_key).decode("ascii"),
                "created": format_timestamp(utc_now()),
                "software": self.software,
            },
        }

    def write_digest(self, root: str | Path) -> JSONDict:
        root_path = Path(root)
        digest = self.build_digest(root_path / DATAPACKAGE_FILENAME)
        path = root_path / DIGEST_FILENAME
        try:
            _write_json(path, digest)
        except OSError as exc:
            raise ArchiveBuildError(f"Failed to write {path}: {exc}") from exc
        return digest


def verify_digest(digest: Mapping[str, Any]) -> bool:
    """Check a digest's ECDSA signature against its embedded public key."""

    signed = digest.get("signedData") or {}
    try:
        public_key = serialization.load_der_public_key(base64.b64decode(signed["publicKey"]))
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            return False
        public_key.verify(
            base64.b64decode(signed["signature"]),
            str(signed["hash"]).encode("utf-8"),
            ec.ECDSA(hashes.SHA256()),
        )
    except (KeyError, ValueError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


__all__ = [
    "DatapackageBuilder",
    "RESOURCE_PATHS",
    "sha256_file",
    "verify_digest",
]
