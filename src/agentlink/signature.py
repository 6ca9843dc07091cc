"""Signer certificate extraction from Authenticode-signed files."""

import logging
import struct
from pathlib import Path
from typing import List, Optional, Union

from asn1crypto import cms as asn1_cms
from asn1crypto import x509 as asn1_x509

from agentlink.certificate import Certificate

logger = logging.getLogger(__name__)

PE_SIGNATURE = b"PE\0\0"
PE32_MAGIC = 0x10B
PE32_PLUS_MAGIC = 0x20B
SECURITY_DIRECTORY_INDEX = 4
WIN_CERT_TYPE_PKCS_SIGNED_DATA = 0x0002


def _security_directory(data: bytes) -> Optional[tuple]:
    """Return (offset, size) of the PE attribute certificate table, or None."""
    if len(data) < 0x40 or data[:2] != b"MZ":
        return None

    (pe_offset,) = struct.unpack_from("<I", data, 0x3C)
    if data[pe_offset:pe_offset + 4] != PE_SIGNATURE:
        return None

    optional_header = pe_offset + 4 + 20
    (magic,) = struct.unpack_from("<H", data, optional_header)
    if magic == PE32_MAGIC:
        directories = optional_header + 96
    elif magic == PE32_PLUS_MAGIC:
        directories = optional_header + 112
    else:
        return None

    (count,) = struct.unpack_from("<I", data, directories - 4)
    if count <= SECURITY_DIRECTORY_INDEX:
        return None

    # The security directory holds a file offset, not an RVA.
    offset, size = struct.unpack_from("<II", data, directories + 8 * SECURITY_DIRECTORY_INDEX)
    if offset == 0 or size == 0 or offset + size > len(data):
        return None
    return offset, size


def _signed_data_blobs(data: bytes, offset: int, size: int) -> List[bytes]:
    blobs = []
    end = offset + size
    while offset + 8 <= end:
        length, _revision, cert_type = struct.unpack_from("<IHH", data, offset)
        if length < 8:
            break
        if cert_type == WIN_CERT_TYPE_PKCS_SIGNED_DATA:
            blobs.append(data[offset + 8:offset + length])
        # Entries are 8-byte aligned
        offset += (length + 7) & ~7
    return blobs


def _find_signer_cert(
    signed_data: asn1_cms.SignedData, signer_info: asn1_cms.SignerInfo
) -> Optional[asn1_x509.Certificate]:
    """Return the bag certificate named by the signer identifier, or None."""
    certs = signed_data["certificates"]
    if certs.native is None:
        return None

    sid = signer_info["sid"]
    for cert_choice in certs:
        if cert_choice.name != "certificate":
            continue
        cert = cert_choice.chosen
        if sid.name == "issuer_and_serial_number":
            if cert.serial_number == sid.chosen["serial_number"].native and cert.issuer == sid.chosen["issuer"]:
                return cert
        elif sid.name == "subject_key_identifier":
            if cert.key_identifier is not None and cert.key_identifier == sid.chosen.native:
                return cert
    return None


def _signer_certificate(blob: bytes) -> Optional[Certificate]:
    content_info = asn1_cms.ContentInfo.load(blob)
    if content_info["content_type"].native != "signed_data":
        return None

    # Authenticode has one SignerInfo; timestamp signers live in its unsigned attributes.
    signed_data = content_info["content"]
    signer_infos = signed_data["signer_infos"]
    if len(signer_infos) == 0:
        return None

    signer = _find_signer_cert(signed_data, signer_infos[0])
    if signer is None:
        return None
    return Certificate.from_der(signer.dump())


def extract_signature(file_path: Union[str, Path]) -> Optional[Certificate]:
    """
    Extract the certificate used to digitally sign a file.

    Args:
        file_path: Path of the signed file

    Returns:
        The signer certificate, or None when the file is unsigned or unreadable
    """
    if not file_path:
        raise ValueError("File path must be provided!")

    try:
        data = Path(file_path).read_bytes()
        directory = _security_directory(data)
        if directory is None:
            logger.debug(f"{file_path} carries no Authenticode signature")
            return None

        for blob in _signed_data_blobs(data, *directory):
            signer = _signer_certificate(blob)
            if signer is not None:
                logger.debug(f"Signer of {file_path}: {signer.subject}")
                return signer

        return None
    except Exception as e:
        logger.debug(f"Could not extract signature from {file_path}: {e}")
        return None
