"""
证书签名请求（CSR）的构造与解析。
"""

from __future__ import annotations

import base64
import binascii

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import NameOID
from loguru import logger

from .errors import ExternalToolError, InvalidNameError, InvalidRequestError
from .schemas import DistinguishedName, KeyPair


def common_name_of(name: x509.Name) -> str | None:
    """返回名称中的 CN，不存在时返回 None。"""
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = str(attrs[0].value).strip()
    return value or None


def build_request(key_pair: KeyPair, name: DistinguishedName) -> x509.CertificateSigningRequest:
    """
    将公钥与可分辨名称绑定为签名请求。
    CSR 由请求者自己的私钥签名，仅证明持有私钥，尚未被任何 CA 信任。
    :raises InvalidNameError: 名称缺少 CN。
    """
    if not name.common_name or not name.common_name.strip():
        raise InvalidNameError("可分辨名称缺少 Common Name", subject=name.to_subject_string())

    try:
        csr = (
            x509.CertificateSigningRequestBuilder()
            .subject_name(name.to_x509())
            .sign(key_pair.private_key, hashes.SHA256())
        )
    except (ValueError, TypeError) as e:
        logger.error(f"构造 CSR 失败: {e}")
        raise ExternalToolError(f"CSR 签名失败: {e}", subject=name.to_subject_string()) from e
    return csr


def load_request(csr_input: str) -> x509.CertificateSigningRequest:
    """
    从 PEM 文本或 Base64 编码的 PEM 中解析 CSR。
    :raises InvalidRequestError: 无法解析。
    """
    text = csr_input.strip()
    if "-----BEGIN CERTIFICATE REQUEST-----" in text:
        data = text.encode("utf-8")
    else:
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidRequestError("无效的 CSR 格式")
    try:
        return x509.load_pem_x509_csr(data)
    except ValueError as e:
        logger.warning(f"解析 CSR 失败: {e}")
        raise InvalidRequestError("无效的 CSR 格式")
