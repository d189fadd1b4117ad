"""
证书链校验。
依次检查签发者名称、签名与有效期；失败时抛出 ChainError，reason 区分三种情况。
"""

from __future__ import annotations

from datetime import datetime, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from loguru import logger

from .errors import ChainError, ChainFailure, UnknownIssuerError


def as_utc(now: datetime | None) -> datetime:
    """返回带 UTC 时区的时刻；None 取当前时间，无时区的时刻按 UTC 解释。"""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def _check_signature(certificate: x509.Certificate, authority_certificate: x509.Certificate) -> None:
    public_key = authority_certificate.public_key()
    subject = certificate.subject.rfc4514_string()
    if not isinstance(public_key, (rsa.RSAPublicKey, ec.EllipticCurvePublicKey)):
        raise ChainError(
            ChainFailure.SIGNATURE_INVALID,
            f"不支持的签发者公钥类型: {type(public_key).__name__}",
            subject=subject,
        )
    try:
        if isinstance(public_key, rsa.RSAPublicKey):
            public_key.verify(
                certificate.signature,
                certificate.tbs_certificate_bytes,
                padding.PKCS1v15(),
                certificate.signature_hash_algorithm,
            )
        else:
            public_key.verify(
                certificate.signature,
                certificate.tbs_certificate_bytes,
                ec.ECDSA(certificate.signature_hash_algorithm),
            )
    except (InvalidSignature, ValueError, TypeError) as e:
        raise ChainError(ChainFailure.SIGNATURE_INVALID, "证书签名校验失败", subject=subject) from e


def verify(
    certificate: x509.Certificate,
    authority_certificate: x509.Certificate,
    now: datetime | None = None,
) -> None:
    """
    校验证书由指定 CA 签发且当前有效。
    :param certificate: 待校验的证书。
    :param authority_certificate: 受信任的 CA 证书。
    :param now: 校验时刻，默认当前 UTC 时间。
    :raises ChainError: reason 为 NAME_MISMATCH / SIGNATURE_INVALID / EXPIRED。
    """
    now = as_utc(now)
    subject = certificate.subject.rfc4514_string()

    if certificate.issuer != authority_certificate.subject:
        raise ChainError(
            ChainFailure.NAME_MISMATCH,
            f"签发者 {certificate.issuer.rfc4514_string()} 与 CA 主体 "
            f"{authority_certificate.subject.rfc4514_string()} 不一致",
            subject=subject,
        )

    _check_signature(certificate, authority_certificate)

    if now < certificate.not_valid_before_utc or now > certificate.not_valid_after_utc:
        raise ChainError(
            ChainFailure.EXPIRED,
            f"证书不在有效期内 ({certificate.not_valid_before_utc.isoformat()} ~ "
            f"{certificate.not_valid_after_utc.isoformat()})",
            subject=subject,
        )
    logger.debug(f"证书链校验通过: {subject}")


def verify_authority(certificate: x509.Certificate, now: datetime | None = None) -> None:
    """
    校验自签 CA 证书：主体等于签发者，且签名可由自身公钥验证。
    :raises ChainError: 自签名校验失败或已过期。
    :raises UnknownIssuerError: basicConstraints 不是 CA。
    """
    verify(certificate, certificate, now)
    try:
        is_ca = certificate.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        is_ca = False
    if not is_ca:
        raise UnknownIssuerError(
            "自签证书不是 CA 证书 (basicConstraints CA=false)，不能作为信任锚",
            role="authority",
            subject=certificate.subject.rfc4514_string(),
        )


def outlives_authority(certificate: x509.Certificate, authority_certificate: x509.Certificate) -> bool:
    """
    判断证书是否晚于 CA 到期；CA 应当比其签发的证书活得更久。
    返回 True 时记录一条警告。
    """
    if certificate.not_valid_after_utc > authority_certificate.not_valid_after_utc:
        logger.warning(
            f"证书 {certificate.subject.rfc4514_string()} 的到期时间晚于 CA，"
            f"CA 到期后将出现无信任锚的时间窗口"
        )
        return True
    return False
