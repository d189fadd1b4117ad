"""
证书签发核心逻辑。
公开接口：
- issue: 按角色策略签发一张证书（CA 自签 / 终端实体由 CA 签发）
- IssuingAuthority: 持有 CA 密钥对、自签证书与序列号分配器的签发机构
内部方法：
- _authority_extensions / _end_entity_extensions: 角色对应的扩展集合
- _check_issuer: 校验签发者证书与密钥对、有效期
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Dict

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from loguru import logger

from . import verifier
from .csr import build_request, common_name_of
from .errors import (
    ExpiredIssuerError,
    ExternalToolError,
    InvalidNameError,
    InvalidRequestError,
    UnknownIssuerError,
    ValidityWindowError,
    WeakKeyError,
)
from .keys import minimum_key_bits
from .schemas import DistinguishedName, KeyPair, Role
from .serial import SerialAllocator

DEFAULT_AUTHORITY_VALIDITY_DAYS = 3650
DEFAULT_END_ENTITY_VALIDITY_DAYS = 365
# 回拨 notBefore，容忍依赖方的时钟偏差
CLOCK_SKEW = timedelta(minutes=1)


def _spki(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def same_public_key(left, right) -> bool:
    """按 SubjectPublicKeyInfo 编码比较两个公钥。"""
    return _spki(left) == _spki(right)


def _key_usage(*, cert_sign: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=not cert_sign,
        content_commitment=False,
        key_encipherment=not cert_sign,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=cert_sign,
        crl_sign=cert_sign,
        encipher_only=False,
        decipher_only=False,
    )


def _authority_extensions(builder: x509.CertificateBuilder, public_key) -> x509.CertificateBuilder:
    return (
        builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(cert_sign=True), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key),
            critical=False,
        )
    )


def _end_entity_extensions(
    builder: x509.CertificateBuilder,
    public_key,
    issuer_certificate: x509.Certificate,
) -> x509.CertificateBuilder:
    try:
        issuer_ski = issuer_certificate.extensions.get_extension_for_class(
            x509.SubjectKeyIdentifier
        ).value
        aki = x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(issuer_ski)
    except x509.ExtensionNotFound:
        aki = x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_certificate.public_key())

    return (
        builder.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(cert_sign=False), critical=True)
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        .add_extension(aki, critical=False)
    )


def _check_request(request: x509.CertificateSigningRequest, role: Role, subject: str) -> None:
    if common_name_of(request.subject) is None:
        raise InvalidNameError("签名请求缺少 Common Name", role=role.value, subject=subject)
    if not request.is_signature_valid:
        raise InvalidRequestError("签名请求的自签名无效", role=role.value, subject=subject)

    try:
        public_key = request.public_key()
    except UnsupportedAlgorithm as e:
        raise InvalidRequestError(f"不支持的公钥类型: {e}", role=role.value, subject=subject)
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise InvalidRequestError("仅支持 RSA 公钥", role=role.value, subject=subject)
    minimum = minimum_key_bits(role)
    if public_key.key_size < minimum:
        raise WeakKeyError(
            f"公钥长度 {public_key.key_size} 低于最小要求 {minimum}",
            role=role.value,
            subject=subject,
        )


def _check_issuer(
    issuer_certificate: x509.Certificate,
    issuer_key_pair: KeyPair,
    now: datetime,
    role: Role,
    subject: str,
) -> None:
    if not same_public_key(issuer_certificate.public_key(), issuer_key_pair.public_key):
        raise UnknownIssuerError(
            f"签发者证书 {issuer_certificate.subject.rfc4514_string()} 与提供的密钥对不匹配",
            role=role.value,
            subject=subject,
        )
    if now < issuer_certificate.not_valid_before_utc or now > issuer_certificate.not_valid_after_utc:
        raise ExpiredIssuerError(
            f"签发者证书不在有效期内 (notAfter={issuer_certificate.not_valid_after_utc.isoformat()})",
            role=role.value,
            subject=subject,
        )


def issue(
    request: x509.CertificateSigningRequest,
    issuer_key_pair: KeyPair,
    issuer_certificate: x509.Certificate | None,
    role: Role,
    validity_days: int,
    serials: SerialAllocator,
    now: datetime | None = None,
) -> x509.Certificate:
    """
    按角色策略签发证书。
    :param request: 待签发的签名请求。
    :param issuer_key_pair: 签发者密钥对（CA 自签时即请求者自身的密钥对）。
    :param issuer_certificate: 签发者证书；CA 自签时为 None。
    :param role: 证书角色。
    :param validity_days: 有效天数。
    :param serials: 签发者的序列号分配器。
    :param now: 签发时刻，默认当前 UTC 时间。
    :return: 签名后的证书。
    :raises InvalidNameError / InvalidRequestError / WeakKeyError: 请求不合规。
    :raises UnknownIssuerError / ExpiredIssuerError: 签发者不可用。
    :raises ValidityWindowError: 终端证书有效期超出 CA 有效期。
    :raises ExternalToolError: cryptography 签名失败。
    """
    now = verifier.as_utc(now)
    subject = request.subject.rfc4514_string()
    if validity_days <= 0:
        raise ValueError(f"有效天数必须为正数: {validity_days}")

    _check_request(request, role, subject)
    public_key = request.public_key()
    not_before = now - CLOCK_SKEW
    not_after = now + timedelta(days=validity_days)

    if role == Role.AUTHORITY:
        if issuer_certificate is not None:
            raise ValueError("CA 证书必须自签，不支持签发中间 CA")
        if not same_public_key(public_key, issuer_key_pair.public_key):
            raise UnknownIssuerError(
                "自签请求的公钥与 CA 密钥对不匹配", role=role.value, subject=subject
            )
        issuer_name = request.subject
    else:
        if issuer_certificate is None:
            raise UnknownIssuerError("终端证书必须由 CA 签发", role=role.value, subject=subject)
        _check_issuer(issuer_certificate, issuer_key_pair, now, role, subject)
        if not_after > issuer_certificate.not_valid_after_utc:
            raise ValidityWindowError(
                f"证书到期时间 {not_after.isoformat()} 晚于 CA 到期时间 "
                f"{issuer_certificate.not_valid_after_utc.isoformat()}",
                role=role.value,
                subject=subject,
            )
        issuer_name = issuer_certificate.subject

    builder = (
        x509.CertificateBuilder()
        .subject_name(request.subject)
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(serials.allocate())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    if role == Role.AUTHORITY:
        builder = _authority_extensions(builder, public_key)
    else:
        builder = _end_entity_extensions(builder, public_key, issuer_certificate)

    try:
        certificate = builder.sign(private_key=issuer_key_pair.private_key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as e:
        logger.error(f"证书签名失败: {e}")
        raise ExternalToolError(f"证书签名失败: {e}", role=role.value, subject=subject) from e

    logger.info(
        f"已签发 {role.value} 证书: subject={subject}, serial={certificate.serial_number:X}, "
        f"notAfter={certificate.not_valid_after_utc.isoformat()}"
    )
    return certificate


class IssuingAuthority:
    """
    签发机构（CA）。
    持有 CA 密钥对、自签证书与序列号分配器；签发过程是线程安全的，
    并且在机构的生命周期内拒绝重复的终端实体 CN。
    """

    def __init__(self, key_pair: KeyPair, certificate: x509.Certificate, serials: SerialAllocator):
        if not same_public_key(certificate.public_key(), key_pair.public_key):
            raise UnknownIssuerError(
                "CA 证书与 CA 私钥不匹配",
                role=Role.AUTHORITY.value,
                subject=certificate.subject.rfc4514_string(),
            )
        self._key_pair = key_pair
        self._certificate = certificate
        self._serials = serials
        self._issued: Dict[str, int | None] = {}
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        name: DistinguishedName,
        key_pair: KeyPair,
        serials: SerialAllocator,
        validity_days: int = DEFAULT_AUTHORITY_VALIDITY_DAYS,
        now: datetime | None = None,
    ) -> "IssuingAuthority":
        """生成自签 CA 证书并返回签发机构。"""
        request = build_request(key_pair, name)
        certificate = issue(request, key_pair, None, Role.AUTHORITY, validity_days, serials, now)
        return cls(key_pair, certificate, serials)

    @property
    def certificate(self) -> x509.Certificate:
        return self._certificate

    @property
    def serials(self) -> SerialAllocator:
        return self._serials

    @property
    def name(self) -> DistinguishedName:
        return DistinguishedName.from_x509(self._certificate.subject)

    def issued_common_names(self) -> Dict[str, int]:
        """返回本机构已签发的 CN 与序列号。"""
        with self._lock:
            return {cn: serial for cn, serial in self._issued.items() if serial is not None}

    def issue(
        self,
        request: x509.CertificateSigningRequest,
        validity_days: int = DEFAULT_END_ENTITY_VALIDITY_DAYS,
        now: datetime | None = None,
    ) -> x509.Certificate:
        """
        为终端实体签发证书。
        :raises InvalidNameError: CN 缺失或已签发过。
        """
        subject = request.subject.rfc4514_string()
        common_name = common_name_of(request.subject)
        if common_name is None:
            raise InvalidNameError("签名请求缺少 Common Name", role=Role.END_ENTITY.value, subject=subject)

        with self._lock:
            if common_name in self._issued:
                raise InvalidNameError(
                    f"CN '{common_name}' 已由本 CA 签发过",
                    role=Role.END_ENTITY.value,
                    subject=subject,
                )
            self._issued[common_name] = None

        try:
            certificate = issue(
                request,
                self._key_pair,
                self._certificate,
                Role.END_ENTITY,
                validity_days,
                self._serials,
                now,
            )
        except Exception:
            with self._lock:
                self._issued.pop(common_name, None)
            raise

        with self._lock:
            self._issued[common_name] = certificate.serial_number
        return certificate

    def verify(self, certificate: x509.Certificate, now: datetime | None = None) -> None:
        """校验证书由本机构签发且在有效期内。"""
        verifier.verify(certificate, self._certificate, now)
