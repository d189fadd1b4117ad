"""
证书签发服务的业务逻辑层。
此模块把密钥生成、CSR、签发、校验与文件存储串成完整流程，供命令行入口与路由层调用。
公开接口：
- bootstrap_pki: 生成 CA、客户端证书与应用证书以及辅助文件（遇到第一个错误即中止）
- get_authority_service / issue_certificate_service / verify_certificate_service: HTTP 接口的业务逻辑
- reset_authority_cache: 丢弃缓存的 CA（测试与配置变更时使用）
"""

from __future__ import annotations

import base64
import binascii
import re
import threading
from typing import Dict, List

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from loguru import logger

from src.trust_anchor.config import Config, config

from . import artifacts, verifier
from .csr import build_request, common_name_of, load_request
from .errors import ChainError
from .issuer import IssuingAuthority
from .keys import generate_key_pair
from .schemas import (
    AuthorityResponse,
    BootstrapResult,
    CertificateResponse,
    CertificateSummary,
    IssueCertificateRequest,
    Role,
    VerifyCertificateRequest,
    VerifyCertificateResponse,
)
from .store import PKIStore

AWS_COMMANDS_FILE = "aws-commands.txt"
CERTIFICATE_BUNDLE_FILE = "certificate-bundle.txt"

_AUTHORITY: IssuingAuthority | None = None
_LOCK = threading.Lock()


def _issue_end_entity(
    store: PKIStore,
    authority: IssuingAuthority,
    file_stem: str,
    settings: Config,
) -> x509.Certificate:
    """为一个终端实体生成密钥、CSR 并由 CA 签发证书，结果写入存储目录。"""
    name = settings.end_entity_names()[file_stem]
    paths = store.entity_paths(file_stem)

    key_pair = generate_key_pair(settings.end_entity_key_bits, role=Role.END_ENTITY)
    request = build_request(key_pair, name)
    certificate = authority.issue(request, settings.end_entity_validity_days)

    store.write_private_key(paths["key"], key_pair)
    if settings.keep_requests:
        store.write_request(paths["csr"], request)
    store.write_certificate(paths["cert"], certificate)
    del key_pair

    logger.info(f"证书已创建: {paths['cert']}")
    logger.info(f"私钥已创建: {paths['key']}")
    return certificate


def _log_summary(title: str, summary: CertificateSummary) -> None:
    logger.info(f"--- {title} ---")
    logger.info(f"subject={summary.subject}")
    logger.info(f"issuer={summary.issuer}")
    logger.info(f"notBefore={summary.not_before.isoformat()}")
    logger.info(f"notAfter={summary.not_after.isoformat()}")


def _log_usage_guide(store: PKIStore, entity_files: List[str]) -> None:
    logger.info(f"文件已生成于: {store.base_dir.resolve()}")
    logger.info("ca.pem: CA 证书，可公开，上传到 IAM Roles Anywhere Trust Anchor")
    logger.info("ca.key: CA 私钥，泄露即整个 PKI 失效，只能保存在安全存储中")
    for stem in entity_files:
        logger.info(f"{stem}.pem / {stem}.key: 终端证书与私钥，私钥权限保持 600，勿提交到代码仓库")
    logger.info(f"{AWS_COMMANDS_FILE}: AWS CLI 命令模板")
    logger.info(f"{CERTIFICATE_BUNDLE_FILE}: 全部证书的合集，便于查看")
    logger.info("ca.srl: CA 序列号文件，需与 CA 一起保存")


def bootstrap_pki(settings: Config | None = None) -> BootstrapResult:
    """
    生成完整的 PKI：CA -> 客户端证书 -> 应用证书 -> 链校验 -> 辅助文件 -> zip 归档。
    任何一步失败都会直接抛出异常，不会在不完整的 CA 上继续签发。
    :param settings: 配置，默认使用全局 config。
    :return: 生成结果摘要。
    """
    settings = settings or config
    store = PKIStore(settings.output_dir)

    logger.info("步骤 1: 创建 CA")
    authority = store.load_or_create_authority(
        settings.authority_name(),
        settings.authority_key_bits,
        settings.authority_validity_days,
    )
    verifier.verify_authority(authority.certificate)

    certificates: Dict[str, x509.Certificate] = {}
    for step, file_stem in enumerate(settings.end_entity_names(), start=2):
        logger.info(f"步骤 {step}: 创建 {file_stem} 证书")
        certificates[file_stem] = _issue_end_entity(store, authority, file_stem, settings)

    logger.info("校验证书链")
    for file_stem, certificate in certificates.items():
        verifier.verify(certificate, authority.certificate)
        verifier.outlives_authority(certificate, authority.certificate)
        logger.info(f"{file_stem}.pem: OK")

    authority_summary = artifacts.summarize_certificate(authority.certificate)
    _log_summary("CA Certificate", authority_summary)
    summaries: Dict[str, CertificateSummary] = {}
    for file_stem, certificate in certificates.items():
        summaries[file_stem] = artifacts.summarize_certificate(certificate)
        _log_summary(f"{file_stem} Certificate", summaries[file_stem])

    logger.info("生成 AWS CLI 命令与证书合集")
    commands = artifacts.render_aws_commands(
        trust_anchor_name=settings.trust_anchor_name,
        profile_name=settings.profile_name,
        role_arn=settings.role_arn,
        entities=[(f"{stem}.pem", f"{stem}.key") for stem in certificates],
        region=settings.aws_region,
        account_id=settings.aws_account_id,
    )
    store.write_text(AWS_COMMANDS_FILE, commands)

    sections = [("CA CERTIFICATE (Upload to Trust Anchor)", authority.certificate)]
    sections.extend(
        (f"{stem.upper()} CERTIFICATE", certificate) for stem, certificate in certificates.items()
    )
    store.write_text(CERTIFICATE_BUNDLE_FILE, artifacts.render_certificate_bundle(sections))

    archive_path = None
    if settings.archive_enabled:
        archive = store.base_dir.resolve().parent / settings.archive_name
        archive_path = str(artifacts.create_archive(store.base_dir, archive))

    _log_usage_guide(store, list(certificates))
    files = sorted(p.name for p in store.base_dir.iterdir() if p.is_file())
    return BootstrapResult(
        output_dir=str(store.base_dir),
        authority=authority_summary,
        end_entities=summaries,
        files=files,
        archive=archive_path,
    )


def get_authority(settings: Config | None = None) -> IssuingAuthority:
    """加载或创建供 HTTP 接口使用的 CA，进程内只初始化一次。"""
    global _AUTHORITY
    with _LOCK:
        if _AUTHORITY is None:
            settings = settings or config
            store = PKIStore(settings.output_dir)
            _AUTHORITY = store.load_or_create_authority(
                settings.authority_name(),
                settings.authority_key_bits,
                settings.authority_validity_days,
            )
        return _AUTHORITY


def reset_authority_cache() -> None:
    global _AUTHORITY
    with _LOCK:
        _AUTHORITY = None


def get_authority_service() -> AuthorityResponse:
    """
    返回 CA 证书，用于上传到 Trust Anchor。
    """
    certificate = get_authority().certificate
    return AuthorityResponse(
        certificate=certificate.public_bytes(Encoding.PEM).decode("ascii"),
        subject=certificate.subject.rfc4514_string(),
        serial_number=f"{certificate.serial_number:X}",
        not_after=certificate.not_valid_after_utc,
    )


def issue_certificate_service(req: IssueCertificateRequest) -> CertificateResponse:
    """
    用 CA 为客户端提交的 CSR 签发终端证书。
    :raises ValueError: CSR 无效、CN 重复、密钥过弱或有效期超出 CA。
    :raises RuntimeError: 签发过程失败。
    """
    authority = get_authority()
    request = load_request(req.csr)
    certificate = authority.issue(request, req.validity_days or config.end_entity_validity_days)

    cert_b64 = base64.b64encode(certificate.public_bytes(Encoding.PEM)).decode("utf-8")
    ca_b64 = base64.b64encode(authority.certificate.public_bytes(Encoding.PEM)).decode("utf-8")
    return CertificateResponse(
        serial_number=f"{certificate.serial_number:X}",
        certificate=cert_b64,
        ca_bundle=ca_b64,
    )


def _load_certificate_from_input(certificate_input: str) -> x509.Certificate:
    """
    从 PEM 文本、Base64 编码的 PEM 或 Base64 编码的 DER 中解析证书。
    文本中有多段 PEM 时取第一段。
    :raises ValueError: 无法解析。
    """
    text = certificate_input.strip()

    if "-----BEGIN CERTIFICATE-----" in text:
        pem_blocks = re.findall(
            r"-----BEGIN CERTIFICATE-----[\s\S]*?-----END CERTIFICATE-----",
            text,
        )
        if pem_blocks:
            return x509.load_pem_x509_certificate(pem_blocks[0].encode("utf-8"))

    try:
        decoded = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("无法从输入中解析证书")
    if decoded.lstrip().startswith(b"-----BEGIN"):
        return x509.load_pem_x509_certificate(decoded)
    return x509.load_der_x509_certificate(decoded)


def verify_certificate_service(req: VerifyCertificateRequest) -> VerifyCertificateResponse:
    """
    校验上传的证书是否由本 CA 签发且仍在有效期内。
    无效输入不视为服务器错误，返回 valid=False。
    """
    try:
        certificate = _load_certificate_from_input(req.certificate_content)
    except ValueError as e:
        logger.warning(f"解析待校验证书失败: {e}")
        return VerifyCertificateResponse(valid=False, detail="无法解析证书")

    authority = get_authority()
    response = VerifyCertificateResponse(
        valid=True,
        issuer_common_name=common_name_of(certificate.issuer),
        subject_common_name=common_name_of(certificate.subject),
    )
    try:
        authority.verify(certificate)
    except ChainError as e:
        logger.warning(f"证书链校验失败: {e}")
        response.valid = False
        response.failure = e.reason
        response.detail = e.message
    return response

