"""
生成 PKI 之后的辅助文件：证书摘要、AWS CLI 命令模板、证书合集与 zip 归档。
这里只生成文本，不调用任何 AWS 接口。
"""

from __future__ import annotations

import os
import zipfile
from pathlib import Path
from typing import Iterable, List, Tuple

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from loguru import logger

from .schemas import CertificateSummary


def summarize_certificate(certificate: x509.Certificate) -> CertificateSummary:
    """提取证书的主题、签发者与有效期。"""
    try:
        is_authority = certificate.extensions.get_extension_for_class(
            x509.BasicConstraints
        ).value.ca
    except x509.ExtensionNotFound:
        is_authority = False
    return CertificateSummary(
        subject=certificate.subject.rfc4514_string(),
        issuer=certificate.issuer.rfc4514_string(),
        serial_number=certificate.serial_number,
        not_before=certificate.not_valid_before_utc,
        not_after=certificate.not_valid_after_utc,
        is_authority=is_authority,
    )


def render_aws_commands(
    trust_anchor_name: str,
    profile_name: str,
    role_arn: str,
    entities: Iterable[Tuple[str, str]],
    authority_file: str = "ca.pem",
    region: str = "REGION",
    account_id: str = "ACCOUNT-ID",
) -> str:
    """
    渲染 IAM Roles Anywhere 的 AWS CLI 命令模板。
    :param entities: (证书文件名, 私钥文件名) 列表，每项生成一条 aws_signing_helper 测试命令。
    """
    lines = [
        "# AWS CLI Commands for IAM Roles Anywhere Setup",
        "",
        "# 1. Create Trust Anchor (upload CA certificate)",
        "aws rolesanywhere create-trust-anchor \\",
        f'  --name "{trust_anchor_name}" \\',
        f"  --source sourceType=CERTIFICATE_BUNDLE,sourceData=file://{authority_file}",
        "",
        "# 2. Create Profile (links to IAM role)",
        "aws rolesanywhere create-profile \\",
        f'  --name "{profile_name}" \\',
        f'  --role-arns "{role_arn}"',
    ]
    trust_anchor_arn = f"arn:aws:rolesanywhere:{region}:{account_id}:trust-anchor/TRUST-ANCHOR-ID"
    profile_arn = f"arn:aws:rolesanywhere:{region}:{account_id}:profile/PROFILE-ID"
    for index, (cert_file, key_file) in enumerate(entities, start=3):
        lines.extend(
            [
                "",
                f"# {index}. Test with {cert_file} (replace ARNs with actual values)",
                "./aws_signing_helper credential-process \\",
                f"  --certificate {cert_file} \\",
                f"  --private-key {key_file} \\",
                f"  --trust-anchor-arn {trust_anchor_arn} \\",
                f"  --profile-arn {profile_arn} \\",
                f"  --role-arn {role_arn}",
            ]
        )
    return "\n".join(lines) + "\n"


def render_certificate_bundle(sections: Iterable[Tuple[str, x509.Certificate]]) -> str:
    """把多张证书按标题拼接成一个便于查看的文本。"""
    parts: List[str] = []
    for title, certificate in sections:
        pem = certificate.public_bytes(Encoding.PEM).decode("ascii")
        parts.append(f"=== {title} ===\n{pem}")
    return "\n".join(parts)


def create_archive(source_dir: str | os.PathLike[str], archive_path: str | os.PathLike[str]) -> Path:
    """
    将输出目录打包为 zip，归档内路径以目录名为前缀。
    归档文件不能位于 source_dir 内部。
    """
    source = Path(source_dir).resolve()
    archive = Path(archive_path).resolve()
    if source in archive.parents:
        raise ValueError(f"归档文件不能位于被打包目录内: {archive}")

    archive.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(source.rglob("*")):
            if path.is_file():
                zf.write(path, arcname=str(Path(source.name) / path.relative_to(source)))
    logger.info(f"已创建 zip 归档: {archive}")
    return archive
