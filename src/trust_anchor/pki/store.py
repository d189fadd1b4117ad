"""
PKI 文件存储。
目录布局：
- ca.key / ca.pem / ca.srl: CA 私钥、CA 证书、序列号文件
- <name>.key / <name>.csr / <name>.pem: 终端实体私钥、签名请求、证书
私钥文件以 0600 权限写入，证书与 CSR 以 0644 权限写入。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import Encoding
from loguru import logger

from .errors import ExternalToolError, InvalidNameError
from .issuer import DEFAULT_AUTHORITY_VALIDITY_DAYS, IssuingAuthority
from .keys import AUTHORITY_KEY_BITS, generate_key_pair, key_pair_from_private_key
from .schemas import DistinguishedName, KeyPair, Role
from .serial import SerialAllocator

PRIVATE_FILE_MODE = 0o600
PUBLIC_FILE_MODE = 0o644


class PKIStore:
    """以目录为单位保存一个 CA 及其签发的证书。"""

    def __init__(self, base_dir: str | os.PathLike[str]):
        self.base_dir = Path(base_dir)

    def authority_paths(self) -> Dict[str, Path]:
        """返回 CA 私钥、证书与序列号文件的路径。"""
        return {
            "dir": self.base_dir,
            "key": self.base_dir / "ca.key",
            "cert": self.base_dir / "ca.pem",
            "serial": self.base_dir / "ca.srl",
        }

    def entity_paths(self, name: str) -> Dict[str, Path]:
        """返回终端实体私钥、CSR 与证书的路径。"""
        return {
            "key": self.base_dir / f"{name}.key",
            "csr": self.base_dir / f"{name}.csr",
            "cert": self.base_dir / f"{name}.pem",
        }

    def _ensure_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _write(self, path: Path, data: bytes, mode: int) -> Path:
        self._ensure_dir()
        try:
            # 已存在的文件不受 O_CREAT 权限影响，写入前先收紧权限
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), mode)
                f.write(data)
        except OSError as e:
            logger.error(f"写入文件失败 {path}: {e}")
            raise ExternalToolError(f"无法写入文件: {path}") from e
        return path

    def write_private_key(self, path: Path, key_pair: KeyPair) -> Path:
        return self._write(path, key_pair.private_pem(), PRIVATE_FILE_MODE)

    def write_certificate(self, path: Path, certificate: x509.Certificate) -> Path:
        return self._write(path, certificate.public_bytes(Encoding.PEM), PUBLIC_FILE_MODE)

    def write_request(self, path: Path, request: x509.CertificateSigningRequest) -> Path:
        return self._write(path, request.public_bytes(Encoding.PEM), PUBLIC_FILE_MODE)

    def write_text(self, name: str, content: str) -> Path:
        return self._write(self.base_dir / name, content.encode("utf-8"), PUBLIC_FILE_MODE)

    def read_certificate(self, path: Path) -> x509.Certificate:
        try:
            return x509.load_pem_x509_certificate(path.read_bytes())
        except (OSError, ValueError) as e:
            raise ExternalToolError(f"无法读取证书 {path}: {e}") from e

    def read_private_key(self, path: Path, role: Role) -> KeyPair:
        try:
            private_key = serialization.load_pem_private_key(path.read_bytes(), password=None)
        except (OSError, ValueError, TypeError) as e:
            raise ExternalToolError(f"无法读取私钥 {path}: {e}") from e
        return key_pair_from_private_key(private_key, role)

    def has_authority(self) -> bool:
        paths = self.authority_paths()
        return paths["key"].exists() and paths["cert"].exists()

    def load_authority(self) -> IssuingAuthority:
        """
        加载已有的 CA。
        :raises ExternalToolError: 文件缺失或无法解析。
        :raises UnknownIssuerError: CA 私钥与 CA 证书不匹配。
        """
        paths = self.authority_paths()
        if not self.has_authority():
            raise ExternalToolError(f"CA 文件不存在: {paths['dir']}")
        key_pair = self.read_private_key(paths["key"], Role.AUTHORITY)
        certificate = self.read_certificate(paths["cert"])
        if paths["serial"].exists():
            serials = SerialAllocator(paths["serial"])
        else:
            # 计数器丢失时无法得知已用过的序列号，改用随机起点
            start = x509.random_serial_number()
            logger.warning(f"序列号文件缺失: {paths['serial']}，从随机序列号 {start:X} 继续")
            serials = SerialAllocator(paths["serial"], start=start)
        return IssuingAuthority(key_pair, certificate, serials)

    def load_or_create_authority(
        self,
        name: DistinguishedName,
        key_bits: int = AUTHORITY_KEY_BITS,
        validity_days: int = DEFAULT_AUTHORITY_VALIDITY_DAYS,
    ) -> IssuingAuthority:
        """
        加载或创建 CA。
        已存在 ca.key 与 ca.pem 时直接复用，否则生成新的 CA 并落盘。
        :raises InvalidNameError: 已有 CA 的主体与请求的名称不一致。
        """
        if self.has_authority():
            authority = self.load_authority()
            if authority.certificate.subject != name.to_x509():
                raise InvalidNameError(
                    f"已有 CA 的主体与配置不一致，请更换输出目录或删除旧 CA: "
                    f"现有 {authority.certificate.subject.rfc4514_string()}，"
                    f"请求 {name.to_x509().rfc4514_string()}",
                    role=Role.AUTHORITY.value,
                    subject=name.to_x509().rfc4514_string(),
                )
            logger.info(f"复用已有 CA: {authority.certificate.subject.rfc4514_string()}")
            return authority

        paths = self.authority_paths()
        key_pair = generate_key_pair(key_bits, role=Role.AUTHORITY)
        serials = SerialAllocator(paths["serial"])
        authority = IssuingAuthority.create(name, key_pair, serials, validity_days)

        self.write_private_key(paths["key"], key_pair)
        self.write_certificate(paths["cert"], authority.certificate)
        logger.info(f"CA 证书已创建: {paths['cert']}")
        logger.info(f"CA 私钥已创建: {paths['key']}")
        return authority
