"""
证书签发引擎的数据模型定义。
公开接口：
- Role: 证书角色（CA / 终端实体）
- KeyPair: 内存中的非对称密钥对
- DistinguishedName: 可分辨名称，支持与 x509.Name 及 OpenSSL 主题字符串互转
- CertificateSummary: 证书摘要信息
- BootstrapResult: 一次完整 PKI 生成的结果
- AuthorityResponse / IssueCertificateRequest / CertificateResponse /
  VerifyCertificateRequest / VerifyCertificateResponse: HTTP 接口模型
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ChainFailure


class Role(str, Enum):
    AUTHORITY = "authority"
    END_ENTITY = "end_entity"


class KeyPair(BaseModel):
    """
    仅保存在内存中的 RSA 密钥对。
    私钥的持久化由调用方（PKIStore）负责，并且必须使用受限的文件权限。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    algorithm: str = "RSA"
    strength_bits: int
    private_key: rsa.RSAPrivateKey

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    def key_identifier(self) -> bytes:
        """基于公钥哈希的密钥标识（与 subjectKeyIdentifier=hash 一致）。"""
        return x509.SubjectKeyIdentifier.from_public_key(self.public_key).digest

    def private_pem(self) -> bytes:
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


# 主题字符串中的键与 OID 的对应关系，顺序即证书中的属性顺序
_NAME_FIELDS = (
    ("C", "country", NameOID.COUNTRY_NAME),
    ("ST", "state", NameOID.STATE_OR_PROVINCE_NAME),
    ("L", "locality", NameOID.LOCALITY_NAME),
    ("O", "organization", NameOID.ORGANIZATION_NAME),
    ("OU", "organizational_unit", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("CN", "common_name", NameOID.COMMON_NAME),
)


class DistinguishedName(BaseModel):
    """X.509 可分辨名称。CN 是证书持有者的身份标识。"""

    country: str | None = None
    state: str | None = None
    locality: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    common_name: str | None = None

    @field_validator("country")
    @classmethod
    def check_country(cls, value: str | None) -> str | None:
        """国家代码必须是两位字母（X.509 要求）。"""
        if value is None or value == "":
            return None
        if len(value) != 2 or not value.isalpha():
            raise ValueError(f"国家代码必须是两位字母: {value}")
        return value.upper()

    @classmethod
    def parse(cls, subject: str) -> "DistinguishedName":
        """
        解析 OpenSSL 风格的主题字符串，例如 /C=CA/ST=Ontario/O=MyCompany/CN=ClientUser。
        :raises ValueError: 格式错误或包含未知字段。
        """
        keys = {short: field for short, field, _ in _NAME_FIELDS}
        values: Dict[str, str] = {}
        for part in subject.strip().split("/"):
            if not part:
                continue
            if "=" not in part:
                raise ValueError(f"无效的主题片段: {part}")
            key, _, value = part.partition("=")
            key = key.strip().upper()
            if key not in keys:
                raise ValueError(f"不支持的主题字段: {key}")
            values[keys[key]] = value.strip()
        return cls(**values)

    @classmethod
    def from_x509(cls, name: x509.Name) -> "DistinguishedName":
        values: Dict[str, str] = {}
        for _, field, oid in _NAME_FIELDS:
            attrs = name.get_attributes_for_oid(oid)
            if attrs:
                values[field] = str(attrs[0].value)
        return cls(**values)

    def to_x509(self) -> x509.Name:
        attributes = []
        for _, field, oid in _NAME_FIELDS:
            value = getattr(self, field)
            if value:
                attributes.append(x509.NameAttribute(oid, value))
        return x509.Name(attributes)

    def to_subject_string(self) -> str:
        parts = []
        for short, field, _ in _NAME_FIELDS:
            value = getattr(self, field)
            if value:
                parts.append(f"/{short}={value}")
        return "".join(parts)


class CertificateSummary(BaseModel):
    """证书的主题、签发者与有效期摘要。"""

    subject: str
    issuer: str
    serial_number: int
    not_before: datetime
    not_after: datetime
    is_authority: bool


class BootstrapResult(BaseModel):
    """一次完整 PKI 生成的结果。"""

    output_dir: str
    authority: CertificateSummary
    end_entities: Dict[str, CertificateSummary] = Field(default_factory=dict)
    files: List[str] = Field(default_factory=list)
    archive: str | None = None


class AuthorityResponse(BaseModel):
    """
    服务端返回 CA 证书的数据模型。
    """
    certificate: str  # PEM 格式的 CA 证书
    subject: str
    serial_number: str  # 十六进制
    not_after: datetime


class IssueCertificateRequest(BaseModel):
    """
    客户端请求签发终端证书时的数据模型。
    """
    csr: str  # PEM 或 Base64 编码的 PEM 格式 CSR
    validity_days: int | None = Field(default=None, gt=0)


class CertificateResponse(BaseModel):
    """
    服务端返回签发证书的数据模型。
    """
    serial_number: str  # 十六进制
    certificate: str   # Base64 编码的证书 PEM
    ca_bundle: str     # Base64 编码的 CA 证书 PEM


class VerifyCertificateRequest(BaseModel):
    """
    客户端请求校验证书链的数据模型。
    """
    certificate_content: str  # PEM 格式的证书内容


class VerifyCertificateResponse(BaseModel):
    """
    服务端返回证书链校验结果的数据模型。
    """
    valid: bool
    failure: ChainFailure | None = None
    detail: str | None = None
    issuer_common_name: str | None = None
    subject_common_name: str | None = None
