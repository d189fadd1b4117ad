"""
证书签发引擎的错误定义。
公开接口：
- PKIError: 所有签发/校验错误的基类，携带 role 与 subject 便于诊断
- WeakKeyError / InvalidNameError / InvalidRequestError
- UnknownIssuerError / ExpiredIssuerError / ValidityWindowError
- ChainError: 证书链校验失败，reason 区分签名无效、过期与名称不匹配
- ExternalToolError: 底层密码学库调用失败
"""

from __future__ import annotations

from enum import Enum


class PKIError(Exception):
    """签发流程中的错误基类。"""

    def __init__(self, message: str, *, role: str | None = None, subject: str | None = None):
        super().__init__(message)
        self.message = message
        self.role = role
        self.subject = subject

    def __str__(self) -> str:
        context = []
        if self.role:
            context.append(f"role={self.role}")
        if self.subject:
            context.append(f"subject={self.subject}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class WeakKeyError(PKIError, ValueError):
    """请求的密钥强度低于策略要求。"""


class InvalidNameError(PKIError, ValueError):
    """可分辨名称缺少 CN，或 CN 已被同一 CA 签发过。"""


class InvalidRequestError(PKIError, ValueError):
    """签名请求无法解析或自签名无效。"""


class UnknownIssuerError(PKIError, ValueError):
    """签发者证书与提供的密钥对不匹配，或缺少签发者。"""


class ExpiredIssuerError(PKIError, ValueError):
    """签发者证书在签发时刻不在有效期内。"""


class ValidityWindowError(PKIError, ValueError):
    """终端证书的有效期超出了 CA 自身的有效期。"""


class ChainFailure(str, Enum):
    SIGNATURE_INVALID = "signature_invalid"
    EXPIRED = "expired"
    NAME_MISMATCH = "name_mismatch"


class ChainError(PKIError, ValueError):
    """证书链校验失败。"""

    def __init__(self, reason: ChainFailure, message: str, *, subject: str | None = None):
        super().__init__(message, subject=subject)
        self.reason = reason


class ExternalToolError(PKIError, RuntimeError):
    """cryptography 库调用或存储读写失败。"""
