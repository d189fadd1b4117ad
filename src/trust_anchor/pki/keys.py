"""
密钥对生成。
CA 使用 4096 位 RSA 密钥，终端实体使用 2048 位 RSA 密钥；低于 2048 位的请求一律拒绝。
"""

from __future__ import annotations

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from loguru import logger

from .errors import ExternalToolError, WeakKeyError
from .schemas import KeyPair, Role

AUTHORITY_KEY_BITS = 4096
END_ENTITY_KEY_BITS = 2048
SUPPORTED_ALGORITHMS = ("RSA",)
RSA_PUBLIC_EXPONENT = 65537


def minimum_key_bits(role: Role) -> int:
    """返回指定角色允许的最小密钥长度。"""
    if role == Role.AUTHORITY:
        return AUTHORITY_KEY_BITS
    return END_ENTITY_KEY_BITS


def check_key_strength(strength_bits: int, role: Role = Role.END_ENTITY) -> None:
    """
    校验密钥长度是否满足策略。
    :raises WeakKeyError: 低于该角色的最小长度。
    """
    minimum = minimum_key_bits(role)
    if strength_bits < minimum:
        raise WeakKeyError(
            f"密钥长度 {strength_bits} 低于 {role.value} 角色的最小要求 {minimum}",
            role=role.value,
        )


def generate_key_pair(
    strength_bits: int,
    algorithm: str = "RSA",
    role: Role = Role.END_ENTITY,
) -> KeyPair:
    """
    生成一对新的密钥。
    :param strength_bits: 密钥长度（位）。
    :param algorithm: 密钥算法，目前只支持 RSA。
    :param role: 密钥所属角色，决定最小长度。
    :return: 仅存在于内存中的 KeyPair。
    :raises WeakKeyError: 密钥长度不满足策略。
    :raises ValueError: 不支持的算法。
    """
    algorithm = algorithm.upper()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"不支持的密钥算法: {algorithm}")
    check_key_strength(strength_bits, role)

    try:
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=strength_bits,
        )
    except (ValueError, UnsupportedAlgorithm) as e:
        logger.error(f"生成 {strength_bits} 位 {algorithm} 密钥失败: {e}")
        raise ExternalToolError(f"密钥生成失败: {e}", role=role.value) from e

    logger.debug(f"已生成 {strength_bits} 位 {algorithm} 密钥 (role={role.value})")
    return KeyPair(algorithm=algorithm, strength_bits=strength_bits, private_key=private_key)


def key_pair_from_private_key(private_key: object, role: Role = Role.END_ENTITY) -> KeyPair:
    """
    将已加载的私钥包装为 KeyPair，并按策略校验其长度。
    :raises ExternalToolError: 私钥不是 RSA 私钥。
    :raises WeakKeyError: 密钥长度不满足策略。
    """
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise ExternalToolError(
            f"不支持的私钥类型: {type(private_key).__name__}", role=role.value
        )
    check_key_strength(private_key.key_size, role)
    return KeyPair(algorithm="RSA", strength_bits=private_key.key_size, private_key=private_key)
