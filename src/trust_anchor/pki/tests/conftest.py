"""
测试共用的密钥与 CA 夹具。4096 位密钥生成较慢，按会话复用。
"""

import pytest

from src.trust_anchor.pki.issuer import IssuingAuthority
from src.trust_anchor.pki.keys import AUTHORITY_KEY_BITS, END_ENTITY_KEY_BITS, generate_key_pair
from src.trust_anchor.pki.schemas import DistinguishedName, Role
from src.trust_anchor.pki.serial import SerialAllocator


@pytest.fixture(scope="session")
def authority_key_pair():
    return generate_key_pair(AUTHORITY_KEY_BITS, role=Role.AUTHORITY)


@pytest.fixture(scope="session")
def other_authority_key_pair():
    return generate_key_pair(AUTHORITY_KEY_BITS, role=Role.AUTHORITY)


@pytest.fixture(scope="session")
def leaf_key_pair():
    return generate_key_pair(END_ENTITY_KEY_BITS)


@pytest.fixture(scope="session")
def second_leaf_key_pair():
    return generate_key_pair(END_ENTITY_KEY_BITS)


@pytest.fixture
def authority_name():
    return DistinguishedName(
        country="CA",
        state="Ontario",
        locality="Toronto",
        organization="MyCompany",
        organizational_unit="Security",
        common_name="Root-CA",
    )


@pytest.fixture
def authority(authority_key_pair, authority_name):
    """每个测试一个新的 CA（独立的序列号与 CN 记录）。"""
    return IssuingAuthority.create(authority_name, authority_key_pair, SerialAllocator())


@pytest.fixture
def leaf_name():
    """按 CN 构造终端实体名称。"""

    def _make(common_name: str) -> DistinguishedName:
        return DistinguishedName(
            country="CA",
            organization="MyCompany",
            organizational_unit="Security",
            common_name=common_name,
        )

    return _make
