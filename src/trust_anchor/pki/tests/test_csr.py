"""
测试 csr.py 模块。
"""

import base64

import pytest
from cryptography.hazmat.primitives import serialization

from src.trust_anchor.pki import csr
from src.trust_anchor.pki.errors import InvalidNameError, InvalidRequestError
from src.trust_anchor.pki.issuer import same_public_key
from src.trust_anchor.pki.schemas import DistinguishedName


def test_build_request_binds_key_and_name(leaf_key_pair, leaf_name):
    name = leaf_name("ClientUser")
    request = csr.build_request(leaf_key_pair, name)

    assert request.subject == name.to_x509()
    assert same_public_key(request.public_key(), leaf_key_pair.public_key)
    assert request.is_signature_valid
    assert csr.common_name_of(request.subject) == "ClientUser"


def test_build_request_requires_common_name(leaf_key_pair):
    with pytest.raises(InvalidNameError):
        csr.build_request(leaf_key_pair, DistinguishedName(country="CA", organization="MyCompany"))


def test_build_request_rejects_blank_common_name(leaf_key_pair):
    with pytest.raises(InvalidNameError):
        csr.build_request(leaf_key_pair, DistinguishedName(common_name="   "))


def test_load_request_accepts_pem_and_base64(leaf_key_pair, leaf_name):
    request = csr.build_request(leaf_key_pair, leaf_name("TestApplication"))
    pem = request.public_bytes(serialization.Encoding.PEM)

    from_pem = csr.load_request(pem.decode("utf-8"))
    from_b64 = csr.load_request(base64.b64encode(pem).decode("utf-8"))

    assert from_pem.subject == request.subject
    assert from_b64.subject == request.subject


@pytest.mark.parametrize("garbage", ["not-a-csr", "QUJD", "-----BEGIN CERTIFICATE REQUEST-----\nabc\n-----END CERTIFICATE REQUEST-----"])
def test_load_request_rejects_garbage(garbage):
    with pytest.raises(InvalidRequestError):
        csr.load_request(garbage)
