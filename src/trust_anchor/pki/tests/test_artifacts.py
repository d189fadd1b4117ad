"""
测试 artifacts.py 模块。
"""

import zipfile

import pytest

from src.trust_anchor.pki import artifacts
from src.trust_anchor.pki.csr import build_request


def test_summarize_authority_and_leaf(authority, leaf_key_pair, leaf_name):
    client = authority.issue(build_request(leaf_key_pair, leaf_name("ClientUser")))

    ca_summary = artifacts.summarize_certificate(authority.certificate)
    assert ca_summary.is_authority is True
    assert ca_summary.subject == ca_summary.issuer
    assert "CN=Root-CA" in ca_summary.subject

    client_summary = artifacts.summarize_certificate(client)
    assert client_summary.is_authority is False
    assert client_summary.issuer == ca_summary.subject
    assert client_summary.serial_number == client.serial_number
    assert client_summary.not_before < client_summary.not_after


def test_render_aws_commands():
    text = artifacts.render_aws_commands(
        trust_anchor_name="MyCompany-OpenSSL-External-CA",
        profile_name="MyCompany-Admin-Profile",
        role_arn="arn:aws:iam::123456789012:role/Admin",
        entities=[("client.pem", "client.key"), ("app.pem", "app.key")],
        region="ca-central-1",
        account_id="123456789012",
    )
    assert "aws rolesanywhere create-trust-anchor" in text
    assert '--name "MyCompany-OpenSSL-External-CA"' in text
    assert "sourceType=CERTIFICATE_BUNDLE,sourceData=file://ca.pem" in text
    assert "aws rolesanywhere create-profile" in text
    assert '--role-arns "arn:aws:iam::123456789012:role/Admin"' in text
    assert "# 3. Test with client.pem" in text
    assert "# 4. Test with app.pem" in text
    assert "--private-key app.key" in text
    assert "arn:aws:rolesanywhere:ca-central-1:123456789012:trust-anchor/TRUST-ANCHOR-ID" in text
    assert text.endswith("\n")


def test_render_certificate_bundle_keeps_order(authority, leaf_key_pair, leaf_name):
    client = authority.issue(build_request(leaf_key_pair, leaf_name("ClientUser")))
    text = artifacts.render_certificate_bundle(
        [("CA CERTIFICATE (Upload to Trust Anchor)", authority.certificate), ("CLIENT CERTIFICATE", client)]
    )
    assert text.index("=== CA CERTIFICATE") < text.index("=== CLIENT CERTIFICATE")
    assert text.count("-----BEGIN CERTIFICATE-----") == 2


def test_create_archive(tmp_path):
    source = tmp_path / "iam-roles-anywhere-certs"
    source.mkdir()
    (source / "ca.pem").write_text("ca", encoding="utf-8")
    (source / "client.pem").write_text("client", encoding="utf-8")

    archive = artifacts.create_archive(source, tmp_path / "iam-roles-anywhere-certificates.zip")

    with zipfile.ZipFile(archive) as zf:
        names = sorted(zf.namelist())
        assert names == ["iam-roles-anywhere-certs/ca.pem", "iam-roles-anywhere-certs/client.pem"]
        assert zf.read("iam-roles-anywhere-certs/client.pem") == b"client"


def test_archive_inside_source_rejected(tmp_path):
    source = tmp_path / "certs"
    source.mkdir()
    with pytest.raises(ValueError):
        artifacts.create_archive(source, source / "out.zip")
