"""
测试 router.py 模块。
"""

from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import patch

from src.trust_anchor.pki.errors import ExternalToolError, InvalidNameError
from src.trust_anchor.pki.router import router
from src.trust_anchor.pki.schemas import (
    AuthorityResponse,
    CertificateResponse,
    IssueCertificateRequest,
    VerifyCertificateRequest,
    VerifyCertificateResponse,
)


# 创建一个 FastAPI 应用并包含我们的路由
app = FastAPI()
app.include_router(router, prefix="/v1")

client = TestClient(app)


def test_get_authority_endpoint():
    mock_response = AuthorityResponse(
        certificate="-----BEGIN CERTIFICATE-----\n...\n-----END CERTIFICATE-----\n",
        subject="CN=MyCompany-Root-CA,O=MyCompany,C=CA",
        serial_number="1",
        not_after=datetime(2035, 1, 1, tzinfo=timezone.utc),
    )
    with patch('src.trust_anchor.pki.services.get_authority_service') as mock_service:
        mock_service.return_value = mock_response

        response = client.get("/v1/pki/authority")

        assert response.status_code == 200
        body = response.json()
        assert body["serial_number"] == "1"
        assert body["subject"] == "CN=MyCompany-Root-CA,O=MyCompany,C=CA"


def test_get_authority_endpoint_runtime_error():
    with patch('src.trust_anchor.pki.services.get_authority_service') as mock_service:
        mock_service.side_effect = ExternalToolError("无法读取 CA 私钥")

        response = client.get("/v1/pki/authority")

        assert response.status_code == 500
        assert "CA 初始化失败" in response.json()["detail"]


def test_issue_certificate_endpoint():
    req_data = {"csr": "LS0tLS1CRUdJTi...", "validity_days": 30}
    with patch('src.trust_anchor.pki.services.issue_certificate_service') as mock_service:
        mock_service.return_value = CertificateResponse(
            serial_number="2", certificate="cert_base64", ca_bundle="ca_base64"
        )

        response = client.post("/v1/pki/issue-certificate", json=req_data)

        assert response.status_code == 200
        assert response.json() == {
            "serial_number": "2",
            "certificate": "cert_base64",
            "ca_bundle": "ca_base64",
        }
        mock_service.assert_called_once_with(IssueCertificateRequest(**req_data))


def test_issue_certificate_endpoint_value_error():
    """CN 重复等业务错误返回 400"""
    with patch('src.trust_anchor.pki.services.issue_certificate_service') as mock_service:
        mock_service.side_effect = InvalidNameError("CN 'ClientUser' 已由本 CA 签发过")

        response = client.post("/v1/pki/issue-certificate", json={"csr": "csr"})

        assert response.status_code == 400
        assert "已由本 CA 签发过" in response.json()["detail"]


def test_issue_certificate_endpoint_runtime_error():
    with patch('src.trust_anchor.pki.services.issue_certificate_service') as mock_service:
        mock_service.side_effect = ExternalToolError("签名失败")

        response = client.post("/v1/pki/issue-certificate", json={"csr": "csr"})

        assert response.status_code == 500
        assert response.json()["detail"].startswith("证书签发失败")


def test_issue_certificate_endpoint_unexpected_error():
    with patch('src.trust_anchor.pki.services.issue_certificate_service') as mock_service:
        mock_service.side_effect = KeyError("boom")

        response = client.post("/v1/pki/issue-certificate", json={"csr": "csr"})

        assert response.status_code == 500
        assert response.json()["detail"].startswith("内部服务器错误")


def test_issue_certificate_endpoint_validation_error():
    # 缺少 csr
    response = client.post("/v1/pki/issue-certificate", json={"validity_days": 30})
    assert response.status_code == 422

    response = client.post("/v1/pki/issue-certificate", json={"csr": "csr", "validity_days": 0})
    assert response.status_code == 422


def test_verify_certificate_endpoint():
    req_data = {"certificate_content": "-----BEGIN CERTIFICATE-----..."}
    with patch('src.trust_anchor.pki.services.verify_certificate_service') as mock_service:
        mock_service.return_value = VerifyCertificateResponse(
            valid=False, failure="signature_invalid", detail="签名无效"
        )

        response = client.post("/v1/pki/verify-certificate", json=req_data)

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert body["failure"] == "signature_invalid"
        mock_service.assert_called_once_with(VerifyCertificateRequest(**req_data))


def test_verify_certificate_endpoint_error():
    with patch('src.trust_anchor.pki.services.verify_certificate_service') as mock_service:
        mock_service.side_effect = RuntimeError("boom")

        response = client.post("/v1/pki/verify-certificate", json={"certificate_content": "x"})

        assert response.status_code == 500
