"""
证书签发服务的 FastAPI 路由定义。
"""

from fastapi import APIRouter, HTTPException
from . import services
from .schemas import (
    AuthorityResponse,
    IssueCertificateRequest,
    CertificateResponse,
    VerifyCertificateRequest,
    VerifyCertificateResponse,
)

router = APIRouter(prefix="/pki", tags=["Trust Anchor PKI"])


@router.get("/authority", response_model=AuthorityResponse)
async def get_authority() -> AuthorityResponse:
    """
    返回 CA 证书（上传到 Trust Anchor 的 CERTIFICATE_BUNDLE）。
    """
    try:
        return services.get_authority_service()
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=f"CA 初始化失败: {str(e)}")
    except Exception as e:
        # 捕获所有未预期的错误并返回 500
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.post("/issue-certificate", response_model=CertificateResponse)
async def issue_certificate(req: IssueCertificateRequest) -> CertificateResponse:
    """
    客户端提交 CSR，请求签发 clientAuth 终端证书。
    """
    try:
        return services.issue_certificate_service(req)
    except ValueError as e:
        # CSR 无效、CN 重复、密钥过弱或有效期超出 CA，返回 400
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        # 捕获签发过程中的底层错误，返回 500
        raise HTTPException(status_code=500, detail=f"证书签发失败: {str(e)}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.post("/verify-certificate", response_model=VerifyCertificateResponse)
async def verify_certificate(req: VerifyCertificateRequest) -> VerifyCertificateResponse:
    """
    客户端上传证书内容，校验其是否由本 CA 签发且仍然有效。
    """
    try:
        return services.verify_certificate_service(req)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")
