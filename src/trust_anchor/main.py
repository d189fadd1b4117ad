"""
FastAPI 应用入口点。
"""

from loguru import logger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.trust_anchor.pki.router import router as pki_router
from src.trust_anchor.config import config

app = FastAPI(title="IAM Roles Anywhere Trust Anchor Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 包含证书签发服务的路由
app.include_router(pki_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4)}")


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}
