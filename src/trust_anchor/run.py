#!/usr/bin/env python
"""
一次性生成 IAM Roles Anywhere 外部信任锚所需的全部证书。
无命令行参数，配置来自环境变量 / .env / config.json；成功退出码为 0，遇到第一个错误即以 1 退出。
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger


def main() -> int:
    load_dotenv(Path.cwd() / ".env")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=log_level)

    # 延迟导入，保证 .env 在配置实例化之前已加载
    from src.trust_anchor.pki.errors import PKIError
    from src.trust_anchor.pki.services import bootstrap_pki

    logger.info("=== IAM Roles Anywhere Certificate Generator ===")
    try:
        result = bootstrap_pki()
    except (PKIError, ValueError, OSError) as e:
        logger.error(f"PKI 生成失败: {e}")
        return 1

    logger.info(f"完成！共生成 {len(result.files)} 个文件: {', '.join(result.files)}")
    if result.archive:
        logger.info(f"zip 归档: {result.archive}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
