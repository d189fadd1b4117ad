"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.check_subject: 校验 OpenSSL 风格的主题字符串
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource

from src.trust_anchor.pki.schemas import DistinguishedName


class Config(BaseSettings):
    output_dir: str = "iam-roles-anywhere-certs"
    archive_enabled: bool = True
    archive_name: str = "iam-roles-anywhere-certificates.zip"
    keep_requests: bool = True

    # 证书主题，格式: /C=Country/ST=State/L=Locality/O=Organization/OU=Unit/CN=CommonName
    ca_subject: str = "/C=CA/ST=Ontario/L=Toronto/O=MyCompany/OU=Security/CN=MyCompany-Root-CA"
    client_subject: str = "/C=CA/ST=Ontario/L=Toronto/O=MyCompany/OU=Security/CN=ClientUser"
    app_subject: str = "/C=CA/ST=Ontario/L=Toronto/O=MyCompany/OU=Security/CN=TestApplication"
    client_name: str = "client"
    app_name: str = "app"

    authority_key_bits: int = Field(default=4096, ge=4096)
    end_entity_key_bits: int = Field(default=2048, ge=2048)
    authority_validity_days: int = Field(default=3650, gt=0)
    end_entity_validity_days: int = Field(default=365, gt=0)

    trust_anchor_name: str = "MyCompany-OpenSSL-External-CA"
    profile_name: str = "MyCompany-Admin-Profile"
    role_arn: str = "arn:aws:iam::ACCOUNT-ID:role/YOUR-ROLE-NAME"
    aws_region: str = "REGION"
    aws_account_id: str = "ACCOUNT-ID"

    # pydantic v2 风格配置（等价于旧版的 class Config）
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("ca_subject", "client_subject", "app_subject")
    @classmethod
    def check_subject(cls, value: str) -> str:
        """主题字符串必须可解析且包含 CN。"""
        name = DistinguishedName.parse(value)
        if not name.common_name:
            raise ValueError(f"主题缺少 CN: {value}")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, ValueError):
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按字段名返回字段值。"""
                self._load()
                data = self._data or {}
                if field_name in data:
                    return data[field_name], field_name, True
                return None, field_name, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )

    def authority_name(self) -> DistinguishedName:
        return DistinguishedName.parse(self.ca_subject)

    def end_entity_names(self) -> Dict[str, DistinguishedName]:
        """文件名前缀 -> 终端实体名称，按签发顺序排列。"""
        return {
            self.client_name: DistinguishedName.parse(self.client_subject),
            self.app_name: DistinguishedName.parse(self.app_subject),
        }


config = Config()
