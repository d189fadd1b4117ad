"""
测试配置加载：默认值、主题校验与 config.json 来源。
"""

import json

import pytest
from pydantic import ValidationError

from src.trust_anchor.config import Config


def test_defaults():
    cfg = Config()
    assert cfg.authority_key_bits == 4096
    assert cfg.end_entity_key_bits == 2048
    assert cfg.authority_validity_days == 3650
    assert cfg.end_entity_validity_days == 365
    assert cfg.authority_name().common_name


def test_end_entity_names_keep_order():
    cfg = Config(
        client_subject="/C=CA/O=MyCompany/CN=ClientUser",
        app_subject="/C=CA/O=MyCompany/CN=TestApplication",
    )
    names = cfg.end_entity_names()
    assert list(names) == ["client", "app"]
    assert names["client"].common_name == "ClientUser"
    assert names["app"].common_name == "TestApplication"


@pytest.mark.parametrize(
    "subject",
    [
        "/C=CA/O=MyCompany",  # 缺少 CN
        "/C=CA/XX=foo/CN=bar",  # 未知字段
        "/C=Canada/CN=bar",  # 国家代码必须两位
    ],
)
def test_invalid_subject(subject):
    with pytest.raises(ValidationError):
        Config(client_subject=subject)


def test_weak_key_bits_rejected():
    with pytest.raises(ValidationError):
        Config(authority_key_bits=2048)
    with pytest.raises(ValidationError):
        Config(end_entity_key_bits=1024)


def test_config_file_source(tmp_path, monkeypatch):
    cfg_file = tmp_path / "pki.json"
    cfg_file.write_text(
        json.dumps({"output_dir": "custom-certs", "end_entity_validity_days": 90}),
        encoding="utf-8",
    )
    monkeypatch.delenv("OUTPUT_DIR", raising=False)
    monkeypatch.delenv("END_ENTITY_VALIDITY_DAYS", raising=False)
    monkeypatch.setenv("CONFIG_FILE", str(cfg_file))

    cfg = Config()
    assert cfg.output_dir == "custom-certs"
    assert cfg.end_entity_validity_days == 90


def test_env_overrides_config_file(tmp_path, monkeypatch):
    cfg_file = tmp_path / "pki.json"
    cfg_file.write_text(json.dumps({"output_dir": "from-file"}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(cfg_file))
    monkeypatch.setenv("OUTPUT_DIR", "from-env")

    assert Config().output_dir == "from-env"
