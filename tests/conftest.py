import json
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.app_config import AppConfig, PanelConfig, StorageConfig, FirewallConfig


@pytest.fixture
def app_config(tmp_path):
    """Configuration pointing every document at a temporary directory."""
    prefix = str(tmp_path) + os.sep
    return AppConfig(
        panel=PanelConfig(web_host="de1.example.net", web_host_region="fra", v2ray_port=443),
        storage=StorageConfig(config_file_prefix=prefix, user_file_prefix=prefix, port_base=10000),
        firewall=FirewallConfig(enabled=False),
    )


@pytest.fixture
def vmess_documents(tmp_path):
    config_path = tmp_path / "vmess.json"
    users_path = tmp_path / "vmess_users.json"
    config_path.write_text(json.dumps({
        "log": {"loglevel": "warning"},
        "inbounds": [{
            "port": 443,
            "protocol": "vmess",
            "settings": {"clients": []},
            "streamSettings": {"network": "tcp"}
        }],
        "outbounds": [{"protocol": "freedom"}]
    }, indent=2))
    users_path.write_text(json.dumps({"clients": [], "panel": {"owner": "ops"}}, indent=1))
    return config_path, users_path


@pytest.fixture
def shadowsocks_documents(tmp_path):
    config_path = tmp_path / "shadowsocks.json"
    users_path = tmp_path / "shadowsocks_users.json"
    config_path.write_text(json.dumps({
        "log": {"loglevel": "warning"},
        "inbounds": [],
        "outbounds": [{"protocol": "freedom"}]
    }, indent=2))
    users_path.write_text(json.dumps({"clients": []}, indent=1))
    return config_path, users_path
