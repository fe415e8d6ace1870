"""
Tests for SqlServerConnectionInfo and the per-backend connection settings.
"""

import json

import pytest

from dbadapter.adapters.base import ConfigurationError
from dbadapter.adapters.sqlserver_adapter import SqlServerConnectionInfo
from dbadapter.adapters.sqlserver_backends import DirectBackend, PooledBackend


class TestConnectionInfo:

    def test_defaults(self):
        info = SqlServerConnectionInfo(server="db01", database="sales")
        assert info.port is None
        assert info.trust_server_certificate is True
        assert info.driver_version == "17"
        assert info.options == {}
        assert info.uses_integrated_auth

    def test_named_instance_parts(self, named_instance_info):
        assert named_instance_info.host == "HOST"
        assert named_instance_info.instance_name == "INSTANCE"

    def test_plain_server_has_no_instance(self, integrated_info):
        assert integrated_info.host == "db01"
        assert integrated_info.instance_name is None

    def test_credentials_disable_integrated_auth(self, named_instance_info):
        assert not named_instance_info.uses_integrated_auth

    def test_user_without_password_is_integrated(self):
        info = SqlServerConnectionInfo(server="db01", database="sales", user="sa")
        assert info.uses_integrated_auth

    def test_from_mapping_accepts_camel_case(self):
        info = SqlServerConnectionInfo.from_mapping({
            "server": "db01",
            "database": "sales",
            "port": "1500",
            "trustServerCertificate": False,
            "driverVersion": 18,
            "options": {"Encrypt": "yes"},
        })
        assert info.port == 1500
        assert info.trust_server_certificate is False
        assert info.driver_version == "18"
        assert info.options == {"Encrypt": "yes"}

    @pytest.mark.parametrize("raw, expected", [
        ("false", False),
        ("No", False),
        ("0", False),
        ("true", True),
        ("YES", True),
        (0, False),
        (None, True),
    ])
    def test_trust_flag_parsing(self, raw, expected):
        info = SqlServerConnectionInfo.from_mapping({
            "server": "db01",
            "database": "sales",
            "trustServerCertificate": raw,
        })
        assert info.trust_server_certificate is expected

    @pytest.mark.parametrize("config", [
        {"database": "sales"},
        {"server": "db01"},
        {"server": "", "database": ""},
    ])
    def test_missing_required(self, config):
        with pytest.raises(ConfigurationError, match="Missing required config"):
            SqlServerConnectionInfo.from_mapping(config)

    def test_immutable(self, integrated_info):
        with pytest.raises(Exception):
            integrated_info.server = "other"


class TestDirectConnectionString:
    """ODBC connection strings built by the direct backend."""

    def test_sql_authentication(self, named_instance_info):
        backend = DirectBackend(named_instance_info)
        assert backend.connection_string == (
            "Driver={ODBC Driver 17 for SQL Server};Server=HOST\\INSTANCE;Database=master;"
            "UID=sa;PWD=x;TrustServerCertificate=Yes;"
        )

    def test_windows_authentication(self):
        info = SqlServerConnectionInfo(
            server="db01",
            database="sales",
            trust_server_certificate=False,
            driver_version="18",
        )
        backend = DirectBackend(info)
        assert backend.connection_string == (
            "Driver={ODBC Driver 18 for SQL Server};Server=db01;Database=sales;Trusted_Connection=Yes;"
        )

    def test_port_and_options_appended(self):
        info = SqlServerConnectionInfo(
            server="db01",
            database="sales",
            user="app",
            password="pw",
            port=1500,
            options={"Encrypt": "yes", "APP": "reports"},
        )
        conn_str = DirectBackend(info).connection_string
        assert conn_str.endswith("TrustServerCertificate=Yes;Port=1500;Encrypt=yes;APP=reports;")

    def test_describe_masks_password(self, named_instance_info):
        described = DirectBackend(named_instance_info).describe()
        assert "PWD=*****;" in described
        assert "PWD=x;" not in described


class TestPooledUrl:
    """SQLAlchemy URL built by the pooled backend."""

    def test_named_instance_has_no_port(self, named_instance_info):
        backend = PooledBackend(named_instance_info)
        assert backend.url.drivername == "mssql+pymssql"
        assert backend.url.host == "HOST\\INSTANCE"
        assert backend.url.port is None
        assert backend.url.username == "sa"
        assert backend.url.password == "x"
        assert backend.url.database == "master"

    def test_default_port(self):
        info = SqlServerConnectionInfo(server="db01", database="sales", user="sa", password="x")
        assert PooledBackend(info).url.port == 1433

    def test_explicit_port(self):
        info = SqlServerConnectionInfo(server="db01", database="sales", user="sa", password="x", port=1500)
        assert PooledBackend(info).url.port == 1500

    def test_integrated_auth_sends_no_credentials(self, integrated_info):
        url = PooledBackend(integrated_info).url
        assert url.username is None
        assert url.password is None

    def test_options_merged_into_connect_args(self):
        info = SqlServerConnectionInfo(
            server="db01", database="sales", options={"tds_version": "7.4", "charset": "UTF-8"}
        )
        backend = PooledBackend(info, connect_timeout=5)
        assert backend.connect_args["login_timeout"] == 5
        assert backend.connect_args["tds_version"] == "7.4"
        assert backend.connect_args["charset"] == "UTF-8"

    def test_describe_masks_password(self, named_instance_info):
        config = json.loads(PooledBackend(named_instance_info).describe())
        assert config["password"] == "*****"
        assert config["server"] == "HOST"
        assert config["instanceName"] == "INSTANCE"
        assert config["trustedConnection"] is False
        assert "trustServerCertificate" not in config
