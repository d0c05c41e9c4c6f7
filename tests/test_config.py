import json

import pytest

from config import ConfigurationError, Settings, database_url_from_secret


def test_development_uses_database_url():
    settings = Settings(environment="development", database_url="sqlite:///./dev.db")
    assert settings.resolve_database_url() == "sqlite:///./dev.db"
    assert settings.is_development


def test_secret_document_builds_url(tmp_path):
    secret = tmp_path / "db.json"
    secret.write_text(json.dumps({
        "host": "db.internal",
        "username": "finance",
        "password": "p@ss",
        "port": 3307,
        "dbname": "finance",
    }))
    settings = Settings(environment="production", secrets_file=str(secret), jwt_secret="prod-secret")

    url = settings.resolve_database_url()

    assert url.startswith("mysql+pymysql://finance:")
    assert url.endswith("@db.internal:3307/finance")


def test_secret_document_default_port():
    url = database_url_from_secret(
        {"host": "h", "username": "u", "password": "p", "dbname": "d"}, "mysql+pymysql"
    )
    assert url == "mysql+pymysql://u:p@h:3306/d"


def test_secret_document_missing_fields():
    with pytest.raises(ConfigurationError, match="host, dbname"):
        database_url_from_secret({"username": "u", "password": "p"}, "mysql+pymysql")


def test_secret_store_requires_file():
    settings = Settings(environment="aws", jwt_secret="prod-secret")
    with pytest.raises(ConfigurationError):
        settings.resolve_database_url()


def test_missing_secret_file(tmp_path):
    settings = Settings(environment="production", secrets_file=str(tmp_path / "nope.json"))
    with pytest.raises(ConfigurationError, match="not found"):
        settings.resolve_database_url()


def test_cors_origins_list():
    settings = Settings(cors_origins="http://a.test, http://b.test,")
    assert settings.cors_origins_list == ["http://a.test", "http://b.test"]
