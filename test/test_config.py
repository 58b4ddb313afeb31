from status_api.config import Settings


def test_cors_origins_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://shop.example.com, http://localhost:3000")
    assert Settings().cors_allowed_origins == ["https://shop.example.com", "http://localhost:3000"]


def test_cors_origins_from_json_env(monkeypatch):
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", '["https://shop.example.com"]')
    assert Settings().cors_allowed_origins == ["https://shop.example.com"]


def test_defaults_have_no_origins(monkeypatch):
    monkeypatch.delenv("CORS_ALLOWED_ORIGINS", raising=False)
    assert Settings(_env_file=None).cors_allowed_origins == []
