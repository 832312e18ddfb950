from pricezones.config import get_settings


def test_db_url_accepts_database_url(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.delenv("DB_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://example.com:5432/app")

    settings = get_settings()

    assert settings.db_url == "postgresql://example.com:5432/app"
    get_settings.cache_clear()


def test_scanner_base_url_alias_and_trailing_slash(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.delenv("SCANNER_BASE_URL", raising=False)
    monkeypatch.setenv("CHARTINK_BASE_URL", "https://scanner.example.com/")

    settings = get_settings()

    assert settings.scanner_base_url == "https://scanner.example.com"
    get_settings.cache_clear()


def test_strategy_names_default_to_known_scans(monkeypatch):
    get_settings.cache_clear()
    for name in ("OB_STRATEGY_NAME", "FVG_STRATEGY_NAME", "MITIGATION_STRATEGY_NAME"):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.ob_strategy_name == "BULLISH OB 1D"
    assert settings.fvg_strategy_name == "FAIR VALUE GAP"
    assert settings.mitigation_strategy_name == "BULLISH CLOSE 200"
    get_settings.cache_clear()


def test_seed_strategies_parse_from_json(monkeypatch):
    get_settings.cache_clear()
    monkeypatch.setenv("SEED_STRATEGIES", '[{"name": "bullish ob 1d", "scanClause": "( {cash} ( latest close > 1 ) )"}]')

    settings = get_settings()

    assert settings.seed_strategies[0]["name"] == "bullish ob 1d"
    get_settings.cache_clear()
