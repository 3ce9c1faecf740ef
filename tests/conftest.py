"""Root test configuration for vidproxy.

Isolates every test from the developer's environment: port overrides and
config-path variables are removed, and the default config search paths are
pointed at an empty temporary directory so a stray ``.vidproxy/config.yaml``
cannot change the defaults a test expects.
"""

import pytest


@pytest.fixture(autouse=True)
def isolate_config_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory
) -> None:
    """Remove config-related env vars and hide on-disk config files."""
    for name in ("VIDPROXY_CONFIG", "VIDPROXY_PORT", "PORT"):
        monkeypatch.delenv(name, raising=False)
    empty = tmp_path_factory.mktemp("no-config")
    monkeypatch.setattr(
        "vidproxy.config.DEFAULT_CONFIG_PATHS",
        [str(empty / ".vidproxy" / "config.yaml")],
    )


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests.

    Prevents test-to-test rate limit bleed where many tests hitting the
    same endpoint inside one window would trigger a 429.
    """
    from vidproxy.limiter import limiter
    try:
        # slowapi stores state in the underlying limits library storage backend
        limiter._storage.reset()
    except Exception:
        pass  # Storage may not support reset in all backends
