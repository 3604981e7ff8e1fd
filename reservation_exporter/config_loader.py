"""Configuration loading with YAML security."""
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .models import ScraperConfig


DEFAULT_SETTINGS: dict[str, Any] = {
    "portal": {
        "login_url": "https://www.expediapartnercentral.com/Account/Logon?signedOff=true",
        "home_url": "https://apps.expediapartnercentral.com/",
    },
    "timeouts": {
        "navigation_ms": 60000,
        "verification_ms": 60000,
        "post_login_ms": 60000,
        "element_ms": 30000,
        "reservations_ms": 80000,
        "dialog_ms": 8000,
        "email_grace_ms": 15000,
    },
    "typing": {
        "email_delay_ms": 100,
        "password_delay_ms": 150,
        "password_retype_delay_ms": 200,
        "search_delay_ms": 150,
        "property_delay_ms": 500,
    },
    "delays": {
        "before_login": 2000,
        "password_ready": 3000,
        "password_not_ready": 2000,
        "password_submit": 5000,
        "after_code_entry": 2000,
        "property_search": 2000,
        "after_property_open": 8000,
        "after_reservations_open": 8000,
        "after_search_click": 1000,
        "search_results": 2000,
        "results_render": 3000,
        "page_render": 5000,
        "dialog_content": 2000,
        "dialog_scroll": 2000,
        "dialog_close": 1500,
        "extraction_retry": 1000,
        "card_activity_load": 5000,
        "pagination_scroll": 1500,
        "pagination_click": 2000,
        "page_reload": 5000,
        "after_home": 2000,
        "between_properties": 5000,
    },
    "run": {
        "headless": True,
        "capture_card_activity": False,
        "max_page_retries": 3,
        "extraction_attempts": 3,
    },
}


def load_config_secure(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration with security hardening.

    Uses safe_load() so tagged nodes cannot construct Python objects.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Dictionary containing the configuration.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If config is not a valid dictionary.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise ValueError("Configuration must be a dictionary")

    return config


def load_settings(config_path: Optional[Path] = None) -> dict[str, Any]:
    """Load settings configuration from YAML file.

    Missing sections and keys fall back to DEFAULT_SETTINGS. A missing
    path yields the defaults alone.

    Args:
        config_path: Path to the settings YAML file.

    Returns:
        Dictionary containing settings with defaults applied.
    """
    config: dict[str, Any] = {}
    if config_path is not None:
        config = load_config_secure(config_path)

    for section, defaults in DEFAULT_SETTINGS.items():
        values = config.setdefault(section, {})
        if not isinstance(values, dict):
            raise ValueError(f"Settings section '{section}' must be a dictionary")
        for key, value in defaults.items():
            values.setdefault(key, value)

    return config


def build_scraper_config(
    settings: dict[str, Any],
    input_file: Path,
    output_dir: Path,
    headless: Optional[bool] = None,
    capture_card_activity: Optional[bool] = None,
) -> ScraperConfig:
    """Turn a loaded settings dict into a ScraperConfig.

    Explicit keyword arguments win over the values from settings.
    """
    portal = settings["portal"]
    timeouts = settings["timeouts"]
    typing = settings["typing"]
    run = settings["run"]

    return ScraperConfig(
        input_file=input_file,
        output_dir=output_dir,
        headless=run["headless"] if headless is None else headless,
        login_url=portal["login_url"],
        home_url=portal["home_url"],
        navigation_timeout_ms=int(timeouts["navigation_ms"]),
        verification_timeout_ms=int(timeouts["verification_ms"]),
        post_login_timeout_ms=int(timeouts["post_login_ms"]),
        element_timeout_ms=int(timeouts["element_ms"]),
        reservations_timeout_ms=int(timeouts["reservations_ms"]),
        dialog_timeout_ms=int(timeouts["dialog_ms"]),
        email_grace_ms=int(timeouts["email_grace_ms"]),
        typing_delay_ms=int(typing["email_delay_ms"]),
        password_delay_ms=int(typing["password_delay_ms"]),
        password_retype_delay_ms=int(typing["password_retype_delay_ms"]),
        search_typing_delay_ms=int(typing["search_delay_ms"]),
        property_typing_delay_ms=int(typing["property_delay_ms"]),
        delays_ms={name: int(ms) for name, ms in settings["delays"].items()},
        capture_card_activity=(
            run["capture_card_activity"]
            if capture_card_activity is None
            else capture_card_activity
        ),
        max_page_retries=int(run["max_page_retries"]),
        extraction_attempts=int(run["extraction_attempts"]),
    )


def load_environment(env_file: Optional[Path] = None) -> dict[str, Optional[str]]:
    """Load secrets and paths from the environment (and .env if present).

    Returns:
        Dictionary of the environment values the exporter reads.
    """
    load_dotenv(dotenv_path=env_file)

    return {
        "portal_email": os.getenv("PORTAL_EMAIL"),
        "portal_password": os.getenv("PORTAL_PASSWORD"),
        "gmail_client_id": os.getenv("GMAIL_CLIENT_ID"),
        "gmail_client_secret": os.getenv("GMAIL_CLIENT_SECRET"),
        "gmail_token_path": os.getenv("GMAIL_TOKEN_PATH", "token.json"),
        "oauth_redirect_uri": os.getenv(
            "OAUTH_REDIRECT_URI", "http://localhost:3000/oauth2callback"
        ),
        "frontend_redirect_uri": os.getenv("FRONTEND_REDIRECT_URI", "/"),
        "activity_log_path": os.getenv("ACTIVITY_LOG_PATH", "data.json"),
    }
