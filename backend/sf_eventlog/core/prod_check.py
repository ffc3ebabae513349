"""
Startup validation for APP_ENV=prod.
If any check fails a RuntimeError is raised and the application does not start.
"""
from sf_eventlog.core.config import settings

REQUIRED_SALESFORCE_SETTINGS = {
    "SF_TOKENHOST": "sf_token_host",
    "SF_CLIENT_ID": "sf_client_id",
    "SF_USERNAME": "sf_username",
    "SF_PRIVATE_KEY_PEM_B64": "sf_private_key_pem_b64",
}


def validate_production_config() -> None:
    """Refuse to run in production without Salesforce credentials, on SQLite or with CORS *."""
    if (getattr(settings, "app_env", "dev") or "dev").strip().lower() != "prod":
        return

    errors: list[str] = []

    for env_name, attr in REQUIRED_SALESFORCE_SETTINGS.items():
        if not (getattr(settings, attr, "") or "").strip():
            errors.append(f"{env_name} must be set in production.")

    db_url = (getattr(settings, "database_url", "") or "").strip().lower()
    if db_url.startswith("sqlite"):
        errors.append("DATABASE_URL must point to a server database in production, not SQLite.")
    if "change_me" in db_url:
        errors.append("DATABASE_URL must not contain the default password (change_me) in production.")

    if (settings.cors_origins or "").strip() == "*":
        errors.append("CORS_ORIGINS cannot be '*' in production.")

    if errors:
        raise RuntimeError(
            "Invalid production configuration:\n  - " + "\n  - ".join(errors)
        )
