"""AI feature gating.

Learn: AI features are switched on by configuring a provider key.
An optional comma-separated allow-list narrows them to specific
accounts while a feature is being trialled.
"""

from typing import Optional

from pillar.config import Settings, settings as default_settings


def is_ai_enabled(config: Optional[Settings] = None) -> bool:
    config = config or default_settings
    return bool(config.ai_api_key)


def is_ai_allowed_for_user(email: Optional[str], config: Optional[Settings] = None) -> bool:
    """True if the allow-list is unset, or contains this email (case-insensitive)."""
    allowed = (config or default_settings).ai_allowed_email_set
    if not allowed:
        return True
    return bool(email) and email.strip().lower() in allowed
