"""
Action catalogue and categorization rules.

Producers may omit category, severity or status; these rules derive
sensible defaults from the action name.
"""

from audit_pipeline.events.models import ActivityCategory, ActivitySeverity, ActivityStatus

AUTHENTICATION_ACTIONS = frozenset(
    {
        "login_success",
        "login_failed",
        "logout",
        "token_refresh",
        "password_change",
        "password_reset",
        "account_locked",
        "email_verification",
    }
)

AUTHORIZATION_ACTIONS = frozenset(
    {
        "access_granted",
        "access_denied",
        "permission_checked",
        "role_verified",
        "token_validated",
        "resource_accessed",
    }
)

USER_MANAGEMENT_ACTIONS = frozenset(
    {
        "user_created",
        "user_updated",
        "user_deleted",
        "role_assigned",
        "role_removed",
        "permission_granted",
        "permission_revoked",
        "user_impersonated",
    }
)

DATA_MODIFICATION_ACTIONS = frozenset(
    {
        "record_created",
        "record_updated",
        "record_deleted",
        "bulk_operation",
        "data_imported",
        "data_exported",
    }
)

SYSTEM_ACTIONS = frozenset(
    {
        "system_started",
        "system_stopped",
        "configuration_changed",
        "backup_created",
        "backup_restored",
        "maintenance_mode",
    }
)

SECURITY_ACTIONS = frozenset(
    {
        "security_alert",
        "intrusion_detected",
        "firewall_blocked",
        "suspicious_activity",
        "security_scan",
        "vulnerability_detected",
    }
)

# Checked in order; first match wins
_CATEGORY_RULES: tuple[tuple[frozenset[str], ActivityCategory], ...] = (
    (AUTHENTICATION_ACTIONS, ActivityCategory.AUTHENTICATION),
    (AUTHORIZATION_ACTIONS, ActivityCategory.AUTHORIZATION),
    (USER_MANAGEMENT_ACTIONS, ActivityCategory.USER_MANAGEMENT),
    (DATA_MODIFICATION_ACTIONS, ActivityCategory.DATA_MODIFICATION),
    (SYSTEM_ACTIONS, ActivityCategory.SYSTEM),
    (SECURITY_ACTIONS, ActivityCategory.SECURITY),
)

_CRITICAL_ACTIONS = frozenset(
    {"intrusion_detected", "vulnerability_detected", "system_stopped", "account_locked"}
)
_HIGH_ACTIONS = frozenset(
    {"security_alert", "suspicious_activity", "login_failed", "user_deleted", "bulk_operation"}
)
_MEDIUM_ACTIONS = frozenset(
    {
        "login_success",
        "password_change",
        "user_created",
        "user_updated",
        "record_created",
        "record_updated",
    }
)

_FAILED_ACTIONS = frozenset({"login_failed", "access_denied"})
_ERROR_ACTIONS = frozenset({"intrusion_detected", "vulnerability_detected"})

ALL_ACTIONS = frozenset().union(*(actions for actions, _ in _CATEGORY_RULES))


def detect_category(action: str) -> ActivityCategory:
    """Category for a known action; unknown actions fall back to system."""
    for actions, category in _CATEGORY_RULES:
        if action in actions:
            return category
    return ActivityCategory.SYSTEM


def severity_for_action(action: str) -> ActivitySeverity:
    if action in _CRITICAL_ACTIONS:
        return ActivitySeverity.CRITICAL
    if action in _HIGH_ACTIONS:
        return ActivitySeverity.HIGH
    if action in _MEDIUM_ACTIONS:
        return ActivitySeverity.MEDIUM
    return ActivitySeverity.LOW


def status_for_action(action: str) -> ActivityStatus:
    if action in _FAILED_ACTIONS:
        return ActivityStatus.FAILURE
    if action in _ERROR_ACTIONS:
        return ActivityStatus.ERROR
    return ActivityStatus.SUCCESS


def is_known_action(action: str) -> bool:
    return action in ALL_ACTIONS
