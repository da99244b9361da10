"""
Privacy settings and GDPR data rights.

Each user owns exactly one PrivacySetting row, created with defaults on
first access. Every accepted change is stamped with consent metadata
(time, source, anonymized IP, user agent) and mirrored into the
user's activity log.
"""
import ipaddress
import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from app.models import (
    Address,
    PrivacySetting,
    User,
    UserActivity,
    UserPreference,
    Wishlist,
    utcnow,
)
from app.schemas import isoformat, str_id
from app.services.addresses import serialize_address

logger = logging.getLogger(__name__)

PROFILE_VISIBILITIES = ("public", "private", "friends")
COOKIE_CONSENTS = ("necessary", "analytics", "marketing", "all")
CONSENT_SOURCES = ("registration", "profile-update", "admin-update", "api", "consent-update")

# Changing any of these needs an explicit gdprConsent: true in the same request
CONSENT_GATED_FIELDS = ("analyticsConsent", "marketingConsent", "dataSharing", "thirdPartySharing")

# API field name -> column
FIELD_MAP = {
    "profileVisibility": "profile_visibility",
    "showEmail": "show_email",
    "showPhone": "show_phone",
    "showLocation": "show_location",
    "dataSharing": "data_sharing",
    "analyticsConsent": "analytics_consent",
    "marketingConsent": "marketing_consent",
    "thirdPartySharing": "third_party_sharing",
    "gdprConsent": "gdpr_consent",
    "consentVersion": "consent_version",
    "dataRetentionConsent": "data_retention_consent",
    "dataProcessingConsent": "data_processing_consent",
    "cookieConsent": "cookie_consent",
}

BOOLEAN_FIELDS = (
    "showEmail",
    "showPhone",
    "showLocation",
    "dataSharing",
    "analyticsConsent",
    "marketingConsent",
    "thirdPartySharing",
    "gdprConsent",
    "dataRetentionConsent",
    "dataProcessingConsent",
)

CONSENT_FIELDS = (
    "gdprConsent",
    "analyticsConsent",
    "marketingConsent",
    "dataSharing",
    "thirdPartySharing",
    "dataProcessingConsent",
    "dataRetentionConsent",
    "cookieConsent",
    "consentVersion",
)

CONSENT_ACTIVITY_TYPES = (
    "privacy_settings_update",
    "consent_update",
    "privacy_settings_reset",
    "data_export",
    "deletion_request",
)

DEFAULTS = {
    "profile_visibility": "private",
    "show_email": False,
    "show_phone": False,
    "show_location": False,
    "data_sharing": False,
    "analytics_consent": True,
    "marketing_consent": False,
    "third_party_sharing": False,
    "gdpr_consent": False,
    "consent_version": "1.0",
    "consent_source": "registration",
    "data_retention_consent": False,
    "data_processing_consent": True,
    "cookie_consent": "necessary",
    "right_to_be_forgotten_requested": False,
    "data_export_requested": False,
}


# =====================================================
# REQUEST METADATA
# =====================================================

def anonymize_ip(ip: Optional[str]) -> Optional[str]:
    """Zero the host part of an address: last IPv4 octet, last 64 IPv6 bits."""
    if not ip:
        return None
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return None

    if address.version == 4:
        octets = str(address).split(".")
        return ".".join(octets[:3] + ["0"])

    groups = address.exploded.split(":")[:4]
    return ":".join(g.lstrip("0") or "0" for g in groups) + "::"


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def request_metadata(request: Request, source: str) -> Dict[str, Any]:
    return {
        "source": source,
        "ip_address": anonymize_ip(client_ip(request)),
        "user_agent": request.headers.get("user-agent"),
    }


# =====================================================
# SERIALIZATION
# =====================================================

def serialize_privacy_setting(setting: PrivacySetting) -> Dict[str, Any]:
    return {
        "id": str(setting.id),
        "profileVisibility": setting.profile_visibility,
        "showEmail": setting.show_email,
        "showPhone": setting.show_phone,
        "showLocation": setting.show_location,
        "dataSharing": setting.data_sharing,
        "analyticsConsent": setting.analytics_consent,
        "marketingConsent": setting.marketing_consent,
        "thirdPartySharing": setting.third_party_sharing,
        "gdprConsent": setting.gdpr_consent,
        "consentVersion": setting.consent_version,
        "consentSource": setting.consent_source,
        "dataRetentionConsent": setting.data_retention_consent,
        "dataProcessingConsent": setting.data_processing_consent,
        "cookieConsent": setting.cookie_consent,
        "rightToBeForgetRequested": setting.right_to_be_forgotten_requested,
        "dataExportRequested": setting.data_export_requested,
        "lastConsentUpdate": isoformat(setting.last_consent_update),
        "ipAddressAtConsent": setting.ip_address_at_consent,
        "userAgentAtConsent": setting.user_agent_at_consent,
        "createdAt": isoformat(setting.created_at),
        "updatedAt": isoformat(setting.updated_at),
    }


def serialize_preference(preference: UserPreference) -> Dict[str, Any]:
    return {
        "id": str(preference.id),
        "language": preference.language,
        "currency": preference.currency,
        "theme": preference.theme,
        "emailNotifications": preference.email_notifications,
        "smsNotifications": preference.sms_notifications,
        "marketingEmails": preference.marketing_emails,
        "createdAt": isoformat(preference.created_at),
        "updatedAt": isoformat(preference.updated_at),
    }


def serialize_activity(activity: UserActivity) -> Dict[str, Any]:
    return {
        "id": str(activity.id),
        "activityType": activity.activity_type,
        "description": activity.description,
        "metadata": activity.details or {},
        "ipAddress": activity.ip_address,
        "userAgent": activity.user_agent,
        "createdAt": isoformat(activity.created_at),
    }


def sanitize_for_export(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Strip record ids and owner links from an exported record."""
    if data is None:
        return None
    return {k: v for k, v in data.items() if k not in ("id", "user", "userId", "sessionId")}


# =====================================================
# VALIDATION
# =====================================================

def requires_gdpr_consent(data: Dict[str, Any]) -> bool:
    return any(field in data for field in CONSENT_GATED_FIELDS)


def validate_privacy_data(data: Dict[str, Any]) -> List[str]:
    errors = []

    visibility = data.get("profileVisibility")
    if visibility is not None and visibility not in PROFILE_VISIBILITIES:
        errors.append("Profile visibility must be public, private, or friends")

    cookie = data.get("cookieConsent")
    if cookie is not None and cookie not in COOKIE_CONSENTS:
        errors.append("Cookie consent must be necessary, analytics, marketing, or all")

    source = data.get("consentSource")
    if source is not None and source not in CONSENT_SOURCES:
        errors.append(
            "Consent source must be registration, profile-update, admin-update, api, or consent-update"
        )

    for field in BOOLEAN_FIELDS:
        if field in data and not isinstance(data[field], bool):
            errors.append(f"{field} must be a boolean")

    version = data.get("consentVersion")
    if version is not None and not isinstance(version, str):
        errors.append("consentVersion must be a string")

    if requires_gdpr_consent(data) and data.get("gdprConsent") is not True:
        errors.append("GDPR consent is required for these privacy changes")

    return errors


def _validated(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Privacy settings data is required",
        )

    errors = validate_privacy_data(data)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Validation failed: {', '.join(errors)}",
        )
    return data


# =====================================================
# ACCESS
# =====================================================

def get_or_create_settings(db: Session, user: User) -> PrivacySetting:
    setting = db.query(PrivacySetting).filter(PrivacySetting.user_id == user.id).first()
    if setting:
        return setting

    setting = PrivacySetting(user_id=user.id, last_consent_update=utcnow(), **DEFAULTS)
    db.add(setting)
    db.commit()
    db.refresh(setting)

    logger.info("Created default privacy settings for user %s", user.id)
    return setting


def log_activity(
    db: Session,
    user: User,
    activity_type: str,
    description: str,
    metadata: Dict[str, Any],
    details: Optional[Dict[str, Any]] = None,
) -> UserActivity:
    activity = UserActivity(
        user_id=user.id,
        activity_type=activity_type,
        description=description,
        details=details or {},
        ip_address=metadata.get("ip_address"),
        user_agent=metadata.get("user_agent"),
    )
    db.add(activity)
    return activity


def _stamp(setting: PrivacySetting, metadata: Dict[str, Any]) -> None:
    setting.last_consent_update = utcnow()
    setting.consent_source = metadata["source"]
    setting.ip_address_at_consent = metadata.get("ip_address")
    setting.user_agent_at_consent = metadata.get("user_agent")


def _apply(setting: PrivacySetting, data: Dict[str, Any]) -> List[str]:
    changed = []
    for field, column in FIELD_MAP.items():
        if field in data:
            setattr(setting, column, data[field])
            changed.append(field)
    return changed


# =====================================================
# MUTATIONS
# =====================================================

def update_settings(
    db: Session,
    user: User,
    data: Any,
    metadata: Dict[str, Any],
) -> PrivacySetting:
    data = _validated(data)
    setting = get_or_create_settings(db, user)

    changed = _apply(setting, data)
    _stamp(setting, metadata)
    log_activity(
        db,
        user,
        "privacy_settings_update",
        "Privacy settings updated",
        metadata,
        {"fields": changed, "consentSource": metadata["source"]},
    )

    db.commit()
    db.refresh(setting)

    logger.info("Privacy settings updated for user %s: %s", user.id, ", ".join(changed) or "no fields")
    return setting


def update_consent(
    db: Session,
    user: User,
    data: Any,
    metadata: Dict[str, Any],
) -> PrivacySetting:
    data = _validated(data)
    consent = {k: v for k, v in data.items() if k in CONSENT_FIELDS}
    if not consent:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one consent field is required",
        )

    setting = get_or_create_settings(db, user)
    changed = _apply(setting, consent)
    _stamp(setting, metadata)
    log_activity(
        db,
        user,
        "consent_update",
        "Consent preferences updated",
        metadata,
        {"consents": consent, "consentVersion": setting.consent_version},
    )

    db.commit()
    db.refresh(setting)

    logger.info("Consent updated for user %s: %s", user.id, ", ".join(changed))
    return setting


def reset_settings(db: Session, user: User, metadata: Dict[str, Any]) -> PrivacySetting:
    setting = get_or_create_settings(db, user)
    for column, value in DEFAULTS.items():
        setattr(setting, column, value)
    _stamp(setting, metadata)
    log_activity(db, user, "privacy_settings_reset", "Privacy settings reset to defaults", metadata)

    db.commit()
    db.refresh(setting)

    logger.info("Privacy settings reset for user %s", user.id)
    return setting


def request_deletion(db: Session, user: User, metadata: Dict[str, Any]) -> PrivacySetting:
    setting = get_or_create_settings(db, user)
    setting.right_to_be_forgotten_requested = True
    _stamp(setting, metadata)
    log_activity(db, user, "deletion_request", "Right to be forgotten requested", metadata)

    db.commit()
    db.refresh(setting)

    logger.info("Deletion requested by user %s", user.id)
    return setting


# =====================================================
# READS
# =====================================================

def consent_history(db: Session, user: User) -> Dict[str, Any]:
    setting = get_or_create_settings(db, user)

    entries = (
        db.query(UserActivity)
        .filter(
            UserActivity.user_id == user.id,
            UserActivity.activity_type.in_(CONSENT_ACTIVITY_TYPES),
        )
        .order_by(UserActivity.created_at.desc())
        .all()
    )

    return {
        "currentConsents": {
            "gdprConsent": setting.gdpr_consent,
            "analyticsConsent": setting.analytics_consent,
            "marketingConsent": setting.marketing_consent,
            "dataProcessingConsent": setting.data_processing_consent,
            "cookieConsent": setting.cookie_consent,
        },
        "consentMetadata": {
            "lastConsentUpdate": isoformat(setting.last_consent_update),
            "consentVersion": setting.consent_version,
            "consentSource": setting.consent_source,
            "ipAddressAtConsent": setting.ip_address_at_consent,
            "rightToBeForgetRequested": setting.right_to_be_forgotten_requested,
            "dataExportRequested": setting.data_export_requested,
        },
        "history": [serialize_activity(a) for a in entries],
    }


def export_user_data(db: Session, user: User, metadata: Dict[str, Any]) -> Dict[str, Any]:
    setting = get_or_create_settings(db, user)
    setting.data_export_requested = True
    _stamp(setting, metadata)
    log_activity(db, user, "data_export", "Personal data exported", metadata)
    db.commit()
    db.refresh(setting)

    preference = db.query(UserPreference).filter(UserPreference.user_id == user.id).first()
    addresses = (
        db.query(Address)
        .filter(Address.user_id == user.id)
        .order_by(Address.created_at.asc())
        .all()
    )
    activities = (
        db.query(UserActivity)
        .filter(UserActivity.user_id == user.id)
        .order_by(UserActivity.created_at.desc())
        .all()
    )
    wishlist = db.query(Wishlist).filter(Wishlist.user_id == user.id).all()

    logger.info("Exported personal data for user %s", user.id)

    return {
        "user": {
            "email": user.email,
            "fullName": user.full_name,
            "phone": user.phone,
            "role": user.role,
            "isActive": user.is_active,
            "createdAt": isoformat(user.created_at),
        },
        "privacySettings": sanitize_for_export(serialize_privacy_setting(setting)),
        "preferences": sanitize_for_export(serialize_preference(preference)) if preference else None,
        "addresses": [sanitize_for_export(serialize_address(a)) for a in addresses],
        "wishlist": [
            {"productId": str_id(item.product_id), "createdAt": isoformat(item.created_at)}
            for item in wishlist
        ],
        "activities": [sanitize_for_export(serialize_activity(a)) for a in activities],
        "exportMetadata": {
            "exportDate": utcnow().isoformat(),
            "exportedBy": str(user.id),
            "dataTypes": ["profile", "preferences", "privacy-settings", "addresses", "wishlist", "activities"],
            "gdprCompliant": True,
        },
    }


# =====================================================
# RIGHT TO BE FORGOTTEN
# =====================================================

def delete_user_data(db: Session, user: User) -> Dict[str, Any]:
    """
    Remove everything the user owns, then the user.

    Each step commits on its own. A failing step is rolled back, logged and
    reported; steps already committed stay deleted.
    """
    user_id = user.id
    steps = [
        ("preferences", lambda: db.query(UserPreference).filter(UserPreference.user_id == user_id).delete()),
        ("privacySettings", lambda: db.query(PrivacySetting).filter(PrivacySetting.user_id == user_id).delete()),
        ("addresses", lambda: db.query(Address).filter(Address.user_id == user_id).delete()),
        ("wishlist", lambda: db.query(Wishlist).filter(Wishlist.user_id == user_id).delete()),
        ("user", lambda: db.query(User).filter(User.id == user_id).delete()),
    ]

    deleted = []
    failed = []
    for name, step in steps:
        try:
            step()
            db.commit()
            deleted.append(name)
        except Exception:
            db.rollback()
            logger.exception("GDPR deletion step '%s' failed for user %s", name, user_id)
            failed.append(name)

    if failed:
        logger.error("GDPR deletion for user %s incomplete: %s", user_id, ", ".join(failed))
    else:
        logger.info("Deleted all data for user %s", user_id)

    return {"deleted": deleted, "failed": failed}
