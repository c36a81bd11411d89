"""
Firebase Admin integration.

This module handles:
1. Initializing the Firebase Admin app once (service account from env)
2. Verifying Firebase ID tokens sent by the mobile app
3. Providing a shared Firestore client
"""
import json
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore

from mindenu.config import get_settings
from mindenu.utils.errors import AuthError, ConfigurationError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

_firestore_client = None


def _load_service_account(raw: str) -> dict:
    """Parse FIREBASE_SERVICE_ACCOUNT_JSON, fixing escaped newlines in the key."""
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"FIREBASE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}")
        raise ConfigurationError("FIREBASE_SERVICE_ACCOUNT_JSON")

    if isinstance(info.get("private_key"), str):
        info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


def get_firebase_app() -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    if firebase_admin._apps:
        return firebase_admin.get_app()

    settings = get_settings()
    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id

    if settings.firebase_service_account_json:
        info = _load_service_account(settings.firebase_service_account_json)
        options.setdefault("projectId", info.get("project_id"))
        app = firebase_admin.initialize_app(credentials.Certificate(info), options)
        logger.info(f"Firebase initialized for project {options['projectId']}")
    else:
        # Application default credentials (Cloud Run, GCE, local gcloud login)
        app = firebase_admin.initialize_app(options=options or None)
        logger.info("Firebase initialized with application default credentials")

    return app


def verify_id_token(id_token: str) -> str:
    """
    Verify a Firebase ID token and return its uid.

    Raises:
        AuthError: If the token is invalid, expired or revoked
    """
    app = get_firebase_app()
    try:
        decoded = firebase_auth.verify_id_token(id_token, app=app)
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError, firebase_auth.CertificateFetchError) as e:
        logger.warning(f"ID token rejected: {type(e).__name__}")
        raise AuthError("Your sign-in has expired. Please sign in again.")

    uid: Optional[str] = decoded.get("uid")
    if not uid:
        raise AuthError()
    return uid


def get_firestore_client():
    """Return a cached Firestore client instance."""
    global _firestore_client
    if _firestore_client is None:
        _firestore_client = firestore.client(app=get_firebase_app())
    return _firestore_client
