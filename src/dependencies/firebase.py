import os

import firebase_admin
from firebase_admin import auth, credentials

from src.shared.utils import get_logger

logger = get_logger(__name__)

__all__ = ["auth", "initialize_firebase"]


def initialize_firebase():
    """Initialize the Firebase Admin SDK used to verify bearer tokens."""
    if firebase_admin._apps:
        return

    service_account_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if not service_account_path or not os.path.exists(service_account_path):
        logger.warning(
            "GOOGLE_APPLICATION_CREDENTIALS not set or missing; "
            "authenticated payment endpoints will reject every token"
        )
        return

    cred = credentials.Certificate(service_account_path)
    firebase_admin.initialize_app(cred)


if os.getenv("TESTING") != "True":
    initialize_firebase()
