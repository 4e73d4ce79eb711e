import firebase_admin
from firebase_admin import credentials, auth, firestore
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


def init_firebase():
    """Initialize the Firebase Admin app once per process"""
    logger.info("init_firebase: Entry")

    if firebase_admin._apps:
        logger.info("init_firebase: Already initialized")
        return

    try:
        cred = credentials.Certificate(settings.firebase_credentials_path)
        firebase_admin.initialize_app(cred, {'projectId': settings.firebase_project_id})
        logger.info(f"init_firebase: Success - project: {settings.firebase_project_id}")
    except Exception as e:
        logger.error(f"init_firebase: Failure - {e}")
        raise


def verify_firebase_token(token: str, check_revoked: bool = False) -> dict:
    """Verify a Firebase ID token and return its decoded claims"""
    try:
        decoded_token = auth.verify_id_token(token, check_revoked=check_revoked)
        logger.info(f"verify_firebase_token: Success - {decoded_token.get('uid')}")
        return decoded_token
    except Exception as e:
        logger.error(f"verify_firebase_token: Failure - {e}")
        raise


def identity_from_claims(decoded_token: dict) -> dict:
    """
    Caller identity from decoded token claims.

    ``role`` is a custom claim set on admin accounts; students carry none.
    ``email_verified`` is only true once Firebase has confirmed the address.
    """
    return {
        'uid': decoded_token.get('uid'),
        'email': decoded_token.get('email'),
        'email_verified': decoded_token.get('email_verified') is True,
        'name': decoded_token.get('name'),
        'role': decoded_token.get('role'),
        'token': decoded_token,
    }


def get_firestore_client():
    return firestore.client()
