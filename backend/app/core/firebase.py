import json
import base64
import logging
from functools import lru_cache

from firebase_admin import credentials, initialize_app, get_app, firestore
from app.core.config import settings

logger = logging.getLogger("storefront")


def init_firebase():
    try:
        get_app()
        logger.info("Firebase Admin SDK already initialized")
        return
    except ValueError:
        pass

    if not settings.FIREBASE_KEY:
        raise RuntimeError("FIREBASE_KEY environment variable is not set")

    try:
        decoded_json = base64.b64decode(settings.FIREBASE_KEY).decode("utf-8")
        service_account_info = json.loads(decoded_json)
        logger.info("Loaded Firebase credentials from FIREBASE_KEY")
    except Exception as e:
        raise RuntimeError(f"Failed to decode or parse FIREBASE_KEY: {e}")

    project_id = service_account_info.get("project_id")
    if not project_id:
        raise ValueError("'project_id' missing in Firebase service account JSON")

    cred = credentials.Certificate(service_account_info)
    initialize_app(cred)

    logger.info(f"Firebase Admin SDK initialized | Project: {project_id}")


@lru_cache(maxsize=1)
def get_db():
    """Firestore client, created on first use so imports stay side-effect free."""
    init_firebase()
    try:
        client = firestore.client()
    except Exception as e:
        logger.error(f"Failed to initialize Firestore client: {e}")
        raise
    logger.info("Firestore client ready")
    return client


__all__ = ["get_db", "init_firebase"]
