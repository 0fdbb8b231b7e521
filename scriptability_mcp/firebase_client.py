from __future__ import annotations

from typing import List, Optional

import firebase_admin
from firebase_admin import credentials, storage
from google.cloud.storage import Bucket

from .config import Settings


_FIREBASE_APP: Optional[firebase_admin.App] = None


def init_firebase(settings: Settings) -> None:
    """
    Initialize the Firebase Admin SDK once per process.

    Uses either:
    - Explicit service account JSON via `firebase_credentials_file`, or
    - Application Default Credentials (ADC) if not provided.
    """
    global _FIREBASE_APP

    if _FIREBASE_APP is not None:
        return

    if settings.firebase_credentials_file:
        cred = credentials.Certificate(settings.firebase_credentials_file)
    else:
        cred = credentials.ApplicationDefault()

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.output_bucket:
        options["storageBucket"] = settings.output_bucket

    _FIREBASE_APP = firebase_admin.initialize_app(cred, options)


def get_bucket(name: Optional[str] = None) -> Bucket:
    """Return a storage bucket handle (the app's default bucket when `name` is None)."""
    if _FIREBASE_APP is None:
        raise RuntimeError("Firebase app not initialized. Call init_firebase() first.")
    return storage.bucket(name=name, app=_FIREBASE_APP)


def set_delete_lifecycle(bucket: Bucket, days: int, prefixes: List[str]) -> None:
    """
    Replace the bucket's lifecycle rules with a single delete rule.

    Objects whose name starts with one of `prefixes` are deleted once they
    are `days` old.
    """
    bucket.lifecycle_rules = []
    bucket.add_lifecycle_delete_rule(age=days, matches_prefix=prefixes)
    bucket.patch()
