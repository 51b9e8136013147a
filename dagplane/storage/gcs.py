"""
Google Cloud Storage backend (``gs://`` URIs).

Credentials are the service account JSON stored as the project's storage
secret. Uploads are single requests, so an object is never partially
visible.
"""
from __future__ import annotations

import base64
import json
from typing import Dict, Optional

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from requests.exceptions import RequestException

from ..errors import StorageError
from .base import ObjectWriter


# API, credential refresh and transport failures
CLIENT_ERRORS = (GoogleAPIError, GoogleAuthError, RequestException)


class GcsObjectWriter(ObjectWriter):
    def __init__(self, client: storage.Client):
        self.client = client

    def write(self, bucket: str, key: str, data: bytes) -> None:
        blob = self.client.bucket(bucket).blob(key)
        try:
            blob.upload_from_string(data, content_type="text/plain")
        except CLIENT_ERRORS as e:
            raise StorageError(f"error writing gs://{bucket}/{key}: {e}") from e

    def delete(self, bucket: str, key: str) -> None:
        try:
            self.client.bucket(bucket).blob(key).delete()
        except NotFound:
            pass
        except CLIENT_ERRORS as e:
            raise StorageError(f"error deleting gs://{bucket}/{key}: {e}") from e

    def list(self, bucket: str, prefix: str) -> Dict[str, str]:
        objects = {}
        directory = f"{prefix}/" if prefix else ""
        try:
            for blob in self.client.list_blobs(bucket, prefix=directory, delimiter="/"):
                if blob.name.endswith("/"):
                    continue
                checksum = base64.b64decode(blob.md5_hash).hex() if blob.md5_hash else ""
                objects[blob.name] = checksum
        except CLIENT_ERRORS as e:
            raise StorageError(f"error listing gs://{bucket}/{directory}: {e}") from e
        return objects


def new_gcs_writer(credentials: Optional[bytes] = None) -> GcsObjectWriter:
    """Create a writer from service account JSON credentials.

    Raises:
        StorageError: If the credentials cannot be parsed
    """
    if not credentials:
        raise StorageError("google storage credentials are required")
    try:
        info = json.loads(credentials)
        client = storage.Client.from_service_account_info(info)
    except (ValueError, KeyError) as e:
        raise StorageError(f"error creating google storage client: {e}") from e
    return GcsObjectWriter(client)
